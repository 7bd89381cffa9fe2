"""Secret redaction for recorded gateway calls."""

import pytest

from invoicing_gateway.redaction import REDACTED, is_sensitive, redact


class TestIsSensitive:
    @pytest.mark.parametrize("key", ["password", "Authorization", "access_token", "uyumSecretKey", "client_secret_key"])
    def test_sensitive(self, key):
        assert is_sensitive(key)

    @pytest.mark.parametrize("key", ["userName", "edocNo", "taxNo", "expires_in"])
    def test_not_sensitive(self, key):
        assert not is_sensitive(key)


class TestRedact:
    def test_nested_values_replaced(self):
        body = {
            "userName": "api-user",
            "password": "s3cret",
            "result": {"access_token": "tok", "items": [{"refresh_token": "r", "edocNo": "EAR1"}]},
        }

        assert redact(body) == {
            "userName": "api-user",
            "password": REDACTED,
            "result": {"access_token": REDACTED, "items": [{"refresh_token": REDACTED, "edocNo": "EAR1"}]},
        }

    def test_original_untouched(self):
        body = {"password": "s3cret"}
        redact(body)
        assert body == {"password": "s3cret"}

    @pytest.mark.parametrize("value", [None, "plain text", 42, ["a", "b"]])
    def test_scalars_pass_through(self, value):
        assert redact(value) == value
