"""Compare-and-increment of the customer party counter."""

from sqlalchemy import select

from invoicing_kernel.db.engine import session_scope
from invoicing_kernel.models.store_fiscal_config import StoreFiscalConfig
from invoicing_kernel.services.store_config_service import StoreConfigService
from tests.conftest import STORE_ID


def advance(session_factory, used_card_code, store_id=STORE_ID):
    with session_scope(session_factory) as session:
        return StoreConfigService(session).advance_customer_party_seq(store_id, used_card_code)


def current_seq(session_factory):
    with session_scope(session_factory) as session:
        return session.execute(select(StoreFiscalConfig)).scalar_one().next_customer_party_seq


class TestAdvanceCustomerPartySeq:
    def test_advances_when_code_matches(self, session_factory, store):
        assert advance(session_factory, "120.C.1") is True
        assert current_seq(session_factory) == 2

    def test_shared_code_advances_once(self, session_factory, store):
        advance(session_factory, "120.C.1")

        assert advance(session_factory, "120.C.1") is False
        assert current_seq(session_factory) == 2

    def test_stale_code_ignored(self, session_factory, seed_store):
        seed_store(next_customer_party_seq=5)

        assert advance(session_factory, "120.C.3") is False
        assert current_seq(session_factory) == 5

    def test_unknown_store(self, session_factory, store):
        assert advance(session_factory, "120.C.1", store_id="store-unknown") is False
