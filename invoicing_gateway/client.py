"""
HTTP client for the fiscal document platform.

Handles login and token caching, document submission (single, bulk and
refund vouchers), the registered-recipient lookup, customer party upserts
and document views.  Every call, successful or not, is handed to the call
recorder with secrets redacted.  Transport problems surface as
``GatewayError`` subclasses, never as raw ``requests`` exceptions.
"""

import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import requests
from requests.adapters import HTTPAdapter

from invoicing_config.settings import GatewaySettings
from invoicing_gateway.redaction import redact
from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.dtos import CustomerParty, GatewayCall, GatewayIssueResult
from invoicing_kernel.exceptions import (
    GatewayAuthenticationError,
    GatewayError,
    GatewayResponseError,
    GatewayTimeoutError,
    GatewayTransportError,
    RegistryLookupError,
)
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.gateway_call_log import GatewayCallType

logger = get_logger("gateway.client")

PARTY_CREATED = "created"
PARTY_EXISTS = "exists"

MISSING_FROM_BULK = "Document missing from bulk response"

_RECORDED_TEXT_LIMIT = 2000
_EXISTING_MARKERS = ("exist", "mevcut")

CallRecorder = Callable[[GatewayCall], None]


def _error_message(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in ("message", "errorMessage", "error", "Message"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        value = errors[0].get("message")
        if isinstance(value, str) and value:
            return value
    return None


def _is_rejection(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    return body.get("success") is False or body.get("isSuccess") is False


def _mentions_existing(body: Any) -> bool:
    message = (_error_message(body) or "").lower()
    return any(marker in message for marker in _EXISTING_MARKERS)


def _first(keys: tuple[str, ...], *sources: dict[str, Any]) -> str | None:
    for source in sources:
        for key in keys:
            value = source.get(key)
            if value is not None and value != "":
                return str(value)
    return None


def _issue_result(document_number: str, body: Any, status_code: int | None) -> GatewayIssueResult:
    """Interpret one document's response; a 2xx without a rejection flag is success."""
    data = body if isinstance(body, dict) else {}
    nested = data.get("result") if isinstance(data.get("result"), dict) else {}

    if _is_rejection(data) or _is_rejection(nested):
        return GatewayIssueResult(
            document_number=document_number,
            success=False,
            response=data,
            error_message=_error_message(data) or _error_message(nested) or "Gateway rejected the document",
            status_code=status_code,
        )
    return GatewayIssueResult(
        document_number=document_number,
        success=True,
        external_document_id=_first(("invoiceId", "id"), nested, data),
        transaction_reference=_first(("ettn",), nested, data),
        response=data,
        status_code=status_code,
    )


def _document_number(payload: dict[str, Any]) -> str:
    value = payload.get("value") or {}
    return str(value.get("edocNo") or "")


def _parse_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _for_record(body: Any) -> Any:
    if isinstance(body, str):
        return body[:_RECORDED_TEXT_LIMIT]
    return redact(body)


class FiscalGatewayClient:
    """
    Client for the fiscal document platform.

    Implements the kernel's DocumentGateway, RegistryClient and
    PartyRegistrar ports.  Thread-safe: the token cache is guarded by a
    lock and ``requests.Session`` pools connections.

    Example:
        >>> client = FiscalGatewayClient(settings.gateway, call_recorder=recorder)
        >>> result = client.issue_document(payload)
        >>> result.external_document_id
    """

    def __init__(
        self,
        settings: GatewaySettings,
        call_recorder: CallRecorder | None = None,
        clock: Clock | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._settings = settings
        self._call_recorder = call_recorder
        self._clock = clock or SystemClock()
        self._session = session or self._create_session()

        self._token_lock = threading.Lock()
        self._token: str | None = None
        self._secret_key: str | None = None
        self._token_expires_at: datetime | None = None

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        # No transport-level retries: resubmitting a document is the
        # lifecycle manager's decision.
        adapter = HTTPAdapter(
            pool_connections=self._settings.pool_size,
            pool_maxsize=self._settings.pool_size,
            max_retries=0,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, force: bool = False) -> tuple[str, str]:
        """
        Return ``(access_token, secret_key)``, logging in when needed.

        Tokens are cached until ``expires_in`` minus the safety margin.

        Raises:
            GatewayAuthenticationError: credentials missing, rejected, or the
                login response lacks a token or secret key.
        """
        with self._token_lock:
            now = self._clock.now()
            if (
                not force
                and self._token
                and self._token_expires_at is not None
                and now < self._token_expires_at
            ):
                return self._token, self._secret_key

            if not self._settings.has_credentials:
                raise GatewayAuthenticationError("Gateway credentials not configured")

            status_code, body = self._send(
                "POST",
                GatewayCallType.LOGIN,
                self._settings.login_path,
                {"userName": self._settings.username, "password": self._settings.password},
                authenticated=False,
            )
            result = body.get("result") if isinstance(body, dict) else None
            if not isinstance(result, dict) or not result.get("access_token") or not result.get("uyumSecretKey"):
                raise GatewayAuthenticationError(
                    "Invalid token response from gateway",
                    status_code=status_code,
                    response_body=redact(body),
                )

            try:
                expires_in = int(result.get("expires_in") or self._settings.default_token_ttl_seconds)
            except (TypeError, ValueError):
                expires_in = self._settings.default_token_ttl_seconds
            ttl = max(expires_in - self._settings.token_safety_margin_seconds, 0)

            self._token = result["access_token"]
            self._secret_key = result["uyumSecretKey"]
            self._token_expires_at = now + timedelta(seconds=ttl)
            logger.info(
                "gateway_authenticated",
                extra={"expires_in": expires_in, "cached_for_seconds": ttl},
            )
            return self._token, self._secret_key

    def invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None
            self._secret_key = None
            self._token_expires_at = None

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def issue_document(
        self,
        payload: dict[str, Any],
        *,
        refund: bool = False,
        invoice_id: UUID | None = None,
        order_id: str | None = None,
    ) -> GatewayIssueResult:
        """Submit one sales document or expense voucher."""
        call_type = GatewayCallType.CREATE_REFUND_VOUCHER if refund else GatewayCallType.CREATE_INVOICE
        path = self._settings.refund_path if refund else self._settings.insert_path
        status_code, body = self._send(
            "POST", call_type, path, payload, invoice_id=invoice_id, order_id=order_id
        )
        return _issue_result(_document_number(payload), body, status_code)

    def issue_bulk(self, payloads: list[dict[str, Any]]) -> list[GatewayIssueResult]:
        """
        Submit many documents in one request.

        Results come back in input order, matched on ``edocNo``; a document
        the response does not mention is reported as failed.
        """
        if not payloads:
            return []
        numbers = [_document_number(payload) for payload in payloads]
        status_code, body = self._send(
            "POST",
            GatewayCallType.CREATE_BULK_INVOICE,
            self._settings.bulk_insert_path,
            {"values": [payload.get("value") for payload in payloads]},
        )

        items = body.get("result") if isinstance(body, dict) else body
        if isinstance(items, dict):
            items = items.get("items") or items.get("results")
        if not isinstance(items, list):
            raise GatewayResponseError(
                "Unexpected bulk response shape",
                status_code=status_code,
                response_body=redact(body),
            )

        by_number = {
            str(item["edocNo"]): item
            for item in items
            if isinstance(item, dict) and item.get("edocNo")
        }
        results = []
        for number in numbers:
            item = by_number.get(number)
            if item is None:
                results.append(
                    GatewayIssueResult(
                        document_number=number,
                        success=False,
                        error_message=MISSING_FROM_BULK,
                        status_code=status_code,
                    )
                )
            else:
                results.append(_issue_result(number, item, status_code))

        logger.info(
            "gateway_bulk_reconciled",
            extra={
                "submitted": len(numbers),
                "accepted": sum(1 for r in results if r.success),
            },
        )
        return results

    def fetch_document_view(
        self,
        document_number: str,
        *,
        external_document_id: str | None = None,
        transaction_reference: str | None = None,
    ) -> str:
        """HTML rendering of an issued document."""
        status_code, body = self._send(
            "POST",
            GatewayCallType.VIEW_DOCUMENT,
            self._settings.view_path,
            {
                "value": {
                    "ettn": transaction_reference,
                    "edocNo": document_number,
                    "invoiceId": external_document_id,
                }
            },
            expect_json=False,
        )
        if isinstance(body, dict):
            html = body.get("result") or body.get("html")
            if isinstance(html, str) and html:
                return html
        elif isinstance(body, str) and body:
            return body
        raise GatewayResponseError(
            "Document view missing from response",
            status_code=status_code,
            response_body=_for_record(body),
        )

    # ------------------------------------------------------------------
    # Recipients and parties
    # ------------------------------------------------------------------

    def check_registered_recipient(self, tax_id: str) -> bool:
        """
        Ask the platform whether ``tax_id`` receives standard invoices.

        Raises:
            RegistryLookupError: on any gateway failure or unexpected body.
        """
        try:
            status_code, body = self._send(
                "POST",
                GatewayCallType.CHECK_RECIPIENT,
                self._settings.recipient_path,
                {"value": {"taxNo": tax_id}},
            )
            result = body.get("result") if isinstance(body, dict) else body
            if isinstance(result, bool):
                return result
            if isinstance(result, dict):
                for key in ("isEInvoiceUser", "isRegistered", "registered"):
                    if key in result:
                        return bool(result[key])
            raise GatewayResponseError(
                "Unexpected recipient check response",
                status_code=status_code,
                response_body=redact(body),
            )
        except GatewayError as exc:
            raise RegistryLookupError(tax_id, str(exc)) from exc

    def is_registered(self, tax_id: str) -> bool:
        return self.check_registered_recipient(tax_id)

    def upsert_customer_party(self, party: CustomerParty) -> str:
        """
        Create the customer party record.

        Returns:
            ``"created"``, or ``"exists"`` when the platform already has the
            card code.
        """
        payload = {
            "value": {
                "cardCode": party.card_code,
                "cardName": party.name,
                "cardType": "Cari",
                "taxNo": party.tax_id,
                "taxOffice": party.tax_office,
                "email": party.email,
                "address1": party.address,
                "cityName": party.city,
                "townName": party.district,
                "phone": party.phone,
            }
        }
        try:
            status_code, body = self._send(
                "POST",
                GatewayCallType.UPSERT_CUSTOMER_PARTY,
                self._settings.party_path,
                payload,
            )
        except GatewayTransportError as exc:
            if exc.status_code is not None and _mentions_existing(exc.response_body):
                return PARTY_EXISTS
            raise

        if _is_rejection(body):
            if _mentions_existing(body):
                return PARTY_EXISTS
            raise GatewayResponseError(
                f"Customer party rejected: {_error_message(body) or 'no message'}",
                status_code=status_code,
                response_body=redact(body),
            )
        return PARTY_CREATED

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        call_type: str,
        path: str,
        payload: Any,
        *,
        authenticated: bool = True,
        invoice_id: UUID | None = None,
        order_id: str | None = None,
        expect_json: bool = True,
    ) -> tuple[int, Any]:
        """Perform one request; return ``(status_code, parsed_body)``."""
        if not self._settings.base_url:
            raise GatewayTransportError("Gateway base URL not configured")
        url = f"{self._settings.base_url.rstrip('/')}{path}"

        headers: dict[str, str] = {}
        if authenticated:
            token, secret_key = self.authenticate()
            headers["Authorization"] = f"Bearer {token}"
            headers["UyumSecretKey"] = secret_key

        start_time = time.time()
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=self._settings.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            error = self._normalize_error(exc)
            self._record(call_type, method, url, payload, None, None, start_time, error, invoice_id, order_id)
            raise error from exc

        body = _parse_body(response)
        status_code = response.status_code
        error: GatewayError | None = None
        if not 200 <= status_code < 300:
            error = self._normalize_error(None, status_code, body, response.reason)
            if isinstance(error, GatewayAuthenticationError) and authenticated:
                self.invalidate_token()
        elif expect_json and not isinstance(body, (dict, list)):
            error = GatewayResponseError(
                "Gateway returned a non-JSON response",
                status_code=status_code,
                response_body=_for_record(body),
            )

        self._record(call_type, method, url, payload, body, status_code, start_time, error, invoice_id, order_id)
        if error is not None:
            raise error
        return status_code, body

    def _normalize_error(
        self,
        error: Exception | None,
        status_code: int | None = None,
        body: Any = None,
        reason: str | None = None,
    ) -> GatewayError:
        """Map a requests exception or a non-2xx response to a GatewayError."""
        if isinstance(error, requests.exceptions.Timeout):
            return GatewayTimeoutError(
                f"Request timed out after {self._settings.timeout_seconds}s"
            )
        if isinstance(error, requests.exceptions.ConnectionError):
            return GatewayTransportError(f"Connection error: {error}")
        if error is not None:
            return GatewayTransportError(f"Request error: {error}")

        message = _error_message(body) or reason or "no message"
        if status_code in (401, 403):
            return GatewayAuthenticationError(
                f"Gateway rejected credentials (HTTP {status_code}): {message}",
                status_code=status_code,
                response_body=_for_record(body),
            )
        return GatewayTransportError(
            f"HTTP {status_code}: {message}",
            status_code=status_code,
            response_body=_for_record(body),
        )

    def _record(
        self,
        call_type: str,
        method: str,
        url: str,
        payload: Any,
        body: Any,
        status_code: int | None,
        start_time: float,
        error: GatewayError | None,
        invoice_id: UUID | None,
        order_id: str | None,
    ) -> None:
        call = GatewayCall(
            provider=self._settings.provider,
            call_type=call_type,
            endpoint=url,
            method=method,
            request_body=redact(payload),
            response_body=_for_record(body),
            status_code=status_code,
            is_success=error is None,
            error_message=str(error) if error is not None else None,
            duration_ms=int((time.time() - start_time) * 1000),
            occurred_at=self._clock.now(),
            invoice_id=invoice_id,
            order_id=order_id,
        )

        extra = {
            "call_type": call_type,
            "status_code": status_code,
            "duration_ms": call.duration_ms,
            "success": call.is_success,
        }
        if error is None:
            logger.info("gateway_call_completed", extra=extra)
        else:
            logger.warning("gateway_call_failed", extra={**extra, "error": call.error_message})

        if self._call_recorder is None:
            return
        try:
            self._call_recorder(call)
        except Exception:
            logger.error("gateway_call_record_failed", extra={"call_type": call_type}, exc_info=True)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "FiscalGatewayClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
