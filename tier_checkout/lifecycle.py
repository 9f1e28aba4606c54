from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog

from tier_checkout.config import PAYPAL_CANCEL_URL, PAYPAL_RETURN_URL
from tier_checkout.credentials import AccessCredential, CredentialCache, utcnow
from tier_checkout.errors import (
    CaptureNotCompletedError, CorrelationTokenInvalidError, CorrelationTokenMissingError,
    OrderNotFoundError, PostCaptureError, RecordWriteError, UpstreamCreateError, UpstreamError,
)
from tier_checkout.ledger import LedgerEntry, OrderLedger
from tier_checkout.orders import (
    CancelAck, CaptureResult, CreatedOrder, Order, OrderState, PaymentRecord
)
from tier_checkout.tiers import (
    CURRENCY, decode_correlation_token, encode_correlation_token, parse_tier, tier_amount
)

logger = structlog.get_logger(__name__)

COMPLETED = "COMPLETED"


def _first(items: Any) -> Dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def approval_url(response: Dict[str, Any]) -> Optional[str]:
    for link in response.get("links") or []:
        if isinstance(link, dict) and str(link.get("rel") or "").lower() in {"approve", "payer-action"}:
            return link.get("href")
    return None


def correlation_token(response: Dict[str, Any]) -> Optional[str]:
    """custom_id of the first capture, else of the first purchase unit."""
    unit = _first(response.get("purchase_units"))
    capture = _first((unit.get("payments") or {}).get("captures"))
    return capture.get("custom_id") or unit.get("custom_id") or None


def capture_time(response: Dict[str, Any]) -> Optional[datetime]:
    unit = _first(response.get("purchase_units"))
    capture = _first((unit.get("payments") or {}).get("captures"))
    raw = capture.get("create_time")
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


class OrderLifecycleManager:
    def __init__(
        self,
        provider,
        credentials: CredentialCache,
        record_store,
        ledger: Optional[OrderLedger] = None,
        return_url: str = PAYPAL_RETURN_URL,
        cancel_url: str = PAYPAL_CANCEL_URL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provider = provider
        self.credentials = credentials
        self.record_store = record_store
        self.ledger = ledger
        self.return_url = return_url
        self.cancel_url = cancel_url
        self.clock = clock

    def create_order(self, tier_tag, user_id: str) -> CreatedOrder:
        # Validation raises before any remote call
        tier = parse_tier(tier_tag)
        token = encode_correlation_token(user_id, tier)

        response = self._call_provider(
            lambda credential: self.provider.create_order(
                credential, tier_amount(tier), CURRENCY, token, self.return_url, self.cancel_url
            )
        )

        order_id = response.get("id")
        if not order_id:
            raise UpstreamCreateError("PayPal order response has no id", payload=response)

        logger.info("order_created", order_id=order_id, tier=tier.value)
        return CreatedOrder(order_id=order_id, approval_url=approval_url(response))

    def capture_order(self, order_id: str) -> CaptureResult:
        order = Order(order_id=order_id)
        previous = self._ledger_entry(order_id)
        if previous is not None and previous.state == OrderState.CANCELLED:
            logger.warning("capture_after_cancel", order_id=order_id)

        # Upstream errors propagate; nothing local has changed yet
        response = self._call_provider(lambda credential: self.provider.capture_order(credential, order_id))

        status = str(response.get("status") or "").upper()
        if status != COMPLETED:
            error = CaptureNotCompletedError(
                f"Order {order_id} capture status is {status or 'missing'}", payload=response
            )
            order = order.transition(OrderState.FAILED)
            logger.warning("capture_not_completed", order_id=order_id, status=status)
            self._note(order, error.message)
            return CaptureResult(status=order.state, order=order, error=error)

        token = correlation_token(response)
        if not token:
            return self._unrecorded(order, CorrelationTokenMissingError(
                f"Order {order_id} captured without a correlation token", order_id, payload=response
            ))

        try:
            user_id, tier = decode_correlation_token(token)
        except ValueError as e:
            return self._unrecorded(order, CorrelationTokenInvalidError(
                f"Order {order_id} correlation token {token!r} is invalid: {e}", order_id, payload=response
            ))

        record = PaymentRecord(
            user_id=user_id,
            tier=tier,
            order_id=order_id,
            completed_at=capture_time(response) or self.clock(),
        )
        order = Order(order_id=order_id, tier=tier, user_id=user_id)

        if previous is not None and previous.state == OrderState.CAPTURED:
            # Already recorded; a later order may own the user's record by now
            logger.info("capture_replayed", order_id=order_id, user_id=user_id)
            order = order.transition(OrderState.CAPTURED)
            return CaptureResult(status=order.state, order=order, record=record)

        try:
            self.record_store.write(user_id, record)
        except RecordWriteError as e:
            if e.payload is None:
                e.payload = response
            return self._unrecorded(order, e)

        order = order.transition(OrderState.CAPTURED)
        logger.info("order_captured", order_id=order_id, user_id=user_id, tier=tier.value)
        self._note(order)
        return CaptureResult(status=order.state, order=order, record=record)

    def cancel_order(self, order_id: str) -> CancelAck:
        entry = self.ledger.get(order_id) if self.ledger else None
        if entry is not None:
            logger.info("cancel_ignored", order_id=order_id, state=entry.state.value)
            return CancelAck(order_id=order_id, state=entry.state, cancelled=False)

        order = Order(order_id=order_id).transition(OrderState.CANCELLED)
        logger.info("order_cancelled", order_id=order_id)
        self._note(order)
        return CancelAck(order_id=order_id, state=order.state, cancelled=True)

    def get_order_status(self, order_id: str) -> LedgerEntry:
        entry = self.ledger.get(order_id) if self.ledger else None
        if entry is None:
            raise OrderNotFoundError(f"No recorded outcome for order {order_id}")
        return entry

    def list_unreconciled(self) -> List[LedgerEntry]:
        return self.ledger.unreconciled() if self.ledger else []

    def _call_provider(self, call: Callable[[AccessCredential], Dict[str, Any]]) -> Dict[str, Any]:
        credential = self.credentials.get_credential()
        try:
            return call(credential)
        except UpstreamError as e:
            if e.upstream_status != 401:
                raise
        # Token revoked before its expiry
        self.credentials.invalidate()
        return call(self.credentials.get_credential())

    def _ledger_entry(self, order_id: str) -> Optional[LedgerEntry]:
        if self.ledger is None:
            return None
        try:
            return self.ledger.get(order_id)
        except Exception:
            logger.exception("ledger_read_failed", order_id=order_id)
            return None

    def _unrecorded(self, order: Order, error: PostCaptureError) -> CaptureResult:
        order = order.transition(OrderState.CAPTURED_UNRECORDED)
        logger.error(
            "capture_unrecorded",
            order_id=order.order_id,
            error=error.code,
            detail=error.message,
            provider_payload=error.payload,
        )
        self._note(order, f"{error.code}: {error.message}")
        return CaptureResult(status=order.state, order=order, error=error)

    def _note(self, order: Order, detail: Optional[str] = None) -> None:
        if self.ledger is None:
            return
        try:
            self.ledger.record(order, detail)
        except Exception:
            logger.exception("ledger_write_failed", order_id=order.order_id, state=order.state.value)
