from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from tier_checkout.errors import InvalidTransitionError, PaymentError
from tier_checkout.tiers import PriceTier


class OrderState(str, Enum):
    CREATED = "created"
    CAPTURED = "captured"
    FAILED = "failed"
    CANCELLED = "cancelled"
    CAPTURED_UNRECORDED = "captured_unrecorded"


TRANSITIONS = {
    OrderState.CREATED: {
        OrderState.CAPTURED,
        OrderState.FAILED,
        OrderState.CANCELLED,
        OrderState.CAPTURED_UNRECORDED,
    },
}


@dataclass(frozen=True)
class Order:
    order_id: str
    state: OrderState = OrderState.CREATED
    tier: Optional[PriceTier] = None
    user_id: Optional[str] = None

    def transition(self, state: OrderState, **changes) -> "Order":
        if state not in TRANSITIONS.get(self.state, set()):
            raise InvalidTransitionError(
                f"Order {self.order_id} cannot move from {self.state.value} to {state.value}"
            )
        return replace(self, state=state, **changes)

    @property
    def is_terminal(self) -> bool:
        return self.state != OrderState.CREATED


@dataclass(frozen=True)
class PaymentRecord:
    user_id: str
    tier: PriceTier
    order_id: str
    completed_at: datetime


@dataclass(frozen=True)
class CreatedOrder:
    order_id: str
    approval_url: Optional[str]
    state: OrderState = OrderState.CREATED


@dataclass(frozen=True)
class CaptureResult:
    # captured_unrecorded: PayPal moved the money but no record exists locally
    status: OrderState
    order: Order
    record: Optional[PaymentRecord] = None
    error: Optional[PaymentError] = None

    @property
    def reconciliation_required(self) -> bool:
        return self.status == OrderState.CAPTURED_UNRECORDED


@dataclass(frozen=True)
class CancelAck:
    order_id: str
    state: OrderState
    cancelled: bool
