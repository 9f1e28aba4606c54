from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tier_checkout.auth import verify_token
from tier_checkout.credentials import CredentialCache
from tier_checkout.ledger import LedgerEntry, OrderLedger
from tier_checkout.lifecycle import OrderLifecycleManager
from tier_checkout.orders import CaptureResult, OrderState, PaymentRecord
from tier_checkout.paypal_client import PayPalClient
from tier_checkout.record_store import SqlRecordStore

router = APIRouter()


@lru_cache()
def get_manager() -> OrderLifecycleManager:
    provider = PayPalClient()
    return OrderLifecycleManager(
        provider=provider,
        credentials=CredentialCache(provider),
        record_store=SqlRecordStore(),
        ledger=OrderLedger(),
    )


class CreateOrderRequest(BaseModel):
    # Optional so the lifecycle, not the schema, reports which field is wrong
    tier: Optional[str] = None
    user_id: Optional[str] = None


CAPTURE_STATUS_CODES = {
    OrderState.CAPTURED: 200,
    OrderState.FAILED: 400,
    OrderState.CAPTURED_UNRECORDED: 202,
}


def record_json(record: PaymentRecord) -> dict:
    return {
        "user_id": record.user_id,
        "tier": record.tier.value,
        "order_id": record.order_id,
        "completed_at": record.completed_at.isoformat(),
    }


def ledger_json(entry: LedgerEntry) -> dict:
    return {
        "order_id": entry.order_id,
        "status": entry.state.value,
        "user_id": entry.user_id,
        "tier": entry.tier,
        "detail": entry.detail,
        "updated_at": entry.updated_at.isoformat() if entry.updated_at else None,
    }


def capture_json(result: CaptureResult) -> dict:
    body = {
        "order_id": result.order.order_id,
        "status": result.status.value,
        "reconciliation_required": result.reconciliation_required,
    }
    if result.record is not None:
        body["record"] = record_json(result.record)
    if result.error is not None:
        body["error"] = result.error.code
        body["detail"] = result.error.message
    return body


@router.get("/")
def root():
    return {"service": "tier-checkout", "status": "ok"}


@router.post("/orders")
def create_order_api(
    request: CreateOrderRequest,
    manager: OrderLifecycleManager = Depends(get_manager),
    auth=Depends(verify_token)
):
    created = manager.create_order(request.tier, request.user_id)
    return {
        "order_id": created.order_id,
        "approval_url": created.approval_url,
        "status": created.state.value,
    }


@router.post("/orders/{order_id}/capture")
def capture_order_api(
    order_id: str,
    manager: OrderLifecycleManager = Depends(get_manager),
    auth=Depends(verify_token)
):
    result = manager.capture_order(order_id)
    return JSONResponse(status_code=CAPTURE_STATUS_CODES[result.status], content=capture_json(result))


@router.post("/orders/{order_id}/cancel")
def cancel_order_api(
    order_id: str,
    manager: OrderLifecycleManager = Depends(get_manager),
    auth=Depends(verify_token)
):
    ack = manager.cancel_order(order_id)
    return {"order_id": ack.order_id, "status": ack.state.value, "cancelled": ack.cancelled}


@router.get("/orders/{order_id}")
def order_status_api(
    order_id: str,
    manager: OrderLifecycleManager = Depends(get_manager),
    auth=Depends(verify_token)
):
    return ledger_json(manager.get_order_status(order_id))


@router.get("/reconciliation")
def reconciliation_api(
    manager: OrderLifecycleManager = Depends(get_manager),
    auth=Depends(verify_token)
):
    return {"orders": [ledger_json(e) for e in manager.list_unreconciled()]}
