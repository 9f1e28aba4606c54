from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Dict, Optional

import requests
import structlog

from tier_checkout.config import (
    PAYPAL_CLIENT_ID, PAYPAL_CLIENT_SECRET, REMOTE_TIMEOUT_SECONDS, paypal_api_base
)
from tier_checkout.credentials import AccessCredential, utcnow
from tier_checkout.errors import (
    UpstreamAuthError, UpstreamAuthTimeoutError,
    UpstreamCaptureError, UpstreamCaptureTimeoutError,
    UpstreamCreateError, UpstreamCreateTimeoutError,
)

logger = structlog.get_logger(__name__)

ALREADY_CAPTURED = "ORDER_ALREADY_CAPTURED"


def _response_payload(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text[:500]


def _issues(payload: Any) -> set:
    if not isinstance(payload, dict):
        return set()
    return {str(d.get("issue")) for d in payload.get("details") or [] if isinstance(d, dict)}


class PayPalClient:
    def __init__(
        self,
        client_id: str = PAYPAL_CLIENT_ID,
        client_secret: str = PAYPAL_CLIENT_SECRET,
        base_url: Optional[str] = None,
        timeout: float = REMOTE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = (base_url or paypal_api_base()).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.executor = executor or ThreadPoolExecutor(max_workers=8, thread_name_prefix="paypal")

    def exchange_credentials(self) -> AccessCredential:
        if not (self.client_id and self.client_secret):
            raise UpstreamAuthError("PayPal not configured (missing client id/secret)")

        try:
            resp = self._send(
                self.session.post,
                f"{self.base_url}/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
            )
        except requests.Timeout as e:
            raise UpstreamAuthTimeoutError(f"PayPal token request timed out: {e}")
        except requests.RequestException as e:
            raise UpstreamAuthError(f"PayPal token request failed: {e}")

        payload = _response_payload(resp)
        if not resp.ok:
            raise UpstreamAuthError(
                f"PayPal rejected client credentials ({resp.status_code})",
                payload=payload,
                upstream_status=resp.status_code,
            )

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise UpstreamAuthError("PayPal token missing in response", payload=payload)

        return AccessCredential.from_ttl(token, float(payload.get("expires_in") or 0), utcnow())

    def create_order(
        self,
        credential: AccessCredential,
        amount: str,
        currency: str,
        correlation_token: str,
        return_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "amount": {"currency_code": currency, "value": amount},
                "custom_id": correlation_token,
            }],
            "application_context": {
                "return_url": return_url,
                "cancel_url": cancel_url,
                "user_action": "PAY_NOW",
            },
        }
        return self._request(
            "POST", "/v2/checkout/orders", credential,
            json=body,
            error_cls=UpstreamCreateError,
            timeout_cls=UpstreamCreateTimeoutError,
        )

    def capture_order(self, credential: AccessCredential, order_id: str) -> Dict[str, Any]:
        try:
            return self._request(
                "POST", f"/v2/checkout/orders/{order_id}/capture", credential,
                json={},
                # Same id on every retry, PayPal replays the original capture
                request_id=f"capture-{order_id}",
                error_cls=UpstreamCaptureError,
                timeout_cls=UpstreamCaptureTimeoutError,
            )
        except UpstreamCaptureError as e:
            if e.upstream_status == 422 and ALREADY_CAPTURED in _issues(e.payload):
                logger.info("order_already_captured", order_id=order_id)
                return self.get_order(credential, order_id)
            raise

    def get_order(self, credential: AccessCredential, order_id: str) -> Dict[str, Any]:
        return self._request(
            "GET", f"/v2/checkout/orders/{order_id}", credential,
            error_cls=UpstreamCaptureError,
            timeout_cls=UpstreamCaptureTimeoutError,
        )

    def _request(
        self,
        method: str,
        path: str,
        credential: AccessCredential,
        error_cls,
        timeout_cls,
        json: Optional[Dict[str, Any]] = None,
        request_id: str = "",
    ) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {credential.value}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id[:128]

        try:
            resp = self._send(
                self.session.request, method, f"{self.base_url}{path}", json=json, headers=headers
            )
        except requests.Timeout as e:
            raise timeout_cls(f"PayPal {method} {path} timed out: {e}")
        except requests.RequestException as e:
            raise error_cls(f"PayPal {method} {path} failed: {e}")

        payload = _response_payload(resp)
        if not resp.ok:
            raise error_cls(
                f"PayPal {method} {path} returned {resp.status_code}",
                payload=payload,
                upstream_status=resp.status_code,
            )
        if not isinstance(payload, dict):
            raise error_cls(f"PayPal {method} {path} returned a non-object body", payload=payload)
        return payload

    def _send(self, call, *args, **kwargs) -> requests.Response:
        # requests bounds connect and each read separately; this bounds the whole call
        future = self.executor.submit(call, *args, timeout=self.timeout, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise requests.Timeout(f"no complete response within {self.timeout}s")
