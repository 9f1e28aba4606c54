from typing import Any, Optional


class PaymentError(Exception):
    """Base exception for the order lifecycle"""

    status_code = 500
    code = "payment_error"

    def __init__(self, message: str, payload: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload


# Client input (400)

class ClientInputError(PaymentError):
    status_code = 400
    code = "invalid_request"


class InvalidTierError(ClientInputError):
    code = "invalid_tier"


class MissingUserError(ClientInputError):
    code = "missing_user"


class InvalidUserError(ClientInputError):
    """User id cannot be carried in a correlation token"""
    code = "invalid_user"


# Upstream (5xx, retryable)

class UpstreamError(PaymentError):
    status_code = 502
    code = "upstream_error"

    def __init__(self, message: str, payload: Optional[Any] = None, upstream_status: Optional[int] = None):
        super().__init__(message, payload)
        self.upstream_status = upstream_status


class UpstreamAuthError(UpstreamError):
    code = "upstream_auth_failed"


class UpstreamCreateError(UpstreamError):
    code = "upstream_create_failed"


class UpstreamCaptureError(UpstreamError):
    code = "upstream_capture_failed"


class UpstreamAuthTimeoutError(UpstreamAuthError):
    status_code = 504
    code = "upstream_auth_timeout"


class UpstreamCreateTimeoutError(UpstreamCreateError):
    status_code = 504
    code = "upstream_create_timeout"


class UpstreamCaptureTimeoutError(UpstreamCaptureError):
    status_code = 504
    code = "upstream_capture_timeout"


# Capture outcomes (carried in CaptureResult)

class CaptureNotCompletedError(PaymentError):
    status_code = 400
    code = "capture_not_completed"


class PostCaptureError(PaymentError):
    """Payment captured upstream but not recorded locally"""

    code = "captured_unrecorded"

    def __init__(self, message: str, order_id: str, payload: Optional[Any] = None):
        super().__init__(message, payload)
        self.order_id = order_id


class CorrelationTokenMissingError(PostCaptureError):
    code = "correlation_token_missing"


class CorrelationTokenInvalidError(PostCaptureError):
    code = "correlation_token_invalid"


class RecordWriteError(PostCaptureError):
    code = "record_write_failed"


class RecordWriteTimeoutError(RecordWriteError):
    code = "record_write_timeout"


# Local state

class InvalidTransitionError(PaymentError):
    status_code = 409
    code = "invalid_transition"


class OrderNotFoundError(PaymentError):
    status_code = 404
    code = "order_not_found"
