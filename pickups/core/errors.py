"""Error taxonomy for booking retrieval and reconciliation.

Capacity violations are not exceptions: assignment operations return
``AssignmentResult(ok=False, reason=CAPACITY_EXCEEDED)`` instead.
"""

CAPACITY_EXCEEDED = "capacity_exceeded"
BOOKING_NOT_FOUND = "booking_not_found"


class PickupError(RuntimeError):
    pass


class CredentialsUnavailable(PickupError):
    """Bokun access/secret key missing; raised before any network call."""


class UpstreamApiError(PickupError):
    def __init__(self, status_code: int | None, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Bokun {status_code}: {message}" if status_code else f"Bokun: {message}")


class UpstreamAuthError(UpstreamApiError):
    pass


class MalformedRecord(PickupError):
    def __init__(self, record_id: str | None, reason: str):
        self.record_id = record_id
        super().__init__(f"malformed booking record {record_id or '?'}: {reason}")


class OverrideLoadFailure(PickupError):
    def __init__(self, kind: str, cause: BaseException | None = None):
        self.kind = kind
        self.cause = cause
        super().__init__(f"failed to load {kind} overrides: {cause}")
