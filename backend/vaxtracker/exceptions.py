class VaxTrackerError(Exception):
    """Base class for errors surfaced to dashboard users."""

    kind = "Error"
    status_code = 500

    def __init__(self, reason: str, details: dict = None):
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)


class ValidationError(VaxTrackerError):
    kind = "ValidationError"
    status_code = 422

    def __init__(self, reason: str, field: str = None):
        super().__init__(reason, {"field": field} if field else None)
        self.field = field


class AccessDenied(VaxTrackerError):
    kind = "AccessDenied"
    status_code = 403


class NotFound(VaxTrackerError):
    kind = "NotFound"
    status_code = 404


class TransientStoreError(VaxTrackerError):
    kind = "TransientStoreError"
    status_code = 503


class NotAuthenticated(VaxTrackerError):
    kind = "NotAuthenticated"
    status_code = 401


class DashboardNotReady(VaxTrackerError):
    kind = "DashboardNotReady"
    status_code = 409
