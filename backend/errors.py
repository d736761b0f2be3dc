from typing import Any


class AttendanceError(Exception):
    """Base class for every rejection the scheduling/attendance core can raise."""

    status_code = 400
    kind = "error"

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "kind": self.kind,
        }
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(AttendanceError):
    kind = "validation"


class NotFoundError(AttendanceError):
    status_code = 404
    kind = "not_found"


class ForbiddenError(AttendanceError):
    status_code = 403
    kind = "forbidden"


class StateError(AttendanceError):
    kind = "state"


class TimingError(AttendanceError):
    kind = "timing"


class ConflictError(AttendanceError):
    status_code = 409
    kind = "conflict"

    def __init__(
        self,
        message: str,
        *,
        conflict_kind: str,
        field: str | None = None,
        classroom_name: str | None = None,
    ):
        super().__init__(message, field=field)
        self.conflict_kind = conflict_kind
        self.classroom_name = classroom_name

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["conflict_type"] = self.conflict_kind
        if self.classroom_name:
            payload["classroom_name"] = self.classroom_name
        return payload
