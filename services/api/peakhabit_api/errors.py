from __future__ import annotations

from typing import Any


class PeakHabitError(Exception):
    """Base for every domain failure an operation can surface to a caller."""

    code: str = "error"
    status_code: int = 400

    def __init__(
        self,
        code: str | None = None,
        *,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if code:
            self.code = str(code)
        self.message = message or self.code
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            out["details"] = dict(self.details)
        return out


class DuplicateCompletion(PeakHabitError):
    code = "already_completed"
    status_code = 409


class InsufficientBalance(PeakHabitError):
    status_code = 400

    def __init__(self, resource: str = "gold", *, required: int, available: int) -> None:
        super().__init__(
            f"insufficient_{resource}",
            details={"required": int(required), "available": int(available)},
        )


class NotAuthorized(PeakHabitError):
    code = "not_authorized"
    status_code = 403


class ResourceNotFound(PeakHabitError):
    status_code = 404

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        details = {"id": str(resource_id)} if resource_id is not None else None
        super().__init__(f"{resource}_not_found", details=details)


class InvalidAction(PeakHabitError):
    status_code = 400


class StorageUnavailable(PeakHabitError):
    code = "storage_unavailable"
    status_code = 503
