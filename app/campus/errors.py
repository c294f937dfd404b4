"""
Domain errors shared by the feature modules.

Services raise a subclass with a stable `code`; the app-level handler turns it into
a JSON body under /api/ and a flash + redirect everywhere else.
"""

from __future__ import annotations

# Codes that are not plain bad requests.
STATUS_BY_CODE = {
    "not_enrolled": 403,
    "course_inactive": 404,
    "event_inactive": 404,
    "invalid_code": 404,
    "not_found": 404,
    "duplicate_code": 409,
    "duplicate_slug": 409,
    "course_full": 409,
    "event_full": 409,
}


class DomainError(RuntimeError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE.get(self.code, 400)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}
