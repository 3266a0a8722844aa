# relief_app/core/errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from fastapi import HTTPException


class LifecycleError(Exception):
    """
    Base for every typed rejection raised by the case lifecycle.
    Subclasses also derive from the builtin they refine so callers
    that only know `ValueError` / `PermissionError` keep working.
    """

    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Dict[str, Any]:
        return {"message": self.message, "kind": type(self).__name__}


class ValidationError(LifecycleError, ValueError):
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_detail(self) -> Dict[str, Any]:
        d = super().to_detail()
        if self.errors:
            d["errors"] = self.errors
        return d


class IncompleteSubmissionError(ValidationError):
    def __init__(self, missing_fields: Sequence[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            "Please complete all required fields before submitting",
            errors=[{"field": f, "message": "required"} for f in self.missing_fields],
        )

    def to_detail(self) -> Dict[str, Any]:
        d = super().to_detail()
        d["missingFields"] = self.missing_fields
        return d


class MissingApprovalFieldsError(ValidationError):
    def __init__(self, missing_fields: Sequence[str], message: Optional[str] = None):
        self.missing_fields = list(missing_fields)
        super().__init__(
            message
            or "For approved cases, provide final damage percentage and estimated cost",
            errors=[{"field": f, "message": "required for approval"} for f in self.missing_fields],
        )

    def to_detail(self) -> Dict[str, Any]:
        d = super().to_detail()
        d["missingFields"] = self.missing_fields
        return d


class InvalidStateError(LifecycleError, ValueError):
    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status

    def to_detail(self) -> Dict[str, Any]:
        d = super().to_detail()
        if self.current_status is not None:
            d["currentStatus"] = self.current_status
        return d


class NotFoundError(LifecycleError, LookupError):
    status_code = 404


class AccessDeniedError(LifecycleError, PermissionError):
    status_code = 403


class ConflictError(LifecycleError):
    """Duplicate case id on insert, or a stale version on save."""

    status_code = 409


def to_http_exception(exc: LifecycleError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
