# loan_errors.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional


class LoanDashboardError(Exception):
    """Base for every failure the dashboard reports to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(LoanDashboardError):
    pass


class DataFetchError(LoanDashboardError):
    pass


class WriteError(LoanDashboardError):
    pass


class ValidationError(LoanDashboardError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def provider_message(exc: Exception) -> str:
    # supabase auth/postgrest errors carry a .message; fall back to str()
    msg = getattr(exc, "message", None)
    return str(msg) if msg else (str(exc) or exc.__class__.__name__)


@dataclass(frozen=True)
class Result:
    """Outcome of a backend call: either a value or an error, never both."""

    ok: bool
    value: Any = None
    error: Optional[LoanDashboardError] = None
    info: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None, info: Optional[str] = None) -> "Result":
        return cls(ok=True, value=value, info=info)

    @classmethod
    def failure(cls, error: LoanDashboardError) -> "Result":
        return cls(ok=False, error=error)

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error.message
        return self.info or ""
