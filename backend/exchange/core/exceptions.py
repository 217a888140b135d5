"""
Domain Exceptions
Exchange Trading Platform

Every failure an engine reports to a caller is an ExchangeError carrying a
stable string code. The API layer forwards `to_response()` verbatim.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Error categories."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    DATA_FEED = "data_feed"
    DATABASE = "database"


class ExchangeError(Exception):
    """Base class for errors surfaced to members and operators."""

    category: ErrorCategory = ErrorCategory.BUSINESS_RULE

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        self.message = message or code
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        return {"status": False, "error": self.code}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r})"


class ValidationError(ExchangeError):
    """Malformed or out-of-range input."""
    category = ErrorCategory.VALIDATION


class BusinessRuleError(ExchangeError):
    """Well-formed input rejected by a trading rule."""
    category = ErrorCategory.BUSINESS_RULE


class NotFoundError(ExchangeError):
    """Referenced asset, member or trade does not exist."""
    category = ErrorCategory.NOT_FOUND


class FeedError(ExchangeError):
    """Upstream price could not be obtained."""
    category = ErrorCategory.DATA_FEED

    def __init__(self, message: Optional[str] = None, code: str = "FEED_UNAVAILABLE"):
        super().__init__(code, message)


class PersistenceError(ExchangeError):
    """Storage failed; the caller may retry the whole operation."""
    category = ErrorCategory.DATABASE

    def __init__(self, message: Optional[str] = None):
        super().__init__("TRY_AGAIN", message)


__all__ = [
    "ErrorCategory",
    "ExchangeError",
    "ValidationError",
    "BusinessRuleError",
    "NotFoundError",
    "FeedError",
    "PersistenceError",
]
