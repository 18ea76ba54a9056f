"""Error types raised by the hierarchy analytics core."""

from __future__ import annotations

from enum import Enum
from typing import Any

from src.infra.result import Error


class AnalyticsErrorCode(str, Enum):
    """Error codes for analytics operations.

    Naming: ANALYTICS_<CATEGORY>_<DETAIL>
    """

    ANALYTICS_BUILD_MALFORMED_RECORD = "ANALYTICS_BUILD_MALFORMED_RECORD"
    ANALYTICS_GATEWAY_FAILURE = "ANALYTICS_GATEWAY_FAILURE"
    ANALYTICS_SERVICE_FAILURE = "ANALYTICS_SERVICE_FAILURE"
    ANALYTICS_INVALID_ARGUMENT = "ANALYTICS_INVALID_ARGUMENT"


class AnalyticsError(Error):
    """Base class for analytics errors."""

    error_code: AnalyticsErrorCode = AnalyticsErrorCode.ANALYTICS_SERVICE_FAILURE

    def __init__(
        self, message: str, *, error_code: AnalyticsErrorCode | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        if error_code is not None:
            self.error_code = error_code

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["error_code"] = self.error_code.value
        return payload


class BuildError(AnalyticsError):
    """Gateway rows could not be turned into a hierarchy tree."""

    error_code = AnalyticsErrorCode.ANALYTICS_BUILD_MALFORMED_RECORD

    def __init__(self, message: str, *, path: str | None = None, **kwargs: Any) -> None:
        context = dict(kwargs.pop("context", None) or {})
        if path is not None:
            context.setdefault("path", path)
        super().__init__(message, context=context, **kwargs)
        self.path = path


class GatewayError(AnalyticsError):
    """Opaque failure reported by the raw data gateway."""

    error_code = AnalyticsErrorCode.ANALYTICS_GATEWAY_FAILURE


class ServiceError(AnalyticsError):
    """The single error type public service operations raise.

    ``operation`` names the public call that failed; ``cause`` keeps the
    original ``BuildError`` / ``GatewayError`` / unexpected exception.
    """

    error_code = AnalyticsErrorCode.ANALYTICS_SERVICE_FAILURE

    def __init__(self, message: str, *, operation: str, **kwargs: Any) -> None:
        context = dict(kwargs.pop("context", None) or {})
        context.setdefault("operation", operation)
        super().__init__(message, context=context, **kwargs)
        self.operation = operation


__all__ = [
    "AnalyticsError",
    "AnalyticsErrorCode",
    "BuildError",
    "GatewayError",
    "ServiceError",
]
