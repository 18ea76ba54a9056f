"""Result values and the error hierarchy shared by gateways and services.

Gateways never raise: ``async_returns_result`` turns their exceptions into
``Err(DatabaseError)`` values. Services decide what a failure means.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Mapping,
    ParamSpec,
    TypeVar,
    Union,
    cast,
)

import structlog

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")
E = TypeVar("E")
P = ParamSpec("P")

REDACTED = "***redacted***"

# substring match, case-insensitive
_CREDENTIAL_MARKERS: tuple[str, ...] = (
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "dsn",
)


def _looks_like_credential(key: object) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in _CREDENTIAL_MARKERS)


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        mapping = cast(Mapping[str, Any], value)
        return {
            key: REDACTED if _looks_like_credential(key) else _redact(inner)
            for key, inner in mapping.items()
        }
    return value


class Error(Exception):
    """Base error: a message, free-form context and the exception that caused it."""

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})
        self.cause: BaseException | None = cause

    def __str__(self) -> str:  # pragma: no cover - delegates to message
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
            "cause": None if self.cause is None else repr(self.cause),
        }

    def log_safe_context(self) -> dict[str, Any]:
        """Context with credential-like keys redacted at any nesting depth."""
        return cast(dict[str, Any], _redact(self.context))


class DatabaseError(Error):
    """The data store or its driver failed."""


class QueryTimeoutError(DatabaseError):
    """A query exceeded the statement or acquisition timeout."""


@dataclass(slots=True)
class Ok(Generic[T, E]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> E:
        raise RuntimeError("unwrap_err() called on Ok")


@dataclass(slots=True)
class Err(Generic[T, E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        raise RuntimeError(f"unwrap() called on Err: {self.error!r}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T, E], Err[T, E]]


def _error_type_for(
    exc: Exception,
    default: type[Error],
    exception_map: Mapping[type[Exception], type[Error]] | None,
) -> type[Error]:
    for exc_type, error_type in (exception_map or {}).items():
        if isinstance(exc, exc_type):
            return error_type
    return default


def async_returns_result(
    error_type: type[Error] = Error,
    *,
    exception_map: Mapping[type[Exception], type[Error]] | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[Result[T, Error]]]]:
    """Make a raising coroutine function return ``Ok(value)`` or ``Err(error)``.

    Returned ``Ok`` / ``Err`` values pass through untouched. Exceptions are
    converted to ``error_type`` (or the first matching ``exception_map``
    entry) with the exception kept as ``cause``, and logged.
    """

    def decorator(
        func: Callable[P, Awaitable[T]],
    ) -> Callable[P, Awaitable[Result[T, Error]]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> Result[T, Error]:
            try:
                value = await func(*args, **kwargs)
            except Exception as exc:
                error = _error_type_for(exc, error_type, exception_map)(str(exc), cause=exc)
                LOGGER.error(
                    "result.call.failed",
                    function=func.__qualname__,
                    error_type=type(error).__name__,
                    error=error.message,
                    context=error.log_safe_context(),
                )
                return Err(error)
            if isinstance(value, (Ok, Err)):
                return cast(Result[T, Error], value)
            return Ok(value)

        return wrapper

    return decorator


__all__ = [
    "DatabaseError",
    "Err",
    "Error",
    "Ok",
    "QueryTimeoutError",
    "Result",
    "async_returns_result",
]
