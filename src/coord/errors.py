"""Error taxonomy for generation calls.

Generation failures are reported through ``StreamContent.error`` rather
than raised into the segment consumer.  Misuse of the API (reading final
fields early, asking for an unregistered provider) raises immediately.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base class for generation failures."""


class UnknownError(LLMError):
    pass


class NoResponseError(LLMError):
    pass


class InvalidRequestError(LLMError):
    pass


class InvalidResponseError(LLMError):
    """The provider broke its own protocol (e.g. a non-sequential block index)."""


class ResponseDecodeError(InvalidResponseError):
    """A structured field in the response could not be decoded."""


class AuthenticationError(LLMError):
    pass


class PermissionDeniedError(LLMError):
    pass


class NotFoundError(LLMError):
    pass


class RateLimitError(LLMError):
    pass


class OverloadedError(LLMError):
    pass


class InternalServerError(LLMError):
    pass


class StreamCancelledError(LLMError):
    """The caller cancelled the generation."""


class StreamNotFinishedError(RuntimeError):
    """A final field of a ``StreamContent`` was read before the stream closed."""


class ProviderNotFoundError(KeyError):
    """No provider is registered under the requested name."""


# ---------------------------------------------------------------------------
# Vendor mappings
# ---------------------------------------------------------------------------

_BY_STATUS: dict[int, type[LLMError]] = {
    400: InvalidRequestError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    429: RateLimitError,
    500: InternalServerError,
    502: InternalServerError,
    503: OverloadedError,
    504: InternalServerError,
    529: OverloadedError,
}

_BY_TYPE: dict[str, type[LLMError]] = {
    "invalid_request_error": InvalidRequestError,
    "authentication_error": AuthenticationError,
    "permission_error": PermissionDeniedError,
    "not_found_error": NotFoundError,
    "rate_limit_error": RateLimitError,
    "api_error": InternalServerError,
    "overloaded_error": OverloadedError,
}


def error_for_status(status_code: int, message: str = "") -> LLMError:
    """Map an HTTP status code to an error instance."""
    cls = _BY_STATUS.get(status_code, UnknownError)
    return cls(message or f"HTTP {status_code}")


def error_for_type(error_type: str, message: str = "") -> LLMError:
    """Map a vendor error ``type`` string to an error instance."""
    cls = _BY_TYPE.get(error_type, UnknownError)
    return cls(message or error_type or "unknown error")
