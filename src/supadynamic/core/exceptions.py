"""supa-dynamic Exception Hierarchy.

This module defines the structured exception hierarchy for supa-dynamic.
All custom exceptions inherit from SupaDynamicError, enabling consistent
error handling across the codebase.

Exception Categories:
- Caller/config errors → InvalidArgument, ConfigurationError (never retried)
- Per-attempt failures → TransportError (retried by the dispatcher)
- Terminal failures → RetryExhausted, PermissionDenied

Usage:
    from supadynamic.core.exceptions import InvalidArgument, RetryExhausted

    # Validation errors surface before any network activity
    raise InvalidArgument(argument="headers", reason="must be a JSON object")

    # Exhaustion wraps the last per-attempt failure
    raise RetryExhausted(
        url="https://api.example.com/fn",
        attempts=3,
        max_retries=2,
        last_error=last_error,
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from supadynamic.http.requester import ResponseEnvelope


class SupaDynamicError(Exception):
    """Base exception for all supa-dynamic errors.

    All custom exceptions in supa-dynamic inherit from this class,
    enabling consistent catch-all error handling.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: Optional[str] = None) -> None:
        """Initialize SupaDynamicError.

        Args:
            message: Optional custom message. Defaults to a generic message.
        """
        self.message = message or "A supa-dynamic error occurred."
        super().__init__(self.message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context dictionary for structured logging.

        Returns:
            dict: Key-value pairs of exception context.
        """
        return {}

    def __repr__(self) -> str:
        """Return debug representation."""
        return f"{self.__class__.__name__}({self.message!r})"


class InvalidArgument(SupaDynamicError):
    """Dispatch argument has the wrong shape or is misconfigured.

    Raised during validation, before any network call is made.
    Invalid arguments are never retried.

    Attributes:
        argument: Name of the offending argument.
        reason: Why the argument was rejected.
    """

    def __init__(
        self,
        argument: str,
        reason: str,
        message: Optional[str] = None,
    ) -> None:
        """Initialize InvalidArgument.

        Args:
            argument: Name of the offending argument.
            reason: Why the argument was rejected.
            message: Optional custom message.
        """
        self.argument = argument
        self.reason = reason

        if message is None:
            message = f"Invalid {argument} parameter: {reason}"

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for invalid argument."""
        return {
            "argument": self.argument,
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        """Return debug representation with attributes."""
        return (
            f"InvalidArgument(argument={self.argument!r}, "
            f"reason={self.reason!r})"
        )


class TransportError(SupaDynamicError):
    """A single HTTP attempt could not be completed.

    Raised by the single-shot requester when the network layer fails
    (DNS, connection refused, timeout). The dispatcher retries these.

    Attributes:
        method: HTTP method of the failed attempt.
        url: Target URL of the failed attempt.
        reason: Description of the failure.
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        method: str,
        url: str,
        reason: str,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
    ) -> None:
        """Initialize TransportError.

        Args:
            method: HTTP method.
            url: Target URL.
            reason: Description of the failure.
            cause: Underlying exception.
            message: Optional custom message.
        """
        self.method = method
        self.url = url
        self.reason = reason
        self.cause = cause

        if message is None:
            message = f"{method} {url} failed: {reason}"

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for transport error."""
        return {
            "method": self.method,
            "url": self.url,
            "reason": self.reason,
            "cause": type(self.cause).__name__ if self.cause else None,
        }

    def __repr__(self) -> str:
        """Return debug representation with attributes."""
        return (
            f"TransportError(method={self.method!r}, url={self.url!r}, "
            f"reason={self.reason!r})"
        )


class ServerErrorResponse(TransportError):
    """Attempt completed but the server answered with a 5xx status.

    Attributes:
        envelope: The response envelope returned by the server.
    """

    def __init__(
        self,
        method: str,
        url: str,
        envelope: "ResponseEnvelope",
        message: Optional[str] = None,
    ) -> None:
        """Initialize ServerErrorResponse.

        Args:
            method: HTTP method.
            url: Target URL.
            envelope: Envelope carrying the 5xx status and body.
            message: Optional custom message.
        """
        self.envelope = envelope
        super().__init__(
            method,
            url,
            reason=f"server error status {envelope.status_code}",
            message=message,
        )

    @property
    def context(self) -> dict[str, Any]:
        """Return context for server error response."""
        ctx = super().context
        ctx["status_code"] = self.envelope.status_code
        return ctx

    def __repr__(self) -> str:
        """Return debug representation with attributes."""
        return (
            f"ServerErrorResponse(method={self.method!r}, url={self.url!r}, "
            f"status_code={self.envelope.status_code!r})"
        )


class RetryExhausted(SupaDynamicError):
    """Every permitted attempt failed.

    Terminal dispatch failure. Wraps the last per-attempt error.

    Attributes:
        url: Target URL.
        attempts: Number of attempts performed.
        max_retries: Configured retry limit.
        last_error: The error from the final attempt.
    """

    def __init__(
        self,
        url: str,
        attempts: int,
        max_retries: int,
        last_error: TransportError,
        message: Optional[str] = None,
    ) -> None:
        """Initialize RetryExhausted.

        Args:
            url: Target URL.
            attempts: Number of attempts performed.
            max_retries: Configured retry limit.
            last_error: The error from the final attempt.
            message: Optional custom message.
        """
        self.url = url
        self.attempts = attempts
        self.max_retries = max_retries
        self.last_error = last_error

        if message is None:
            message = (
                f"HTTP request failed after {max_retries} retries "
                f"({attempts} attempts): {last_error.message}"
            )

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for retry exhaustion."""
        return {
            "url": self.url,
            "attempts": self.attempts,
            "max_retries": self.max_retries,
            "last_error": self.last_error.message,
        }

    def __repr__(self) -> str:
        """Return debug representation with attributes."""
        return (
            f"RetryExhausted(url={self.url!r}, attempts={self.attempts!r}, "
            f"last_error={self.last_error!r})"
        )


class PermissionDenied(SupaDynamicError):
    """Caller identity is not allowed to read secrets.

    Attributes:
        identity: Description of the rejected identity.
    """

    def __init__(
        self,
        identity: str,
        message: Optional[str] = None,
    ) -> None:
        """Initialize PermissionDenied.

        Args:
            identity: Description of the rejected identity.
            message: Optional custom message.
        """
        self.identity = identity

        if message is None:
            message = (
                "Access denied: only privileged service roles or "
                f"administrative users can read secrets (got {identity})."
            )

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for permission denial."""
        return {"identity": self.identity}

    def __repr__(self) -> str:
        """Return debug representation with attributes."""
        return f"PermissionDenied(identity={self.identity!r})"


class ConfigurationError(SupaDynamicError):
    """Configuration file or value is invalid.

    Raised when YAML configuration cannot be parsed or
    contains invalid values.

    Attributes:
        config_path: Path to the configuration file.
        key: The configuration key that caused the error.
        expected_type: The expected type for the value.
    """

    def __init__(
        self,
        config_path: str,
        key: Optional[str] = None,
        expected_type: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        """Initialize ConfigurationError.

        Args:
            config_path: Path to the config file.
            key: Optional key that caused the error.
            expected_type: Optional expected type.
            message: Optional custom message.
        """
        self.config_path = config_path
        self.key = key
        self.expected_type = expected_type

        if message is None:
            key_info = f" key '{key}'" if key else ""
            type_info = f" (expected {expected_type})" if expected_type else ""
            message = f"Configuration error in '{config_path}'{key_info}{type_info}."

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for configuration error."""
        return {
            "config_path": self.config_path,
            "key": self.key,
            "expected_type": self.expected_type,
        }

    def __repr__(self) -> str:
        """Return debug representation with attributes."""
        return (
            f"ConfigurationError(config_path={self.config_path!r}, "
            f"key={self.key!r}, expected_type={self.expected_type!r})"
        )


class DecryptionError(SupaDynamicError):
    """Decryption operation failed.

    Raised when AES-GCM decryption fails due to wrong key,
    tampered ciphertext, or invalid nonce.

    Attributes:
        reason: Description of why decryption failed.
    """

    def __init__(
        self,
        reason: str | None = None,
        message: str | None = None,
    ) -> None:
        self.reason = reason

        if message is None:
            if reason:
                message = f"Decryption failed: {reason}"
            else:
                message = "Decryption failed - authentication or key error."

        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Return context for decryption error."""
        return {"reason": self.reason}

    def __repr__(self) -> str:
        """Return debug representation with attributes."""
        return f"DecryptionError(reason={self.reason!r})"


# === Vault Exceptions ===


class SecretAlreadyExists(SupaDynamicError):
    """A secret with this name is already stored."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        if message is None:
            message = f"Secret already exists: {name}"
        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        return {"name": self.name}


class SecretNotFound(SupaDynamicError):
    """No secret with this name is stored."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        if message is None:
            message = f"Secret not found: {name}"
        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        return {"name": self.name}
