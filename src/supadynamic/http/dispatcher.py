"""Retrying HTTP dispatcher.

Wraps a single-shot requester with a bounded retry loop: a fixed delay
table between attempts, ``x-region`` header rotation, and success
classification on ``status_code < 500``. 4xx responses are returned as
successes; only 5xx responses and transport failures are retried.

Usage:
    from supadynamic.http.dispatcher import dispatch

    envelope = dispatch(
        "https://api.example.com/fn",
        payload={"id": 1},
        max_retries=2,
        allowed_regions=["us-east-1", "eu-west-1"],
    )
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence

import structlog

from supadynamic.core.config import Settings, get_settings
from supadynamic.core.exceptions import (
    InvalidArgument,
    RetryExhausted,
    ServerErrorResponse,
    TransportError,
)
from supadynamic.http.requester import (
    AttemptOutcome,
    ClientConfig,
    ResponseEnvelope,
    SingleShotRequester,
    encode_payload,
)
from supadynamic.http.retry import DelaySchedule, RetryPolicy
from supadynamic.protocols import RequesterProtocol

log = structlog.get_logger()

REGION_HEADER = "x-region"
REDACTED = "[REDACTED]"

DEFAULT_HEADERS: Mapping[str, str] = MappingProxyType({"Content-Type": "application/json"})
_EMPTY: Mapping[str, Any] = MappingProxyType({})
DEFAULT_REDACTED_HEADERS: tuple[str, ...] = ("authorization", "apikey", "x-api-key")


@dataclass
class RequestSpec:
    """Inputs for one dispatch call."""

    url: str
    method: str = "POST"
    headers: Any = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    params: Any = field(default_factory=dict)
    payload: Any = field(default_factory=dict)
    timeout_ms: int = 5000
    max_retries: int = 0
    allowed_regions: Optional[Sequence[str]] = None


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _require_object(argument: str, value: Any) -> None:
    if not isinstance(value, Mapping):
        raise InvalidArgument(argument, f"expected a JSON object, got {_json_type(value)}")
    if not all(isinstance(k, str) for k in value):
        raise InvalidArgument(argument, "object keys must be strings")


def redact_headers(headers: Mapping[str, Any], redacted: Sequence[str]) -> dict[str, Any]:
    """Copy of ``headers`` with sensitive values masked for logging."""
    names = {h.lower() for h in redacted}
    return {k: (REDACTED if k.lower() in names else v) for k, v in headers.items()}


class RetryingDispatcher:
    """Retry loop around a single-shot requester.

    Each ``dispatch`` call is self-contained: the region cursor and all
    attempt state live on the stack, so one instance may be shared across
    threads.
    """

    def __init__(
        self,
        requester: Optional[RequesterProtocol] = None,
        schedule: Optional[DelaySchedule] = None,
        sleep: Callable[[float], None] = time.sleep,
        redacted_headers: Sequence[str] = DEFAULT_REDACTED_HEADERS,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            requester: One-attempt requester. Defaults to SingleShotRequester.
            schedule: Delay table indexed by attempt number.
            sleep: Blocking sleep function (injectable for tests).
            redacted_headers: Header names masked in attempt traces.
        """
        self._requester = requester or SingleShotRequester()
        self._schedule = schedule or DelaySchedule()
        self._sleep = sleep
        self._redacted = tuple(redacted_headers)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "RetryingDispatcher":
        """Build a dispatcher from the ``dispatch`` settings section."""
        cfg = (settings or get_settings()).dispatch
        kwargs.setdefault(
            "requester", SingleShotRequester(ClientConfig(timeout_ms=cfg.timeout_ms))
        )
        kwargs.setdefault("schedule", DelaySchedule(cfg.delay_schedule))
        kwargs.setdefault("redacted_headers", cfg.redacted_headers)
        return cls(**kwargs)

    @property
    def schedule(self) -> DelaySchedule:
        return self._schedule

    def validate(self, spec: RequestSpec) -> RetryPolicy:
        """Check a request before any network activity.

        Raises:
            InvalidArgument: On bad shapes or an undersized delay schedule.
        """
        _require_object("headers", spec.headers)
        _require_object("params", spec.params)
        _require_object("payload", spec.payload)

        if spec.allowed_regions is not None:
            if isinstance(spec.allowed_regions, str):
                raise InvalidArgument("allowed_regions", "expected an array of strings")
            if len(spec.allowed_regions) == 0:
                raise InvalidArgument(
                    "allowed_regions", "allowed_regions parameter cannot be an empty array"
                )

        if isinstance(spec.max_retries, bool) or not isinstance(spec.max_retries, int):
            raise InvalidArgument("max_retries", "expected a non-negative integer")
        if spec.max_retries < 0:
            raise InvalidArgument("max_retries", "must be >= 0")
        if not self._schedule.supports(spec.max_retries):
            raise InvalidArgument(
                "max_retries",
                f"retry delay schedule must have at least {spec.max_retries + 1} elements "
                f"(has {len(self._schedule)})",
            )

        try:
            encode_payload(spec.payload)
        except (TypeError, ValueError) as e:
            raise InvalidArgument("payload", f"not JSON-serializable: {e}") from e

        return RetryPolicy(
            max_retries=spec.max_retries,
            schedule=self._schedule,
            allowed_regions=tuple(spec.allowed_regions) if spec.allowed_regions else None,
        )

    def dispatch(self, spec: RequestSpec) -> ResponseEnvelope:
        """Run the retry loop for ``spec``.

        Returns:
            The envelope of the first attempt with ``status_code < 500``.

        Raises:
            InvalidArgument: Validation failed; nothing was sent.
            RetryExhausted: Every permitted attempt failed.
        """
        policy = self.validate(spec)
        cursor = policy.region_cursor()
        method = spec.method.upper()
        last_error: Optional[TransportError] = None

        for attempt in range(policy.attempts):
            if attempt > 0:
                self._sleep(self._schedule.delay_for(attempt))

            headers = dict(spec.headers)
            if cursor is not None:
                for key in [k for k in headers if k.lower() == REGION_HEADER]:
                    del headers[key]
                headers[REGION_HEADER] = cursor.advance()

            log.warning(
                "dispatch_attempt",
                url=spec.url,
                method=method,
                attempt=attempt,
                headers=redact_headers(headers, self._redacted),
            )

            try:
                outcome = self._requester.attempt(
                    spec.url, method, headers, spec.params, spec.payload, spec.timeout_ms
                )
            except Exception as e:
                outcome = AttemptOutcome.failure(
                    TransportError(
                        method, spec.url, reason=f"{type(e).__name__}: {e}", cause=e
                    )
                )
            error = self._classify(method, spec.url, outcome)
            if error is None:
                return outcome.envelope  # type: ignore[return-value]

            last_error = error
            log.warning(
                "dispatch_attempt_failed",
                attempt=attempt,
                remaining=policy.max_retries - attempt,
                **error.context,
            )

        assert last_error is not None
        log.error(
            "dispatch_retries_exhausted",
            url=spec.url,
            attempts=policy.attempts,
            error=last_error.message,
        )
        raise RetryExhausted(
            url=spec.url,
            attempts=policy.attempts,
            max_retries=policy.max_retries,
            last_error=last_error,
        )

    @staticmethod
    def _classify(method: str, url: str, outcome: AttemptOutcome) -> Optional[TransportError]:
        """Return None on success, else the error that failed the attempt."""
        if not outcome.ok:
            return outcome.error

        envelope = outcome.envelope
        assert envelope is not None
        try:
            status = int(envelope.status_code)
        except (TypeError, ValueError) as e:
            return TransportError(
                method,
                url,
                reason=f"unreadable status code {envelope.status_code!r}",
                cause=e,
            )

        if status < 500:
            return None
        return ServerErrorResponse(method, url, envelope)


def dispatch(
    url: str,
    method: str = "POST",
    headers: Any = DEFAULT_HEADERS,
    params: Any = _EMPTY,
    payload: Any = _EMPTY,
    timeout_ms: int = 5000,
    max_retries: int = 0,
    allowed_regions: Optional[Sequence[str]] = None,
    dispatcher: Optional[RetryingDispatcher] = None,
) -> dict[str, Any]:
    """Dispatch an HTTP call with retries and return the JSON envelope.

    Args:
        url: Target URL.
        method: HTTP method.
        headers: Header object (string values).
        params: Query parameter object (accepted, not sent).
        payload: JSON object sent as the request body.
        timeout_ms: Per-attempt timeout in milliseconds.
        max_retries: Retries after the first attempt.
        allowed_regions: Optional regions rotated into ``x-region``.
        dispatcher: Optional dispatcher; defaults to one built from settings.

    Returns:
        ``{"status_code": int, "response": <JSON>}``.

    Raises:
        InvalidArgument: Bad arguments; nothing was sent.
        RetryExhausted: Every permitted attempt failed.
    """
    spec = RequestSpec(
        url=url,
        method=method,
        headers=headers,
        params=params,
        payload=payload,
        timeout_ms=timeout_ms,
        max_retries=max_retries,
        allowed_regions=allowed_regions,
    )
    dispatcher = dispatcher or RetryingDispatcher.from_settings()
    return dispatcher.dispatch(spec).to_dict()
