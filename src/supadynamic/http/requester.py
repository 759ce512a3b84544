"""Single-shot HTTP requester.

Performs exactly one outbound call and normalizes the result into a
``ResponseEnvelope``. Retrying is the dispatcher's job, not this module's.

Usage:
    from supadynamic.http.requester import SingleShotRequester

    requester = SingleShotRequester()
    envelope = requester.request(
        "https://api.example.com/fn",
        method="POST",
        headers={"Content-Type": "application/json"},
        params={},
        payload={"hello": "world"},
        timeout_ms=5000,
    )
    envelope.to_dict()  # {"status_code": 200, "response": {...}}
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

import httpx
import structlog

from supadynamic.core.exceptions import TransportError

log = structlog.get_logger()

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class ResponseEnvelope:
    """Uniform ``{status_code, response}`` wrapper for a completed attempt.

    ``status_code`` is an int for anything produced by httpx; custom
    requesters may hand back other values, which the dispatcher treats
    as a failed attempt.
    """

    status_code: Any
    response: Any

    @classmethod
    def from_body(cls, status_code: int, body: str) -> "ResponseEnvelope":
        """Build an envelope, nesting the raw text when it is not JSON."""
        try:
            parsed = json.loads(body)
        except ValueError:
            parsed = {"status_code": status_code, "response": body}
        return cls(status_code=status_code, response=parsed)

    def to_dict(self) -> dict[str, Any]:
        return {"status_code": self.status_code, "response": self.response}


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one attempt: either an envelope or a transport error."""

    envelope: Optional[ResponseEnvelope] = None
    error: Optional[TransportError] = None

    def __post_init__(self) -> None:
        if (self.envelope is None) == (self.error is None):
            raise ValueError("AttemptOutcome needs exactly one of envelope or error")

    @classmethod
    def success(cls, envelope: ResponseEnvelope) -> "AttemptOutcome":
        return cls(envelope=envelope)

    @classmethod
    def failure(cls, error: TransportError) -> "AttemptOutcome":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ClientConfig:
    """Per-call transport options.

    Attributes:
        timeout_ms: Fallback timeout when a call passes ``timeout_ms <= 0``.
        follow_redirects: Whether httpx follows 3xx responses.
        verify: TLS verification flag or CA bundle path.
    """

    timeout_ms: int = 5000
    follow_redirects: bool = False
    verify: bool | str = True

    def timeout_for(self, timeout_ms: int) -> httpx.Timeout:
        effective = timeout_ms if timeout_ms > 0 else self.timeout_ms
        return httpx.Timeout(effective / 1000.0)


def _header_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def to_wire_headers(headers: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """Convert a header mapping into the wire header list.

    ``None`` values are dropped; non-string values go out as JSON text.
    A ``Content-Type: application/json`` default is added unless the caller
    already declares a content type.
    """
    wire = [(str(k), _header_text(v)) for k, v in headers.items() if v is not None]
    if not any(k.lower() == "content-type" for k, _ in wire):
        wire.insert(0, ("Content-Type", JSON_CONTENT_TYPE))
    return wire


def encode_payload(payload: Mapping[str, Any]) -> bytes:
    """JSON-encode a request payload.

    Raises:
        TypeError, ValueError: If the payload is not JSON-serializable.
    """
    return json.dumps(payload, ensure_ascii=False, allow_nan=False).encode("utf-8")


class SingleShotRequester:
    """Issues one HTTP call per invocation with an explicit client config."""

    def __init__(
        self,
        client_config: Optional[ClientConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """Initialize the requester.

        Args:
            client_config: Transport options applied to each call.
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
        """
        self._config = client_config or ClientConfig()
        self._transport = transport

    @property
    def client_config(self) -> ClientConfig:
        return self._config

    def request(
        self,
        url: str,
        method: str,
        headers: Mapping[str, Any],
        params: Mapping[str, Any],
        payload: Mapping[str, Any],
        timeout_ms: int,
    ) -> ResponseEnvelope:
        """Perform one HTTP call.

        ``params`` is accepted for call-shape compatibility but is not
        appended to the URL.

        Returns:
            The response envelope; non-JSON bodies are nested as text.

        Raises:
            TransportError: If the call cannot be completed at all.
        """
        method = method.upper()
        timeout = self._config.timeout_for(timeout_ms)
        body = encode_payload(payload)
        start = time.monotonic()

        try:
            with httpx.Client(
                timeout=timeout,
                transport=self._transport,
                follow_redirects=self._config.follow_redirects,
                verify=self._config.verify,
            ) as client:
                response = client.request(
                    method,
                    url,
                    headers=to_wire_headers(headers),
                    content=body,
                )
        except httpx.TimeoutException as e:
            raise TransportError(
                method, url, reason=f"timed out after {timeout.read}s", cause=e
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(
                method, url, reason=f"{type(e).__name__}: {e}", cause=e
            ) from e
        except ValueError as e:
            # Header values httpx cannot encode, e.g. non-ASCII text
            raise TransportError(
                method, url, reason=f"invalid request: {type(e).__name__}: {e}", cause=e
            ) from e

        log.debug(
            "http_request_complete",
            method=method,
            url=url,
            status_code=response.status_code,
            latency_ms=int((time.monotonic() - start) * 1000),
        )
        return ResponseEnvelope.from_body(response.status_code, response.text)

    def attempt(
        self,
        url: str,
        method: str,
        headers: Mapping[str, Any],
        params: Mapping[str, Any],
        payload: Mapping[str, Any],
        timeout_ms: int,
    ) -> AttemptOutcome:
        """Like ``request`` but returns transport failures as a value."""
        try:
            envelope = self.request(url, method, headers, params, payload, timeout_ms)
        except TransportError as e:
            return AttemptOutcome.failure(e)
        return AttemptOutcome.success(envelope)
