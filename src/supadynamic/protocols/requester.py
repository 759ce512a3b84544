"""Requester protocol for supa-dynamic.

The retrying dispatcher drives any object with an ``attempt`` method that
performs exactly one HTTP call and reports the result as a value.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:
    from supadynamic.http.requester import AttemptOutcome


@runtime_checkable
class RequesterProtocol(Protocol):
    """Protocol for single-shot HTTP requesters.

    Implementations must never retry; the dispatcher owns the retry loop.
    Transport failures are returned in the outcome, not raised.

    Note:
        Implementations do NOT need to inherit from this class.
    """

    def attempt(
        self,
        url: str,
        method: str,
        headers: Mapping[str, Any],
        params: Mapping[str, Any],
        payload: Mapping[str, Any],
        timeout_ms: int,
    ) -> "AttemptOutcome":
        """Perform one HTTP call.

        Args:
            url: Target URL.
            method: HTTP method.
            headers: Effective request headers.
            params: Query parameters (may be ignored by implementations).
            payload: JSON object sent as the request body.
            timeout_ms: Per-call timeout in milliseconds.

        Returns:
            AttemptOutcome holding either an envelope or a TransportError.
        """
        ...
