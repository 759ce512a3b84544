from .requester import (
    AttemptOutcome,
    ClientConfig,
    ResponseEnvelope,
    SingleShotRequester,
)
from .retry import DelaySchedule, RegionCursor, RetryPolicy
from .dispatcher import RequestSpec, RetryingDispatcher, dispatch

__all__ = [
    "AttemptOutcome",
    "ClientConfig",
    "ResponseEnvelope",
    "SingleShotRequester",
    "DelaySchedule",
    "RegionCursor",
    "RetryPolicy",
    "RequestSpec",
    "RetryingDispatcher",
    "dispatch",
]
