"""Error taxonomy for the polling scheduler.

Every failure a tick can hit resolves to one of two outcomes for the trigger
involved: it is disabled, or it is rescheduled with a backoff. The runner maps
the exception classes below onto those outcomes.
"""


class PollingSchedulerError(Exception):
    """Base class for all polling scheduler errors."""


class ConfigurationError(PollingSchedulerError):
    """A trigger's configuration is permanently unusable (disable the trigger)."""


class InactiveTargetError(PollingSchedulerError):
    """The owning workflow or agent is confirmed inactive (disable the trigger)."""


class TransientCheckError(PollingSchedulerError):
    """The check endpoint failed or returned an unusable response (backoff)."""


class DispatchError(PollingSchedulerError):
    """An event could not be handed to the event bus (backoff)."""


class StoreReadError(PollingSchedulerError):
    """Due triggers could not be read; the whole tick is abandoned."""


class StoreWriteError(PollingSchedulerError):
    """A best-effort trigger update failed; logged and reported, never raised."""


__all__ = [
    "ConfigurationError",
    "DispatchError",
    "InactiveTargetError",
    "PollingSchedulerError",
    "StoreReadError",
    "StoreWriteError",
    "TransientCheckError",
]
