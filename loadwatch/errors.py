# loadwatch/errors.py

"""Exception hierarchy for the loadwatch engine.

Every error narrows to "this one entry or cycle did not complete";
none of them is allowed to take the engine down.
"""


class LoadwatchError(Exception):
    """Base class for all loadwatch errors."""


class ExtractionError(LoadwatchError):
    """An extraction strategy could not interpret the document."""


class ControlResolutionError(LoadwatchError):
    """A referenced control is no longer attached to the document."""

    def __init__(self, reason: str, entry_id: str = "") -> None:
        super().__init__(f"{reason} for {entry_id or 'entry'}")
        self.reason = reason
        self.entry_id = entry_id


class ActionTimeoutError(LoadwatchError):
    """A bounded wait expired before its condition held."""

    def __init__(self, reason: str, waited: float) -> None:
        super().__init__(f"{reason} after {waited:.2f}s")
        self.reason = reason
        self.waited = waited


class PersistenceError(LoadwatchError):
    """The key-value store could not be read or written."""
