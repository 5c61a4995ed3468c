"""Domain exceptions."""


class FollowUpXError(Exception):
    """Base class for errors raised by followupx."""


class InvalidTransitionError(FollowUpXError, ValueError):
    """A record was asked to move between two states that are not connected."""

    def __init__(self, kind: str, current: str, target: str) -> None:
        self.kind = kind
        self.current = current
        self.target = target
        super().__init__(f"Invalid {kind} transition: {current} -> {target}")


class UnknownJobError(FollowUpXError, LookupError):
    """No scheduled job exists with the given id."""


class RecordNotFoundError(FollowUpXError, LookupError):
    """A domain record referenced by id does not exist."""
