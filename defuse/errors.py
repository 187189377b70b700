from __future__ import annotations


class SessionError(ValueError):
    """Base class for recoverable session errors.

    A handler that raises one of these has not applied any part of the event.
    """


class InvalidTransition(SessionError):
    pass


class OutOfRange(SessionError):
    pass


class InvalidEvent(SessionError):
    """Event payload does not match what the event (or addressed module) expects."""


class LoadFailure(SessionError):
    """Mission or free-play configuration could not be turned into a bomb."""


class SessionNotFound(LookupError):
    pass
