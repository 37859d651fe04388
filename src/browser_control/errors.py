"""Exception hierarchy shared by the engine components."""

from __future__ import annotations


class BrowserControlError(RuntimeError):
    """Base class for every error raised by the engine.

    ``code`` is a stable identifier exposed to callers in results and protocol
    messages; it defaults to the class name.
    """

    code = "BrowserControlError"

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        cls.code = cls.__name__


# Session state violations ----------------------------------------------------


class SessionError(BrowserControlError):
    """Raised when an operation is not valid for the session's current state."""

    def __init__(self, session_id: str, message: str | None = None) -> None:
        self.session_id = session_id
        super().__init__(message or f"{self.code}: session {session_id!r}")


class DuplicateSession(SessionError):
    """The session id is already in use (or was used before)."""


class SessionNotFound(SessionError):
    """No session with the given id exists."""


class SessionNotReady(SessionError):
    """The session has no usable driver (not initialised or torn down)."""


class SessionPaused(SessionError):
    """The session is paused and does not accept actions."""


# Driver failures -------------------------------------------------------------


class ActionError(BrowserControlError):
    """A single action failed; the session stays usable."""


class ElementNotFound(ActionError):
    """The locator did not resolve within the bounded wait."""


class NavigationTimeout(ActionError):
    """The page did not finish loading within the bounded wait."""


class ActionFailed(ActionError):
    """Any other per-action failure reported by the browser."""


class DriverUnavailable(BrowserControlError):
    """The browser backend cannot be acquired or has died."""


# Other collaborators ---------------------------------------------------------


class TranslationFailed(BrowserControlError):
    """The inference service did not yield a usable action."""


class TransportError(BrowserControlError):
    """A client connection failed while pushing data to it."""
