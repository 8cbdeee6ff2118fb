from typing import Optional


class ArtConnectError(Exception):
    """Base class for errors raised by the ArtConnect services"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ArtConnectError):
    status_code = 404

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class InvalidTransition(ArtConnectError):
    """Order status change outside the transition table, or by the wrong actor"""
    status_code = 409

    def __init__(self, current: str, requested: str, actor: Optional[str] = None):
        message = f"Cannot move order from '{current}' to '{requested}'"
        if actor:
            message += f" as {actor}"
        super().__init__(message)
        self.current = current
        self.requested = requested
        self.actor = actor


class Unauthorized(ArtConnectError):
    status_code = 403


class ValidationError(ArtConnectError):
    status_code = 400


class TransientIOError(ArtConnectError):
    """A store or network call failed in a way that may succeed on retry"""
    status_code = 503


class NotificationDeliveryFailed(ArtConnectError):
    """Email could not be delivered. Never surfaced to API callers."""

    def __init__(self, recipient: str, reason: str):
        super().__init__(f"Failed to deliver notification to {recipient}: {reason}")
        self.recipient = recipient
        self.reason = reason
