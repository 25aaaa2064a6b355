"""
Exception hierarchy for the spatial graph canvas.

Local-only problems (a malformed drop, a garbled inbound payload) are raised
as these types and absorbed at the controller boundary with a log entry.
Construction and mount failures propagate to the caller.
"""

from typing import Iterable


class CanvasError(Exception):
    """Base class for all canvas errors."""


class MissingCapabilityError(CanvasError):
    """A collaborator does not implement the capabilities the controller needs."""

    def __init__(self, collaborator: str, missing: Iterable[str]):
        self.collaborator = collaborator
        self.missing = sorted(missing)
        super().__init__(
            f"{collaborator} is missing required capabilities: {', '.join(self.missing)}"
        )


class EventDecodeError(CanvasError):
    """An inbound event payload is missing fields or has the wrong shape."""

    def __init__(self, event_name: str, message: str):
        self.event_name = event_name
        super().__init__(f"Cannot decode '{event_name}': {message}")


class UnknownEventError(EventDecodeError):
    """The channel delivered an event name the controller does not handle."""

    def __init__(self, event_name: str):
        super().__init__(event_name, "unknown event name")


class MalformedDropError(CanvasError):
    """A drag payload dropped on the canvas lacks an entity reference."""


class CanvasInitError(CanvasError):
    """The rendering engine could not be mounted."""
