"""Custom exceptions for gantt-cpm."""

from __future__ import annotations


class GanttCpmError(Exception):
    """Base exception for all gantt-cpm errors."""

    pass


class ValidationError(GanttCpmError):
    """Raised when the activity network fails validation."""

    pass


class CircularDependencyError(ValidationError):
    """Raised when the dependency network contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        path = " -> ".join([*cycle, cycle[0]]) if cycle else "?"
        super().__init__(f"Circular dependency detected: {path}")


class MissingReferenceError(ValidationError):
    """Raised when an edit references an activity id that does not exist."""

    pass


class StoreError(GanttCpmError):
    """Raised when the project file cannot be read."""

    pass
