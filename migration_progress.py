"""Progress events emitted by a tenant migration run"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union


class MigrationStep(Enum):
    """Progress steps, in the order a successful run emits them"""

    CREATE = "create"
    COUNT = "count"
    MAX_FILES_REACHED = "max_files_reached"
    COPY = "copy"
    WARN = "warn"
    CONFIG = "config"
    DELETE = "delete"
    DONE = "done"


@dataclass(frozen=True)
class ProgressEvent:
    """One (step, value) pair. ``value`` is a count, except for WARN where it is a message."""

    step: MigrationStep
    value: Union[int, str] = 0


class ProgressSink:
    """Receives progress events. The default implementation drops them."""

    def emit(self, event: ProgressEvent) -> None:
        """Handle a single progress event"""


class CallbackSink(ProgressSink):
    """Adapts a plain ``callback(step_name, value)`` function to the sink interface"""

    def __init__(self, callback: Callable[[str, Union[int, str]], None]):
        self.callback = callback

    def emit(self, event: ProgressEvent) -> None:
        self.callback(event.step.value, event.value)


__all__ = ["MigrationStep", "ProgressEvent", "ProgressSink", "CallbackSink"]
