"""Job function definitions and their routing by event name."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from thumbai.schemas import EventEnvelope, JobOutcome

if TYPE_CHECKING:
    from thumbai.jobs.context import JobContext


JobHandler = Callable[[EventEnvelope, "JobContext"], Awaitable[JobOutcome]]


@dataclass(frozen=True)
class JobFunction:
    """A handler bound to one event name, with its retry and timeout policy."""

    id: str
    name: str
    event: str
    handler: JobHandler
    max_attempts: int = 3
    timeout_seconds: float = 180.0


class FunctionRegistry:
    def __init__(self, functions: list[JobFunction] | None = None):
        self._by_event: dict[str, JobFunction] = {}
        for function in functions or []:
            self.register(function)

    def register(self, function: JobFunction) -> None:
        if function.event in self._by_event:
            raise ValueError(f"Event {function.event} already handled by {self._by_event[function.event].id}")
        self._by_event[function.event] = function

    def get(self, event_name: str) -> JobFunction | None:
        return self._by_event.get(event_name)

    def __len__(self) -> int:
        return len(self._by_event)
