"""Monotonic generation counter for discarding stale foreground results.

Every foreground query takes a Ticket when it is dispatched. When its upstream
call resolves, the query checks whether its ticket is still current; if a
newer query was dispatched in the meantime the result is dropped.

Usage:
    generations = GenerationCounter()
    ticket = generations.issue()
    data = await fetch(...)
    if not generations.is_current(ticket):
        return  # a newer query superseded this one
"""

import time
from dataclasses import dataclass
from typing import Callable


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Ticket:
    """A dispatched query: its generation and the logical timestamp it carries."""

    generation: int
    timestamp: int


class GenerationCounter:
    """Issues tickets and answers whether a ticket is still the latest."""

    def __init__(self, clock: Callable[[], int] = _wall_clock_ms):
        self._clock = clock
        self._generation = 0

    @property
    def current(self) -> int:
        return self._generation

    def issue(self) -> Ticket:
        """Dispatch a new query, superseding every earlier ticket."""
        self._generation += 1
        return Ticket(generation=self._generation, timestamp=self._clock())

    def invalidate(self) -> None:
        """Supersede all outstanding tickets without dispatching a query."""
        self._generation += 1

    def is_current(self, ticket: Ticket) -> bool:
        return ticket.generation == self._generation
