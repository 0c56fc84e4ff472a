"""Exceptions raised by the simulation core."""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for simulation failures."""


class IneligibleEventError(SimulationError):
    """Raised when an event's eligibility cannot be evaluated."""

    def __init__(self, event_id: str, reason: str) -> None:
        super().__init__(f"Event {event_id} cannot be evaluated: {reason}")
        self.event_id = event_id
        self.reason = reason


class CyclicGraphError(SimulationError):
    """Raised when a causal graph contains a dependency cycle."""

    def __init__(self, nodes) -> None:
        self.nodes = sorted(nodes)
        super().__init__(f"Causal graph contains a cycle through: {', '.join(self.nodes)}")


class GraphReferenceError(SimulationError):
    """Raised when a causal edge points at an unknown node."""


__all__ = [
    "SimulationError",
    "IneligibleEventError",
    "CyclicGraphError",
    "GraphReferenceError",
]
