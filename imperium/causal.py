"""Causal probability graphs and Monte Carlo estimation.

Gameplay always uses a single live draw (:func:`bernoulli`). The Monte Carlo
helpers exist for forecasts shown to the player and never feed applied state.
"""
from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import yaml

from .errors import CyclicGraphError, GraphReferenceError
from .rng import DeterministicRNG, SeedSequence

_DATA_PATH = Path(__file__).parent / "data"


def clamp01(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def shifted_probability(base: float, shifts: Iterable[float]) -> float:
    """Base probability moved by additive shifts and clamped to [0, 1]."""

    total = base
    for shift in shifts:
        if not math.isnan(shift):
            total += shift
    return clamp01(total)


def bernoulli(probability: float, rng: DeterministicRNG) -> Tuple[float, bool]:
    """Single authoritative draw. Returns ``(roll, succeeded)``."""

    roll = rng.random()
    return roll, roll < clamp01(probability)


@dataclass(frozen=True)
class CausalNode:
    name: str
    probability: float


@dataclass(frozen=True)
class CausalEdge:
    source: str
    target: str
    delta: float


class CausalGraph:
    """Directed acyclic graph of binary events with additive influence."""

    def __init__(
        self,
        nodes: Sequence[CausalNode],
        edges: Sequence[CausalEdge] = (),
        max_delta: float = 0.5,
    ) -> None:
        self._nodes: Dict[str, CausalNode] = {}
        for node in nodes:
            if node.name in self._nodes:
                raise GraphReferenceError(f"Duplicate node {node.name}")
            self._nodes[node.name] = CausalNode(node.name, clamp01(node.probability))
        self._parents: Dict[str, List[CausalEdge]] = {name: [] for name in self._nodes}
        self._children: Dict[str, List[str]] = {name: [] for name in self._nodes}
        for edge in edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in self._nodes:
                    raise GraphReferenceError(f"Edge {edge.source}->{edge.target} references unknown node {endpoint}")
            bounded = CausalEdge(edge.source, edge.target, max(-max_delta, min(max_delta, edge.delta)))
            self._parents[edge.target].append(bounded)
            self._children[edge.source].append(edge.target)
        self._order = self._topological_order()

    def _topological_order(self) -> List[str]:
        indegree = {name: len(parents) for name, parents in self._parents.items()}
        ready = deque(name for name in self._nodes if indegree[name] == 0)
        order: List[str] = []
        while ready:
            name = ready.popleft()
            order.append(name)
            for child in self._children[name]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    ready.append(child)
        if len(order) != len(self._nodes):
            raise CyclicGraphError(name for name, degree in indegree.items() if degree > 0)
        return order

    @property
    def order(self) -> List[str]:
        return list(self._order)

    @property
    def nodes(self) -> Dict[str, CausalNode]:
        return dict(self._nodes)

    def probability(self, name: str, realised: Dict[str, bool]) -> float:
        node = self._nodes[name]
        shifts = [edge.delta for edge in self._parents[name] if realised.get(edge.source)]
        return shifted_probability(node.probability, shifts)

    def sample(self, rng: DeterministicRNG) -> Dict[str, bool]:
        realised: Dict[str, bool] = {}
        for name in self._order:
            _, realised[name] = bernoulli(self.probability(name, realised), rng)
        return realised

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], max_delta: float = 0.5) -> "CausalGraph":
        nodes = [CausalNode(str(entry["name"]), float(entry["probability"])) for entry in data.get("nodes", [])]
        edges = [
            CausalEdge(str(entry["source"]), str(entry["target"]), float(entry["delta"]))
            for entry in data.get("edges", [])
        ]
        return cls(nodes, edges, max_delta=max_delta)


def load_default_graph(path: Path | None = None, max_delta: float = 0.5) -> CausalGraph:
    path = path or _DATA_PATH / "causal_graph.yaml"
    with path.open("r", encoding="utf-8") as fh:
        return CausalGraph.from_mapping(yaml.safe_load(fh) or {}, max_delta=max_delta)


@dataclass
class MonteCarloResult:
    iterations: int
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def frequencies(self) -> Dict[str, float]:
        return {name: count / self.iterations for name, count in self.counts.items()}


def _run_chunk(graph: CausalGraph, seed: int, size: int) -> Dict[str, int]:
    rng = DeterministicRNG(seed)
    counts = {name: 0 for name in graph.order}
    for _ in range(size):
        for name, happened in graph.sample(rng).items():
            if happened:
                counts[name] += 1
    return counts


def monte_carlo(
    graph: CausalGraph,
    iterations: int,
    seed: int,
    chunk_size: int = 1000,
) -> MonteCarloResult:
    """Estimate how often each node fires over ``iterations`` samples.

    Each chunk draws from its own spawned seed, so chunks are independent
    of each other and of any live game generator.
    """

    if iterations <= 0:
        raise ValueError("iterations must be positive")
    seeds = SeedSequence(seed)
    result = MonteCarloResult(iterations=iterations, counts={name: 0 for name in graph.order})
    remaining = iterations
    index = 0
    while remaining > 0:
        size = min(chunk_size, remaining)
        chunk = _run_chunk(graph, seeds.spawn(index).root, size)
        for name, count in chunk.items():
            result.counts[name] += count
        remaining -= size
        index += 1
    return result


@dataclass(frozen=True)
class Distribution:
    mean: float
    std_dev: float
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float


def _percentile(ordered: Sequence[float], fraction: float) -> float:
    if len(ordered) == 1:
        return ordered[0]
    position = fraction * (len(ordered) - 1)
    lower = math.floor(position)
    upper = math.ceil(position)
    weight = position - lower
    return ordered[lower] * (1 - weight) + ordered[upper] * weight


def summarize(samples: Sequence[float]) -> Distribution:
    if not samples:
        raise ValueError("Cannot summarize an empty sample")
    ordered = sorted(samples)
    mean = sum(ordered) / len(ordered)
    variance = sum((value - mean) ** 2 for value in ordered) / len(ordered)
    return Distribution(
        mean=mean,
        std_dev=math.sqrt(variance),
        p10=_percentile(ordered, 0.10),
        p25=_percentile(ordered, 0.25),
        p50=_percentile(ordered, 0.50),
        p75=_percentile(ordered, 0.75),
        p90=_percentile(ordered, 0.90),
    )


__all__ = [
    "clamp01",
    "shifted_probability",
    "bernoulli",
    "CausalNode",
    "CausalEdge",
    "CausalGraph",
    "load_default_graph",
    "MonteCarloResult",
    "monte_carlo",
    "Distribution",
    "summarize",
]
