"""
Resonance Filters

Filters select collection members by law, score, label or an arbitrary
(law, score) predicate, and combine through AllOf / AnyOf / Not (also
&, | and ~). Applying a filter never mutates the source collection; the
result is a new collection of the same type sharing its rule engine.
"""

from __future__ import annotations
from typing import Callable, Iterable, List, Optional, TYPE_CHECKING
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .edge import FractalEdge
from .scorer import ALL_LAWS, ResonanceLaw

if TYPE_CHECKING:
    from .collection import FractalCollection


class ResonanceFilter(ABC):
    """Edge predicate usable as a collection projection."""

    name: str = "filter"

    @abstractmethod
    def passes(self, edge: FractalEdge) -> bool:
        """True if the edge is kept."""

    def apply(self, collection: "FractalCollection") -> "FractalCollection":
        return collection.select(self.passes)

    def trace(self, collection: "FractalCollection", name: str = "") -> "FilterTrace":
        passed, failed = [], []
        for i, edge in enumerate(collection):
            (passed if self.passes(edge) else failed).append(i)
        return FilterTrace(name or self.name, passed, failed)

    def __and__(self, other: "ResonanceFilter") -> "AllOf":
        return AllOf([self, other])

    def __or__(self, other: "ResonanceFilter") -> "AnyOf":
        return AnyOf([self, other])

    def __invert__(self) -> "Not":
        return Not(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


@dataclass
class FilterTrace:
    """Member indices (iteration order) that passed and failed a filter."""
    filter_name: str
    passed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def pass_rate(self) -> float:
        total = len(self.passed) + len(self.failed)
        return len(self.passed) / total if total else 0.0


# =============================================================================
# Simple filters
# =============================================================================

class LawFilter(ResonanceFilter):
    def __init__(self, allowed: Iterable[ResonanceLaw]):
        self.allowed = frozenset(ResonanceLaw.parse(law) for law in allowed)
        self.name = "law in {" + ", ".join(law.name for law in ALL_LAWS if law in self.allowed) + "}"

    def passes(self, edge: FractalEdge) -> bool:
        return edge.law in self.allowed


class ScoreFilter(ResonanceFilter):
    """min_score <= score <= max_score (both inclusive)."""

    def __init__(self, min_score: float = 0.0, max_score: float = 1.0):
        if min_score > max_score:
            raise ValueError(f"min_score {min_score} exceeds max_score {max_score}")
        self.min_score = float(min_score)
        self.max_score = float(max_score)
        self.name = f"{self.min_score:g} <= score <= {self.max_score:g}"

    def passes(self, edge: FractalEdge) -> bool:
        return self.min_score <= edge.score_value <= self.max_score


class LabelFilter(ResonanceFilter):
    def __init__(self, *labels: str):
        self.labels = frozenset(labels)
        self.name = "label in {" + ", ".join(sorted(self.labels)) + "}"

    def passes(self, edge: FractalEdge) -> bool:
        return edge.label in self.labels


class PredicateFilter(ResonanceFilter):
    """Wraps fn(law, score) -> bool."""

    def __init__(self, fn: Callable[[ResonanceLaw, float], bool], name: str = ""):
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "predicate")

    def passes(self, edge: FractalEdge) -> bool:
        return bool(self.fn(edge.law, edge.score_value))


# =============================================================================
# Composite filters
# =============================================================================

class AllOf(ResonanceFilter):
    def __init__(self, filters: Iterable[ResonanceFilter]):
        self.filters = list(filters)
        self.name = " & ".join(f"({f.name})" for f in self.filters) or "all"

    def passes(self, edge: FractalEdge) -> bool:
        return all(f.passes(edge) for f in self.filters)


class AnyOf(ResonanceFilter):
    def __init__(self, filters: Iterable[ResonanceFilter]):
        self.filters = list(filters)
        self.name = " | ".join(f"({f.name})" for f in self.filters) or "none"

    def passes(self, edge: FractalEdge) -> bool:
        return any(f.passes(edge) for f in self.filters)


class Not(ResonanceFilter):
    def __init__(self, inner: ResonanceFilter):
        self.inner = inner
        self.name = f"not ({inner.name})"

    def passes(self, edge: FractalEdge) -> bool:
        return not self.inner.passes(edge)


def filter_collection(collection: "FractalCollection",
                      allowed_laws: Iterable[ResonanceLaw],
                      score_predicate: Optional[Callable[[float], bool]] = None) -> "FractalCollection":
    """
    Members whose law is allowed and whose score satisfies the predicate.

    Args:
        collection: Source collection (left untouched)
        allowed_laws: Laws to keep
        score_predicate: Optional score → bool test

    Returns:
        New collection; passing every law and no predicate yields an equal one
    """
    selected: ResonanceFilter = LawFilter(allowed_laws)
    if score_predicate is not None:
        selected = AllOf([selected, PredicateFilter(lambda law, score: score_predicate(score), "score predicate")])
    return selected.apply(collection)
