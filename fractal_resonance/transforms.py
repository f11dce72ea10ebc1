"""
Resonant Transforms

A resonant transform is a pure function FractalEdge → FractalEdge. It may
move the score, and with it the law: every built-in reclassifies the new
score through LawBands, so an edge's law always matches its band unless a
rule-engine rewrite coerced it.

Transform:
    T(e)            - IdentityTransform, ScaleTransform, ShiftTransform,
                      DampingTransform, FunctionTransform

Composition:
    T₂ ∘ T₁         - CompositeTransform([T₁, T₂]), also T₁ >> T₂

Failure:
    A transform undefined at its input raises TransformDomainFailure.
    CompositeTransform stops at the first failing stage and re-raises
    naming that stage; nothing is skipped silently.
"""

from __future__ import annotations
from typing import Callable, Iterable, Iterator, List, Optional, Union
from abc import ABC, abstractmethod
from enum import Enum

from .constants import DEFAULT_DAMPING_PIVOT, INVARIANCE_TOLERANCE
from .edge import FractalEdge
from .errors import TransformDomainFailure
from .node import FractalNode
from .scorer import LawBands


class TransformEffect(Enum):
    """How a transform moved an edge's score."""
    INVARIANT = "invariant"
    AMPLIFYING = "amplifying"
    DAMPENING = "dampening"


# =============================================================================
# SECTION 1: Base Transform
# =============================================================================

class ResonantTransform(ABC):
    """Pure, deterministic edge → edge map."""

    name: str = "transform"

    def __init__(self, bands: Optional[LawBands] = None):
        self.bands = bands if bands is not None else LawBands.default()

    @abstractmethod
    def apply(self, edge: FractalEdge) -> FractalEdge:
        """Transform an edge, raising TransformDomainFailure when undefined."""

    def __call__(self, edge: FractalEdge) -> FractalEdge:
        return self.apply(edge)

    def apply_node(self, node: FractalNode) -> FractalNode:
        """Nodes are immutable signature wrappers; only law-preserving maps accept them."""
        raise TransformDomainFailure(self, f"{self.name} is not defined on nodes (n={node.n})")

    def resonance_delta(self, edge: FractalEdge) -> float:
        return self.apply(edge).score_value - edge.score_value

    def effect(self, edge: FractalEdge) -> TransformEffect:
        delta = self.resonance_delta(edge)
        if abs(delta) < INVARIANCE_TOLERANCE:
            return TransformEffect.INVARIANT
        return TransformEffect.AMPLIFYING if delta > 0 else TransformEffect.DAMPENING

    def then(self, other: "ResonantTransform") -> "CompositeTransform":
        return CompositeTransform([self, other])

    def __rshift__(self, other: "ResonantTransform") -> "CompositeTransform":
        return self.then(other)

    def _rescore(self, edge: FractalEdge, score: float) -> FractalEdge:
        if not (0.0 <= score <= 1.0):
            raise TransformDomainFailure(
                self, f"{self.name} maps score {edge.score_value:.6f} of {edge.ids} to {score:.6f}, outside [0, 1]"
            )
        return edge.with_score(score, self.bands)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


# =============================================================================
# SECTION 2: Built-in Transforms
# =============================================================================

class IdentityTransform(ResonantTransform):
    """Leaves score and law unchanged; also defined on nodes."""

    name = "identity"

    def apply(self, edge: FractalEdge) -> FractalEdge:
        return edge

    def apply_node(self, node: FractalNode) -> FractalNode:
        return node


class ScaleTransform(ResonantTransform):
    """score → score · factor; undefined where the result leaves [0, 1]."""

    def __init__(self, factor: float, bands: Optional[LawBands] = None):
        super().__init__(bands)
        if factor < 0:
            raise ValueError(f"factor must be >= 0, got {factor}")
        self.factor = float(factor)
        self.name = f"scale({self.factor:g})"

    def apply(self, edge: FractalEdge) -> FractalEdge:
        return self._rescore(edge, edge.score_value * self.factor)


class ShiftTransform(ResonantTransform):
    """score → score + delta; undefined where the result leaves [0, 1]."""

    def __init__(self, delta: float, bands: Optional[LawBands] = None):
        super().__init__(bands)
        self.delta = float(delta)
        self.name = f"shift({self.delta:+g})"

    def apply(self, edge: FractalEdge) -> FractalEdge:
        return self._rescore(edge, edge.score_value + self.delta)


class DampingTransform(ResonantTransform):
    """
    Pull the score toward a pivot: score → score + (pivot − score) · strength.

    With the default pivot (middle of the NEUTRAL band) repeated damping
    moves HARMONY and DISSONANCE alike toward NEUTRAL. Always defined.
    """

    def __init__(self, strength: float, pivot: float = DEFAULT_DAMPING_PIVOT,
                 bands: Optional[LawBands] = None):
        super().__init__(bands)
        if not (0.0 <= strength <= 1.0):
            raise ValueError(f"strength must be in [0, 1], got {strength}")
        if not (0.0 <= pivot <= 1.0):
            raise ValueError(f"pivot must be in [0, 1], got {pivot}")
        self.strength = float(strength)
        self.pivot = float(pivot)
        self.name = f"damp({self.strength:g}→{self.pivot:g})"

    def apply(self, edge: FractalEdge) -> FractalEdge:
        score = edge.score_value + (self.pivot - edge.score_value) * self.strength
        return self._rescore(edge, min(1.0, max(0.0, score)))


class FunctionTransform(ResonantTransform):
    """
    Plug-in transform around a pure score → score function.

    Exceptions raised by fn, and results outside [0, 1], surface as
    TransformDomainFailure.
    """

    def __init__(self, fn: Callable[[float], float], name: str = "",
                 bands: Optional[LawBands] = None):
        super().__init__(bands)
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "function")

    def apply(self, edge: FractalEdge) -> FractalEdge:
        try:
            score = float(self.fn(edge.score_value))
        except (ArithmeticError, ValueError, TypeError) as exc:
            raise TransformDomainFailure(self, f"{self.name} undefined at {edge.score_value:.6f}: {exc}") from exc
        return self._rescore(edge, score)


# =============================================================================
# SECTION 3: Composite Transform
# =============================================================================

class CompositeTransform(ResonantTransform):
    """
    Ordered pipeline, applied left to right.

    The first stage that fails stops the pipeline; the failure is re-raised
    with the stage index and the original exception chained.
    """

    def __init__(self, transforms: Iterable[ResonantTransform] = ()):
        super().__init__()
        self._stages: List[ResonantTransform] = []
        for t in transforms:
            self._append(t)

    def _append(self, transform: ResonantTransform) -> None:
        if not isinstance(transform, ResonantTransform):
            raise TypeError(f"Expected ResonantTransform, got {type(transform).__name__}")
        # Flatten nested pipelines so stage indices stay meaningful
        if isinstance(transform, CompositeTransform):
            self._stages.extend(transform._stages)
        else:
            self._stages.append(transform)

    @property
    def name(self) -> str:
        return " >> ".join(t.name for t in self._stages) or "identity"

    @property
    def stages(self) -> List[ResonantTransform]:
        return list(self._stages)

    def then(self, other: ResonantTransform) -> "CompositeTransform":
        return CompositeTransform(self._stages + [other])

    def __len__(self) -> int:
        return len(self._stages)

    def __iter__(self) -> Iterator[ResonantTransform]:
        return iter(self._stages)

    def trace(self, edge: FractalEdge) -> List[FractalEdge]:
        """Every intermediate edge, input first."""
        states = [edge]
        for stage, transform in enumerate(self._stages):
            try:
                states.append(transform.apply(states[-1]))
            except TransformDomainFailure as exc:
                raise TransformDomainFailure(
                    transform, f"stage {stage} ({transform.name}): {exc}", stage=stage
                ) from exc
        return states

    def apply(self, edge: FractalEdge) -> FractalEdge:
        return self.trace(edge)[-1]

    def apply_node(self, node: FractalNode) -> FractalNode:
        for transform in self._stages:
            node = transform.apply_node(node)
        return node


Pipeline = Union[ResonantTransform, CompositeTransform]


def as_pipeline(transform: Pipeline) -> CompositeTransform:
    """Wrap a single transform as a one-stage pipeline."""
    if isinstance(transform, CompositeTransform):
        return transform
    return CompositeTransform([transform])
