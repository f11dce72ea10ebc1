"""
Fractal Edges

A FractalEdge is the unit object of the algebra: two or more nodes bound
together with a score and the law that score classifies into. Edges are
values. Transforms and rewrites return new edges; identity is
(node ids, law, score).
"""

from __future__ import annotations
from typing import Optional, Tuple, TYPE_CHECKING
from dataclasses import dataclass, field, replace

from .node import FractalNode, ObjectKind, Resonant
from .scorer import LawBands, Resonance, ResonanceLaw, ResonanceScorer

if TYPE_CHECKING:
    from .transforms import ResonantTransform


@dataclass(frozen=True)
class FractalEdge(Resonant):
    """
    Scored relation between nodes.

    Attributes:
        nodes: Endpoints ordered by n (at least two, no repeats)
        score: Normalized score in [0, 1]
        law: Classification of the score (or a coerced law after a rewrite)
        label: Free-form tag, excluded from identity
    """
    nodes: Tuple[FractalNode, ...]
    score_value: float
    law: ResonanceLaw
    label: Optional[str] = field(default=None, compare=False)

    kind = ObjectKind.EDGE

    def __post_init__(self):
        nodes = tuple(sorted(self.nodes, key=lambda node: node.n))
        if len(nodes) < 2:
            raise ValueError(f"An edge needs at least two nodes, got {len(nodes)}")
        ids = [node.n for node in nodes]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Edge endpoints must be distinct, got {ids}")
        if not (0.0 <= self.score_value <= 1.0):
            raise ValueError(f"Edge score {self.score_value} outside [0, 1]")
        if not isinstance(self.law, ResonanceLaw):
            raise TypeError(f"law must be a ResonanceLaw, got {self.law!r}")
        object.__setattr__(self, "nodes", nodes)

    # Construction ----------------------------------------------------------

    @classmethod
    def between(cls, a: FractalNode, b: FractalNode,
                scorer: Optional[ResonanceScorer] = None,
                label: Optional[str] = None) -> "FractalEdge":
        """Score two nodes and build the edge."""
        scorer = scorer or ResonanceScorer()
        resonance = scorer.score(a, b)
        return cls((a, b), resonance.score, resonance.law, label)

    @classmethod
    def spanning(cls, nodes, scorer: Optional[ResonanceScorer] = None,
                 label: Optional[str] = None) -> "FractalEdge":
        """Hyper-edge over several nodes, scored by mean pairwise similarity."""
        scorer = scorer or ResonanceScorer()
        resonance = scorer.score_collection(list(nodes))
        return cls(tuple(nodes), resonance.score, resonance.law, label)

    # Views -----------------------------------------------------------------

    @property
    def ids(self) -> Tuple[int, ...]:
        return tuple(node.n for node in self.nodes)

    @property
    def key(self) -> Tuple[Tuple[int, ...], ResonanceLaw, float]:
        return (self.ids, self.law, self.score_value)

    @property
    def resonance(self) -> Resonance:
        return Resonance(self.score_value, self.law)

    # Derivation ------------------------------------------------------------

    def with_score(self, score: float, bands: LawBands) -> "FractalEdge":
        """New edge with score reclassified through bands."""
        return replace(self, score_value=score, law=bands.classify(score))

    def with_law(self, law: ResonanceLaw) -> "FractalEdge":
        """New edge with the law coerced, score untouched."""
        return replace(self, law=law)

    # Capability ------------------------------------------------------------

    def score(self, scorer: ResonanceScorer) -> Resonance:
        return self.resonance

    def transform(self, transform: "ResonantTransform") -> "FractalEdge":
        return transform.apply(self)

    def __repr__(self) -> str:
        return f"FractalEdge({self.ids}, score={self.score_value:.4f}, law={self.law.name})"
