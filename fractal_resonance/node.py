"""
Fractal Nodes and the Resonance Capability

Every object the algebra manipulates (node, edge, collection) belongs to a
closed set of kinds and exposes the same three capabilities:

    score(scorer)     → Resonance(score, law)
    classify(scorer)  → ResonanceLaw
    transform(t)      → new object of the same kind

A FractalNode wraps one factorial signature. It is identified by n, never
mutated after construction, and owned by the index once inserted.
"""

from __future__ import annotations
from typing import Any, Optional, Tuple, TYPE_CHECKING
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from .signature import FactorialSignature, SignatureProvider, legendre_signature

if TYPE_CHECKING:
    from .scorer import Resonance, ResonanceLaw, ResonanceScorer
    from .transforms import ResonantTransform


class ObjectKind(Enum):
    """Closed set of resonance-capable object kinds."""
    NODE = "node"
    EDGE = "edge"
    COLLECTION = "collection"


class Resonant(ABC):
    """Capability interface shared by nodes, edges and collections."""

    kind: ObjectKind

    @abstractmethod
    def score(self, scorer: "ResonanceScorer") -> "Resonance":
        """Intrinsic resonance of this object."""

    def classify(self, scorer: "ResonanceScorer") -> "ResonanceLaw":
        return self.score(scorer).law

    @abstractmethod
    def transform(self, transform: "ResonantTransform") -> Any:
        """Apply a resonant transform, returning a new object."""


@dataclass(frozen=True)
class FractalNode(Resonant):
    """
    Indexed wrapper around one factorial signature.

    Attributes:
        n: Identity (positive integer); equality and hashing use n only
        signature: Prime-exponent vector of n!
        depth: Expansion depth; defaults to the number of primes ≤ n
        position_key: Exponents in ascending prime order (the trie path)
    """
    n: int
    signature: FactorialSignature = field(compare=False)
    depth: Optional[int] = field(default=None, compare=False)
    position_key: Tuple[int, ...] = field(default=(), compare=False, repr=False)

    kind = ObjectKind.NODE

    def __post_init__(self):
        if isinstance(self.n, bool) or not isinstance(self.n, int) or self.n < 1:
            raise ValueError(f"Node identity must be a positive integer, got {self.n!r}")
        if not isinstance(self.signature, FactorialSignature):
            object.__setattr__(self, "signature", FactorialSignature(self.signature))
        if self.depth is None:
            object.__setattr__(self, "depth", len(self.signature))
        elif self.depth < 0:
            raise ValueError(f"depth must be >= 0, got {self.depth}")
        object.__setattr__(self, "position_key", self.signature.position_key())

    @classmethod
    def from_n(cls, n: int,
               provider: SignatureProvider = legendre_signature,
               depth: Optional[int] = None) -> "FractalNode":
        """Build a node by asking the signature provider for n!."""
        return cls(n=n, signature=FactorialSignature(provider(n)), depth=depth)

    def score(self, scorer: "ResonanceScorer") -> "Resonance":
        return scorer.score(self.signature)

    def transform(self, transform: "ResonantTransform") -> "FractalNode":
        return transform.apply_node(self)
