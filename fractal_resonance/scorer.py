"""
Resonance Scorer

Computes a normalized similarity score between factorial signatures and
classifies it into one of a closed set of resonance laws.

================================================================================
METRIC
================================================================================

    sim(a, b) = Σ_p a[p]·b[p] / (‖a‖ · ‖b‖)          (cosine over exponents)

Properties:
- sim ∈ [0, 1] (exponents are non-negative)
- sim(a, b) = sim(b, a)
- sim(a, a) = 1 for non-empty a; 0 whenever either side is empty

================================================================================
BANDS
================================================================================

    DISSONANCE  [0.00, 0.25)
    NEUTRAL     [0.25, 0.50)
    ECHO        [0.50, 0.75)
    HARMONY     [0.75, 1.00]

Lower bounds are closed; the top band also includes 1.0. LawBands refuses
tables with gaps or overlaps, so every score in [0, 1] has exactly one law.
"""

from __future__ import annotations
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass
from enum import Enum
import bisect
import itertools

import numpy as np

from .constants import DEFAULT_BAND_EDGES, RESONANT_WITH_THRESHOLD
from .errors import InvalidLawTable
from .signature import FactorialSignature


# =============================================================================
# SECTION 1: Resonance Laws
# =============================================================================

class ResonanceLaw(Enum):
    """
    Closed set of qualitative classifications.

    The rank orders laws from least to most resonant; it is used for
    tie-breaking and by transforms that move a law "toward Neutral".
    """
    DISSONANCE = "dissonance"
    NEUTRAL = "neutral"
    ECHO = "echo"
    HARMONY = "harmony"

    @property
    def rank(self) -> int:
        return _LAW_RANK[self]

    @property
    def description(self) -> str:
        return _LAW_DESCRIPTION[self]

    def __lt__(self, other):
        if not isinstance(other, ResonanceLaw):
            return NotImplemented
        return self.rank < other.rank

    def __str__(self) -> str:
        return self.description

    @classmethod
    def parse(cls, value: Union[str, "ResonanceLaw"]) -> "ResonanceLaw":
        """Accept a law or its case-insensitive name."""
        if isinstance(value, ResonanceLaw):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown resonance law: {value!r}") from None


_LAW_RANK = {
    ResonanceLaw.DISSONANCE: 0,
    ResonanceLaw.NEUTRAL: 1,
    ResonanceLaw.ECHO: 2,
    ResonanceLaw.HARMONY: 3,
}

_LAW_DESCRIPTION = {
    ResonanceLaw.DISSONANCE: "Dissonance (destructive misalignment)",
    ResonanceLaw.NEUTRAL: "Neutral (no decisive alignment)",
    ResonanceLaw.ECHO: "Echo (recursive self-similarity)",
    ResonanceLaw.HARMONY: "Harmony (constructive alignment)",
}

ALL_LAWS: Tuple[ResonanceLaw, ...] = tuple(sorted(ResonanceLaw))


# =============================================================================
# SECTION 2: Law Bands
# =============================================================================

@dataclass(frozen=True)
class LawBand:
    """Score interval [lower, upper) mapped to one law."""
    law: ResonanceLaw
    lower: float
    upper: float

    def contains(self, score: float, closed_top: bool = False) -> bool:
        if closed_top:
            return self.lower <= score <= self.upper
        return self.lower <= score < self.upper


class LawBands:
    """
    Total, exclusive classification of [0, 1] into laws.

    Bands must be contiguous: first lower bound 0, last upper bound 1, and
    each upper bound equal to the next lower bound. Anything else raises
    InvalidLawTable at construction time.
    """

    def __init__(self, bands: Iterable[LawBand]):
        ordered = sorted(bands, key=lambda b: (b.lower, b.upper))
        self._validate(ordered)
        self._bands: Tuple[LawBand, ...] = tuple(ordered)
        self._lowers: List[float] = [b.lower for b in ordered]

    @staticmethod
    def _validate(bands: Sequence[LawBand]) -> None:
        if not bands:
            raise InvalidLawTable("Law table has no bands")
        seen = set()
        for band in bands:
            if not isinstance(band.law, ResonanceLaw):
                raise InvalidLawTable(f"Band law must be a ResonanceLaw, got {band.law!r}")
            if band.law in seen:
                raise InvalidLawTable(f"Law {band.law.name} appears in more than one band")
            seen.add(band.law)
            if not band.lower < band.upper:
                raise InvalidLawTable(
                    f"Empty band for {band.law.name}: [{band.lower}, {band.upper})"
                )
        if bands[0].lower != 0.0:
            raise InvalidLawTable(f"Bands must start at 0.0, first starts at {bands[0].lower}")
        if bands[-1].upper != 1.0:
            raise InvalidLawTable(f"Bands must end at 1.0, last ends at {bands[-1].upper}")
        for prev, cur in zip(bands, bands[1:]):
            if cur.lower > prev.upper:
                raise InvalidLawTable(
                    f"Gap between {prev.law.name} and {cur.law.name}: "
                    f"({prev.upper}, {cur.lower})"
                )
            if cur.lower < prev.upper:
                raise InvalidLawTable(
                    f"Overlap between {prev.law.name} and {cur.law.name}: "
                    f"[{cur.lower}, {prev.upper})"
                )

    @classmethod
    def from_edges(cls, edges: Sequence[float], laws: Sequence[ResonanceLaw]) -> "LawBands":
        """Build contiguous bands from len(laws) + 1 increasing edges."""
        if len(edges) != len(laws) + 1:
            raise InvalidLawTable(f"Need {len(laws) + 1} edges for {len(laws)} laws, got {len(edges)}")
        return cls(LawBand(law, lo, hi) for law, lo, hi in zip(laws, edges, edges[1:]))

    @classmethod
    def default(cls) -> "LawBands":
        return cls.from_edges(DEFAULT_BAND_EDGES, ALL_LAWS)

    @property
    def bands(self) -> Tuple[LawBand, ...]:
        return self._bands

    @property
    def thresholds(self) -> Tuple[float, ...]:
        """Every lower bound, plus the closed upper end 1.0."""
        return tuple(self._lowers) + (1.0,)

    def band_for(self, law: ResonanceLaw) -> Optional[LawBand]:
        for band in self._bands:
            if band.law is law:
                return band
        return None

    def classify(self, score: float) -> ResonanceLaw:
        """Law whose band contains score. Raises ValueError outside [0, 1]."""
        if not (0.0 <= score <= 1.0):
            raise ValueError(f"Score {score} outside the normalized range [0, 1]")
        idx = bisect.bisect_right(self._lowers, score) - 1
        return self._bands[idx].law

    def matching(self, score: float) -> List[ResonanceLaw]:
        """All laws whose band admits score; exactly one for a valid table."""
        last = len(self._bands) - 1
        return [b.law for i, b in enumerate(self._bands) if b.contains(score, closed_top=(i == last))]

    def __iter__(self):
        return iter(self._bands)

    def __len__(self) -> int:
        return len(self._bands)

    def __repr__(self) -> str:
        parts = ", ".join(f"{b.law.name}[{b.lower}, {b.upper})" for b in self._bands)
        return f"LawBands({parts})"


# =============================================================================
# SECTION 3: Scoring
# =============================================================================

@dataclass(frozen=True)
class Resonance:
    """A score together with its classification."""
    score: float
    law: ResonanceLaw

    def __iter__(self):
        # Allows `score, law = scorer.score(a, b)`
        yield self.score
        yield self.law


def _as_signature(obj: Any) -> FactorialSignature:
    if isinstance(obj, FactorialSignature):
        return obj
    sig = getattr(obj, "signature", None)
    if isinstance(sig, FactorialSignature):
        return sig
    raise TypeError(f"Expected a FactorialSignature or an object with one, got {type(obj).__name__}")


def cosine_similarity(a: FactorialSignature, b: FactorialSignature) -> float:
    """
    Normalized dot product over prime exponents.

    Empty signatures (0!, 1!) have no direction and score 0 against anything.
    """
    norm_a, norm_b = a.norm, b.norm
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    value = a.dot(b) / (norm_a * norm_b)
    return float(min(1.0, max(0.0, value)))


class ResonanceScorer:
    """
    Pure scorer: signatures in, (score, law) out.

    Accepts FactorialSignature objects or anything exposing `.signature`
    (nodes). Scoring is symmetric; there is no directional mode.
    """

    def __init__(self, bands: Optional[LawBands] = None):
        self.bands = bands if bands is not None else LawBands.default()

    def similarity(self, a: Any, b: Any) -> float:
        return cosine_similarity(_as_signature(a), _as_signature(b))

    def score(self, a: Any, b: Any = None) -> Resonance:
        """
        Score and classify a pair, or a single object against itself.

        Args:
            a: First signature (or node)
            b: Second signature (or node); omitted for self-classification

        Returns:
            Resonance(score, law)
        """
        if b is None:
            b = a
        value = self.similarity(a, b)
        return Resonance(value, self.bands.classify(value))

    def classify(self, score: float) -> ResonanceLaw:
        return self.bands.classify(score)

    def is_resonant_with(self, a: Any, b: Any,
                         threshold: float = RESONANT_WITH_THRESHOLD) -> bool:
        return self.similarity(a, b) > threshold

    # Batch ---------------------------------------------------------------

    def pairwise_matrix(self, items: Sequence[Any]) -> np.ndarray:
        """
        Symmetric similarity matrix for a batch of signatures.

        Vectorized: one matrix product over unit-normalized exponent rows.
        """
        sigs = [_as_signature(x) for x in items]
        if not sigs:
            return np.zeros((0, 0))
        basis = sorted(set(itertools.chain.from_iterable(s.primes for s in sigs)))
        if not basis:
            return np.zeros((len(sigs), len(sigs)))
        matrix = np.vstack([s.to_vector(tuple(basis)) for s in sigs])
        norms = np.linalg.norm(matrix, axis=1)
        safe = np.where(norms > 0, norms, 1.0)
        unit = matrix / safe[:, None]
        sims = np.clip(unit @ unit.T, 0.0, 1.0)
        sims[norms == 0, :] = 0.0
        sims[:, norms == 0] = 0.0
        return sims

    def score_many(self, pairs: Iterable[Tuple[Any, Any]]) -> List[Resonance]:
        return [self.score(a, b) for a, b in pairs]

    def score_collection(self, items: Sequence[Any]) -> Resonance:
        """
        Classify a collection by the mean pairwise similarity of its members.

        A single member scores against itself. Empty input is an error.
        """
        if not items:
            raise ValueError("Cannot classify an empty collection")
        if len(items) == 1:
            return self.score(items[0])
        sims = self.pairwise_matrix(items)
        upper = sims[np.triu_indices(len(items), k=1)]
        value = float(min(1.0, max(0.0, upper.mean())))
        return Resonance(value, self.bands.classify(value))

