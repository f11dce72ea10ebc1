"""
Fractal Collections

Algebraic containers of FractalEdges whose membership changes only through
operations the rule engine has validated:

Addition:
    C₁.add(C₂)     - In-place union; every crossing pair is validated first
    C₁ + C₂        - Same, on a copy of C₁

Composition:
    C.compose(T)   - New collection of T(e) for every e; each stage validated
                     as "transform", the end-to-end change as "composition"

Projection:
    C.filter(F)    - New collection of the members F passes

Atomicity: validation runs to completion before anything is touched. A
rejected add raises RuleViolation and leaves both collections unchanged;
compose aborts on the first failing element and returns nothing.

Addition is commutative and associative only when the engine's addition
table is symmetric and transitively closed with no active rewrites
(ResonanceRuleEngine.supports_commutative_addition). The check_* helpers
below test that on concrete collections.
"""

from __future__ import annotations
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union
import logging
import threading

from .edge import FractalEdge
from .errors import RuleViolation, TransformDomainFailure
from .node import FractalNode, ObjectKind, Resonant
from .rules import OpKind, Reject, ResonanceRuleEngine, Rewrite
from .scorer import ALL_LAWS, Resonance, ResonanceLaw, ResonanceScorer
from .transforms import Pipeline, as_pipeline

logger = logging.getLogger(__name__)

EdgeSource = Union["FractalCollection", Iterable[FractalEdge]]


def _coerced(edge: FractalEdge, plan: Dict[FractalEdge, ResonanceLaw]) -> FractalEdge:
    law = plan.get(edge, edge.law)
    return edge if law is edge.law else edge.with_law(law)


class FractalCollection(Resonant):
    """
    Ordered, duplicate-free container of edges.

    Iteration follows insertion order so composition pipelines are
    reproducible; equality ignores order.
    """

    kind = ObjectKind.COLLECTION

    def __init__(self, edges: Iterable[FractalEdge] = (),
                 engine: Optional[ResonanceRuleEngine] = None):
        self.engine = engine or ResonanceRuleEngine()
        self._members: Dict[FractalEdge, None] = {}
        self._lock = threading.RLock()
        self._version = 0
        for edge in edges:
            self._check_type(edge)
            self._replace(self._merged(list(self._members), [edge]))

    # -------------------------------------------------------------------------
    # Container protocol
    # -------------------------------------------------------------------------

    def __iter__(self) -> Iterator[FractalEdge]:
        return iter(self.members())

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, edge: FractalEdge) -> bool:
        return edge in self._members

    def __eq__(self, other) -> bool:
        if not isinstance(other, FractalCollection):
            return NotImplemented
        return set(self.members()) == set(other.members())

    __hash__ = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self)} edge(s))"

    def members(self) -> List[FractalEdge]:
        with self._lock:
            return list(self._members)

    def nodes(self) -> List[FractalNode]:
        """Distinct endpoint nodes, ascending n."""
        seen = {}
        for edge in self.members():
            for node in edge.nodes:
                seen.setdefault(node.n, node)
        return [seen[n] for n in sorted(seen)]

    def copy(self) -> "FractalCollection":
        return self._derive(self.members())

    # -------------------------------------------------------------------------
    # Addition
    # -------------------------------------------------------------------------

    def add(self, other: EdgeSource) -> "FractalCollection":
        """
        Union other into self, all-or-nothing.

        Every (member of self, member of other) pair is validated as
        "addition". Rewrite verdicts coerce the laws of the edges involved;
        rewritten pairs are validated again. A plain iterable of edges is
        first checked pairwise among itself, as the constructor does. Any
        rejection raises RuleViolation with both collections untouched.

        Returns:
            self
        """
        if isinstance(other, FractalCollection):
            incoming = other.members()
        else:
            edges = list(other)
            for edge in edges:
                self._check_type(edge)
            try:
                # Loose edges must also be compatible with each other
                incoming = FractalCollection(edges, engine=self.engine).members()
            except RuleViolation as exc:
                logger.warning("Rejected addition of %d edge(s) into %r: %s", len(edges), self, exc)
                raise
        with self._lock:
            try:
                merged = self._merged(list(self._members), incoming)
            except RuleViolation as exc:
                logger.warning("Rejected addition of %d edge(s) into %r: %s", len(incoming), self, exc)
                raise
            self._replace(merged)
        return self

    def add_edge(self, edge: FractalEdge) -> "FractalCollection":
        return self.add([edge])

    def __add__(self, other: EdgeSource) -> "FractalCollection":
        return self.copy().add(other)

    def _merged(self, left: List[FractalEdge], right: List[FractalEdge]) -> Dict[FractalEdge, None]:
        """Validate left × right and return the union; raises before any change."""
        left_laws: Dict[FractalEdge, ResonanceLaw] = {}
        right_laws: Dict[FractalEdge, ResonanceLaw] = {}

        for a in left:
            for b in right:
                if a == b:
                    continue
                verdict = self.engine.validate(OpKind.ADDITION, (a, b))
                if isinstance(verdict, Reject):
                    raise RuleViolation(verdict, f"{a!r} + {b!r}")
                if isinstance(verdict, Rewrite):
                    self._coerce(left_laws, a, verdict.new_operands[0])
                    self._coerce(right_laws, b, verdict.new_operands[1])

        if left_laws or right_laws:
            self._revalidate([(edge, left_laws.get(edge, edge.law)) for edge in left]
                             + [(edge, right_laws.get(edge, edge.law)) for edge in right])
            for edge, law in list(left_laws.items()) + list(right_laws.items()):
                if law is not edge.law:
                    logger.info("Rewrote %r to %s during addition", edge, law.name)

        merged: Dict[FractalEdge, None] = {}
        for edge in left:
            merged[_coerced(edge, left_laws)] = None
        for edge in right:
            merged.setdefault(_coerced(edge, right_laws), None)
        return merged

    def _revalidate(self, planned: List[Tuple[FractalEdge, ResonanceLaw]]) -> None:
        """Every pair touching a coerced edge must now be plainly allowed."""
        for i, (a, law_a) in enumerate(planned):
            for b, law_b in planned[i + 1:]:
                if a == b or (law_a is a.law and law_b is b.law):
                    continue
                verdict = self.engine.validate(OpKind.ADDITION, (law_a, law_b))
                if isinstance(verdict, Reject):
                    raise RuleViolation(verdict, f"after rewrite of {a!r} + {b!r}")
                if isinstance(verdict, Rewrite):
                    raise RuleViolation(
                        Reject(verdict.op_kind, (law_a, law_b), "rewrite did not reach an allowed pair"),
                        f"{a!r} + {b!r}",
                    )

    @staticmethod
    def _coerce(plan: Dict[FractalEdge, ResonanceLaw], edge: FractalEdge, law: ResonanceLaw) -> None:
        previous = plan.get(edge)
        if previous is not None and previous is not law:
            raise RuleViolation(Reject(
                OpKind.ADDITION.value, (previous, law),
                f"conflicting rewrites for {edge!r}: {previous.name} vs {law.name}",
            ))
        plan[edge] = law

    @staticmethod
    def _check_type(edge) -> None:
        if not isinstance(edge, FractalEdge):
            raise TypeError(f"Collections hold FractalEdge objects, got {type(edge).__name__}")

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def compose(self, pipeline: Pipeline) -> "FractalCollection":
        """
        Apply a transform pipeline to every member, producing a new collection.

        Abort-on-first-failure: a TransformDomainFailure or RuleViolation on
        any element stops the whole composition and propagates; self is
        never modified.
        """
        stages = as_pipeline(pipeline)
        results = [self._compose_one(edge, stages) for edge in self.members()]
        composed = self._clone_empty()
        for edge in results:
            composed._replace(composed._merged(list(composed._members), [edge]))
        return composed

    def _compose_one(self, edge: FractalEdge, stages) -> FractalEdge:
        current = edge
        for index, transform in enumerate(stages):
            try:
                produced = transform.apply(current)
            except TransformDomainFailure as exc:
                raise TransformDomainFailure(
                    transform, f"stage {index} ({transform.name}) on {edge!r}: {exc}", stage=index
                ) from exc
            current = self._admit(OpKind.TRANSFORM, current, produced)
        return self._admit(OpKind.COMPOSITION, edge, current)

    def _admit(self, op_kind: OpKind, before: FractalEdge, after: FractalEdge) -> FractalEdge:
        verdict = self.engine.validate(op_kind, (before, after))
        if isinstance(verdict, Reject):
            raise RuleViolation(verdict, f"{before!r} → {after!r}")
        if isinstance(verdict, Rewrite) and verdict.new_operands[1] is not after.law:
            logger.info("Rewrote %r to %s during %s", after, verdict.new_operands[1].name, op_kind.value)
            return after.with_law(verdict.new_operands[1])
        return after

    # -------------------------------------------------------------------------
    # Projection & capability
    # -------------------------------------------------------------------------

    def filter(self, resonance_filter) -> "FractalCollection":
        """Non-mutating projection through a ResonanceFilter."""
        return resonance_filter.apply(self)

    def select(self, predicate: Callable[[FractalEdge], bool]) -> "FractalCollection":
        """Members for which predicate holds, as a new collection."""
        return self._derive([edge for edge in self.members() if predicate(edge)])

    def score(self, scorer: Optional[ResonanceScorer] = None) -> Resonance:
        """Mean member score, classified through the scorer's bands."""
        scorer = scorer or ResonanceScorer()
        members = self.members()
        if not members:
            raise ValueError("Cannot score an empty collection")
        mean = sum(edge.score_value for edge in members) / len(members)
        mean = min(1.0, max(0.0, mean))
        return Resonance(mean, scorer.classify(mean))

    def node_resonance(self, scorer: Optional[ResonanceScorer] = None) -> Resonance:
        """Mean pairwise similarity of all endpoint nodes."""
        return (scorer or ResonanceScorer()).score_collection(self.nodes())

    def transform(self, transform: Pipeline) -> "FractalCollection":
        return self.compose(transform)

    # -------------------------------------------------------------------------
    # Derivation helpers
    # -------------------------------------------------------------------------

    def _clone_empty(self) -> "FractalCollection":
        return type(self)(engine=self.engine)

    def _replace(self, members: Dict[FractalEdge, None]) -> None:
        with self._lock:
            self._members = members
            self._version += 1

    def _derive(self, edges: Iterable[FractalEdge]) -> "FractalCollection":
        """Collection of already-validated members (subsets, copies)."""
        derived = self._clone_empty()
        derived._replace(dict.fromkeys(edges))
        return derived


# =============================================================================
# Resonant collection
# =============================================================================

class ResonantFractalCollection(FractalCollection):
    """
    Collection that keeps per-member resonance data at hand.

    Scores, laws and the average are recomputed lazily after any mutation.
    """

    def __init__(self, edges: Iterable[FractalEdge] = (),
                 engine: Optional[ResonanceRuleEngine] = None,
                 scorer: Optional[ResonanceScorer] = None):
        self.scorer = scorer or ResonanceScorer()
        self._cache: Optional[Tuple[int, List[float], List[ResonanceLaw]]] = None
        super().__init__(edges, engine)

    @classmethod
    def from_collection(cls, collection: FractalCollection,
                        scorer: Optional[ResonanceScorer] = None) -> "ResonantFractalCollection":
        resonant = cls(engine=collection.engine, scorer=scorer)
        resonant._replace(dict.fromkeys(collection.members()))
        return resonant

    def _clone_empty(self) -> "ResonantFractalCollection":
        return type(self)(engine=self.engine, scorer=self.scorer)

    def _evaluate(self) -> Tuple[List[float], List[ResonanceLaw]]:
        with self._lock:
            if self._cache is None or self._cache[0] != self._version:
                members = list(self._members)
                self._cache = (
                    self._version,
                    [edge.score_value for edge in members],
                    [edge.law for edge in members],
                )
            return self._cache[1], self._cache[2]

    def reevaluate(self) -> None:
        with self._lock:
            self._cache = None

    @property
    def resonance_scores(self) -> List[float]:
        return list(self._evaluate()[0])

    @property
    def resonance_laws(self) -> List[ResonanceLaw]:
        return list(self._evaluate()[1])

    @property
    def average_resonance(self) -> float:
        scores = self._evaluate()[0]
        return sum(scores) / len(scores) if scores else 0.0

    def law_counts(self) -> Dict[ResonanceLaw, int]:
        counts = {law: 0 for law in ALL_LAWS}
        for law in self._evaluate()[1]:
            counts[law] += 1
        return counts

    def classify(self, scorer: Optional[ResonanceScorer] = None) -> ResonanceLaw:
        return self.score(scorer or self.scorer).law

    def trace_filter(self, resonance_filter, name: str = ""):
        """Which member indices pass or fail a filter."""
        return resonance_filter.trace(self, name)


# =============================================================================
# Algebraic law checks
# =============================================================================

def _outcome(operation: Callable[[], FractalCollection]) -> Optional[frozenset]:
    """Membership of the result, or None when the rule engine refused."""
    try:
        return frozenset(operation().members())
    except RuleViolation:
        return None


def check_commutative_addition(a: FractalCollection, b: FractalCollection) -> bool:
    """a + b and b + a agree on success and on membership."""
    return _outcome(lambda: a + b) == _outcome(lambda: b + a)


def check_associative_addition(a: FractalCollection, b: FractalCollection,
                               c: FractalCollection) -> bool:
    """(a + b) + c and a + (b + c) agree on success and on membership."""
    return _outcome(lambda: (a + b) + c) == _outcome(lambda: a + (b + c))
