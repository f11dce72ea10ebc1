"""
Resonance Rule Engine

The engine decides whether a proposed combination is legal:

    validate(op_kind, (law_a, law_b)) → Allow | Reject(reason) | Rewrite(new laws)

The decision is pure data. A RuleTable maps (law_a, law_b, op_kind) to an
entry, so new laws or operations are registered rather than coded:

    engine.register(HARMONY, DISSONANCE, "addition", VerdictKind.REJECT)

Operand order per op kind:
- addition:     (member of self, member of other)
- transform:    (law before a stage, law after it)
- composition:  (law before a pipeline, law after it)

Rewrite verdicts coerce operands (e.g. a borderline NEUTRAL × DISSONANCE
pairing becomes NEUTRAL × NEUTRAL). They are only honored when the engine
was built with allow_rewrite=True; otherwise a rewrite entry is reported as
a Reject that says so.
"""

from __future__ import annotations
from typing import Any, Dict, Iterator, Optional, Sequence, Set, Tuple, Union
from dataclasses import dataclass
from enum import Enum
import itertools
import logging

from .errors import InvalidLawTable, RuleViolation
from .scorer import ALL_LAWS, ResonanceLaw

logger = logging.getLogger(__name__)

LawPair = Tuple[ResonanceLaw, ResonanceLaw]


class OpKind(str, Enum):
    """Built-in operation kinds. Any other string may be registered too."""
    ADDITION = "addition"
    COMPOSITION = "composition"
    TRANSFORM = "transform"


def _op_name(op_kind: Union[str, OpKind]) -> str:
    return op_kind.value if isinstance(op_kind, OpKind) else str(op_kind)


def _parse_law(law: Union[str, ResonanceLaw]) -> ResonanceLaw:
    try:
        return ResonanceLaw.parse(law)
    except ValueError as exc:
        raise InvalidLawTable(str(exc)) from None


class VerdictKind(Enum):
    ALLOW = "allow"
    REJECT = "reject"
    REWRITE = "rewrite"

    @classmethod
    def parse(cls, value: Union[str, "VerdictKind"]) -> "VerdictKind":
        if isinstance(value, VerdictKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown verdict: {value!r}") from None


# =============================================================================
# SECTION 1: Verdicts
# =============================================================================

@dataclass(frozen=True)
class Allow:
    op_kind: str
    laws: LawPair

    kind = VerdictKind.ALLOW

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Reject:
    """Machine-checkable refusal: which law pair broke which op's rule."""
    op_kind: str
    laws: LawPair
    reason: str

    kind = VerdictKind.REJECT

    @property
    def allowed(self) -> bool:
        return False


@dataclass(frozen=True)
class Rewrite:
    """Accept after coercing the operands to new_operands."""
    op_kind: str
    laws: LawPair
    new_operands: LawPair
    reason: str = ""

    kind = VerdictKind.REWRITE

    @property
    def allowed(self) -> bool:
        return True


Verdict = Union[Allow, Reject, Rewrite]


# =============================================================================
# SECTION 2: Rule Table
# =============================================================================

@dataclass(frozen=True)
class RuleEntry:
    verdict: VerdictKind
    rewrite_to: Optional[LawPair] = None
    reason: str = ""

    def __post_init__(self):
        if self.verdict is VerdictKind.REWRITE:
            if self.rewrite_to is None or len(self.rewrite_to) != 2:
                raise InvalidLawTable("A rewrite rule needs a two-law rewrite target")
            if not all(isinstance(law, ResonanceLaw) for law in self.rewrite_to):
                raise InvalidLawTable(f"Rewrite target must be laws, got {self.rewrite_to!r}")
        elif self.rewrite_to is not None:
            raise InvalidLawTable(f"Only rewrite rules take a target, got one for {self.verdict.value}")


class RuleTable:
    """
    (law_a, law_b, op_kind) → RuleEntry.

    Keys not present fall back to the table default (REJECT unless set
    otherwise), which keeps the allowed set closed.
    """

    def __init__(self, default: Union[str, VerdictKind] = VerdictKind.REJECT):
        default = VerdictKind.parse(default)
        if default is VerdictKind.REWRITE:
            raise InvalidLawTable("The default verdict cannot be a rewrite")
        self.default = RuleEntry(default, reason="no explicit rule")
        self._entries: Dict[Tuple[ResonanceLaw, ResonanceLaw, str], RuleEntry] = {}

    def set(self, law_a: Union[str, ResonanceLaw], law_b: Union[str, ResonanceLaw], op_kind: Union[str, OpKind],
            verdict: Union[str, VerdictKind], rewrite_to: Optional[LawPair] = None,
            reason: str = "", symmetric: bool = True) -> None:
        """Add or replace a rule; symmetric rules also cover (law_b, law_a)."""
        law_a, law_b = _parse_law(law_a), _parse_law(law_b)
        if rewrite_to is not None:
            if isinstance(rewrite_to, str) or len(rewrite_to) != 2:
                raise InvalidLawTable(f"Rewrite target must name two laws, got {rewrite_to!r}")
            rewrite_to = (_parse_law(rewrite_to[0]), _parse_law(rewrite_to[1]))
        op = _op_name(op_kind)
        entry = RuleEntry(VerdictKind.parse(verdict),
                          tuple(rewrite_to) if rewrite_to is not None else None,
                          reason)
        if (symmetric and law_a is law_b and entry.rewrite_to
                and entry.rewrite_to[0] is not entry.rewrite_to[1]):
            raise InvalidLawTable(
                f"Symmetric rewrite of {law_a.name} × {law_a.name} must target equal laws"
            )
        self._entries[(law_a, law_b, op)] = entry
        if symmetric and law_a is not law_b:
            mirrored = (entry.rewrite_to[1], entry.rewrite_to[0]) if entry.rewrite_to else None
            self._entries[(law_b, law_a, op)] = RuleEntry(entry.verdict, mirrored, reason)

    def allow(self, law_a, law_b, op_kind, symmetric: bool = True) -> None:
        self.set(law_a, law_b, op_kind, VerdictKind.ALLOW, symmetric=symmetric)

    def reject(self, law_a, law_b, op_kind, reason: str = "", symmetric: bool = True) -> None:
        self.set(law_a, law_b, op_kind, VerdictKind.REJECT, reason=reason, symmetric=symmetric)

    def rewrite(self, law_a, law_b, op_kind, rewrite_to: LawPair,
                reason: str = "", symmetric: bool = True) -> None:
        self.set(law_a, law_b, op_kind, VerdictKind.REWRITE, rewrite_to, reason, symmetric)

    def lookup(self, law_a: ResonanceLaw, law_b: ResonanceLaw,
               op_kind: Union[str, OpKind]) -> RuleEntry:
        return self._entries.get((law_a, law_b, _op_name(op_kind)), self.default)

    def has_rule(self, law_a, law_b, op_kind) -> bool:
        return (law_a, law_b, _op_name(op_kind)) in self._entries

    def op_kinds(self) -> Set[str]:
        return {op for _, _, op in self._entries}

    def entries(self) -> Iterator[Tuple[Tuple[ResonanceLaw, ResonanceLaw, str], RuleEntry]]:
        return iter(sorted(self._entries.items(), key=lambda kv: (kv[0][2], kv[0][0].rank, kv[0][1].rank)))

    def copy(self) -> "RuleTable":
        clone = RuleTable(self.default.verdict)
        clone._entries = dict(self._entries)
        return clone

    # Algebraic properties ------------------------------------------------

    def allowed_pairs(self, op_kind: Union[str, OpKind]) -> Set[LawPair]:
        return {
            (a, b) for a, b in itertools.product(ALL_LAWS, repeat=2)
            if self.lookup(a, b, op_kind).verdict is VerdictKind.ALLOW
        }

    def has_rewrites(self, op_kind: Union[str, OpKind]) -> bool:
        return any(
            self.lookup(a, b, op_kind).verdict is VerdictKind.REWRITE
            for a, b in itertools.product(ALL_LAWS, repeat=2)
        )

    def is_symmetric(self, op_kind: Union[str, OpKind]) -> bool:
        """verdict(a, b) == verdict(b, a), rewrites mirrored, for every law pair."""
        for a, b in itertools.product(ALL_LAWS, repeat=2):
            left, right = self.lookup(a, b, op_kind), self.lookup(b, a, op_kind)
            if left.verdict is not right.verdict:
                return False
            if left.rewrite_to and left.rewrite_to != (right.rewrite_to[1], right.rewrite_to[0]):
                return False
        return True

    def is_transitively_closed(self, op_kind: Union[str, OpKind]) -> bool:
        """(a, b) and (b, c) allowed implies (a, c) allowed."""
        allowed = self.allowed_pairs(op_kind)
        for (a, b), (b2, c) in itertools.product(allowed, repeat=2):
            if b is b2 and (a, c) not in allowed:
                return False
        return True

    def __len__(self) -> int:
        return len(self._entries)


def default_rule_table() -> RuleTable:
    """
    Built-in algebra.

    addition:
      - HARMONY, ECHO and NEUTRAL combine freely with each other
      - DISSONANCE combines with DISSONANCE
      - HARMONY × DISSONANCE and ECHO × DISSONANCE are rejected
      - NEUTRAL × DISSONANCE rewrites to NEUTRAL × NEUTRAL
    transform / composition:
      - any change of law except a direct HARMONY → DISSONANCE collapse
    """
    H, E, N, D = (ResonanceLaw.HARMONY, ResonanceLaw.ECHO,
                  ResonanceLaw.NEUTRAL, ResonanceLaw.DISSONANCE)
    table = RuleTable(default=VerdictKind.REJECT)

    for a, b in itertools.combinations_with_replacement((H, E, N), 2):
        table.allow(a, b, OpKind.ADDITION)
    table.allow(D, D, OpKind.ADDITION)
    table.reject(H, D, OpKind.ADDITION, reason="harmony cannot absorb dissonance")
    table.reject(E, D, OpKind.ADDITION, reason="echo cannot absorb dissonance")
    table.rewrite(N, D, OpKind.ADDITION, (N, N), reason="borderline dissonance downgraded to neutral")

    for op in (OpKind.TRANSFORM, OpKind.COMPOSITION):
        for before, after in itertools.product(ALL_LAWS, repeat=2):
            table.allow(before, after, op, symmetric=False)
        table.reject(H, D, op, reason="direct collapse from harmony to dissonance", symmetric=False)
    return table


# =============================================================================
# SECTION 3: Engine
# =============================================================================

def _law_of(operand: Any) -> ResonanceLaw:
    if isinstance(operand, ResonanceLaw):
        return operand
    law = getattr(operand, "law", None)
    if isinstance(law, ResonanceLaw):
        return law
    raise TypeError(f"Operand has no resonance law: {operand!r}")


class ResonanceRuleEngine:
    """
    Central arbiter for collection-level operations.

    Args:
        table: Rule table (defaults to default_rule_table())
        allow_rewrite: Honor REWRITE entries; when False they reject
    """

    def __init__(self, table: Optional[RuleTable] = None, allow_rewrite: bool = False):
        self.table = table if table is not None else default_rule_table()
        self.allow_rewrite = allow_rewrite

    def validate(self, op_kind: Union[str, OpKind], operands: Sequence[Any]) -> Verdict:
        """
        Judge a binary combination.

        Args:
            op_kind: Operation kind ("addition", "transform", "composition", or registered)
            operands: Two laws, or two objects carrying a `law`

        Returns:
            Allow, Reject(reason) or Rewrite(new_operands)
        """
        if len(operands) != 2:
            raise ValueError(f"validate expects two operands, got {len(operands)}")
        op = _op_name(op_kind)
        laws = (_law_of(operands[0]), _law_of(operands[1]))
        entry = self.table.lookup(laws[0], laws[1], op)

        if entry.verdict is VerdictKind.ALLOW:
            return Allow(op, laws)
        if entry.verdict is VerdictKind.REWRITE:
            if self.allow_rewrite:
                return Rewrite(op, laws, entry.rewrite_to, entry.reason)
            return Reject(op, laws,
                          f"{op}: {laws[0].name} × {laws[1].name} needs a rewrite to "
                          f"{entry.rewrite_to[0].name} × {entry.rewrite_to[1].name}, "
                          f"but rewrites are disabled")
        detail = f" ({entry.reason})" if entry.reason else ""
        return Reject(op, laws, f"{op}: {laws[0].name} × {laws[1].name} is not allowed{detail}")

    def require(self, op_kind: Union[str, OpKind], operands: Sequence[Any]) -> Verdict:
        """validate, raising RuleViolation on Reject."""
        verdict = self.validate(op_kind, operands)
        if isinstance(verdict, Reject):
            raise RuleViolation(verdict)
        return verdict

    def register(self, law_a: Union[str, ResonanceLaw], law_b: Union[str, ResonanceLaw], op_kind: Union[str, OpKind],
                 verdict: Union[str, VerdictKind], rewrite_to: Optional[LawPair] = None,
                 reason: str = "", symmetric: bool = True) -> None:
        """Plug a rule into the table without touching engine logic."""
        self.table.set(law_a, law_b, op_kind, verdict, rewrite_to, reason, symmetric)
        logger.info("Registered %s rule %s × %s → %s", _op_name(op_kind),
                    _parse_law(law_a).name, _parse_law(law_b).name, VerdictKind.parse(verdict).value)

    def supports_commutative_addition(self, op_kind: Union[str, OpKind] = OpKind.ADDITION) -> bool:
        """
        Precondition for commutative, associative addition: a symmetric,
        transitively closed allowed set with no active rewrites.
        """
        if not (self.table.is_symmetric(op_kind) and self.table.is_transitively_closed(op_kind)):
            return False
        return not (self.allow_rewrite and self.table.has_rewrites(op_kind))
