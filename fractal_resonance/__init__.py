"""
Fractal Resonance - Prime-Signature Resonance Algebra

Integers are placed by the prime factorization of n!, related by cosine
similarity of those signatures, and classified into resonance laws. Edges
and collections of edges form an algebra whose operations are gated by a
data-driven rule engine.
"""

__version__ = "0.1.0"

from .signature import FactorialSignature, legendre_signature, primes_up_to, signature_for
from .scorer import LawBand, LawBands, Resonance, ResonanceLaw, ResonanceScorer, cosine_similarity
from .node import FractalNode, ObjectKind, Resonant
from .edge import FractalEdge
from .index import FractalIndex, IndexConfig, Neighbor, TraversalResult, TraversalStatus
from .transforms import (
    CompositeTransform,
    DampingTransform,
    FunctionTransform,
    IdentityTransform,
    ResonantTransform,
    ScaleTransform,
    ShiftTransform,
)
from .rules import (
    Allow,
    OpKind,
    Reject,
    ResonanceRuleEngine,
    Rewrite,
    RuleTable,
    VerdictKind,
    default_rule_table,
)
from .collection import (
    FractalCollection,
    ResonantFractalCollection,
    check_associative_addition,
    check_commutative_addition,
)
from .filters import (
    AllOf,
    AnyOf,
    FilterTrace,
    LabelFilter,
    LawFilter,
    Not,
    PredicateFilter,
    ResonanceFilter,
    ScoreFilter,
    filter_collection,
)
from .config import DEFAULT_LAW_TABLE, LawConfig, law_config_from_dict, load_law_config
from .errors import (
    DuplicateKey,
    FractalResonanceError,
    InvalidLawTable,
    RuleViolation,
    TransformDomainFailure,
    TraversalBoundExceeded,
)

__all__ = [
    "FactorialSignature",
    "legendre_signature",
    "primes_up_to",
    "signature_for",
    "LawBand",
    "LawBands",
    "Resonance",
    "ResonanceLaw",
    "ResonanceScorer",
    "cosine_similarity",
    "FractalNode",
    "ObjectKind",
    "Resonant",
    "FractalEdge",
    "FractalIndex",
    "IndexConfig",
    "Neighbor",
    "TraversalResult",
    "TraversalStatus",
    "CompositeTransform",
    "DampingTransform",
    "FunctionTransform",
    "IdentityTransform",
    "ResonantTransform",
    "ScaleTransform",
    "ShiftTransform",
    "Allow",
    "OpKind",
    "Reject",
    "ResonanceRuleEngine",
    "Rewrite",
    "RuleTable",
    "VerdictKind",
    "default_rule_table",
    "FractalCollection",
    "ResonantFractalCollection",
    "check_associative_addition",
    "check_commutative_addition",
    "AllOf",
    "AnyOf",
    "FilterTrace",
    "LabelFilter",
    "LawFilter",
    "Not",
    "PredicateFilter",
    "ResonanceFilter",
    "ScoreFilter",
    "filter_collection",
    "DEFAULT_LAW_TABLE",
    "LawConfig",
    "law_config_from_dict",
    "load_law_config",
    "DuplicateKey",
    "FractalResonanceError",
    "InvalidLawTable",
    "RuleViolation",
    "TransformDomainFailure",
    "TraversalBoundExceeded",
]
