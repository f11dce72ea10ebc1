"""
Error Types

Every failure the core reports is a subclass of FractalResonanceError, so
callers can catch the whole family or a single kind. Construction-time
misconfiguration (InvalidLawTable) is the only kind meant to be fatal.
"""

from __future__ import annotations
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .rules import Reject
    from .index import TraversalResult


class FractalResonanceError(Exception):
    """Base class for all fractal resonance errors."""


class DuplicateKey(FractalResonanceError, KeyError):
    """A node with the same identity n is already indexed."""

    def __init__(self, n: int):
        self.n = n
        super().__init__(f"Node n={n} already present in index")

    def __str__(self) -> str:
        return self.args[0]


class RuleViolation(FractalResonanceError):
    """The rule engine rejected a proposed combination."""

    def __init__(self, verdict: "Reject", detail: str = ""):
        self.verdict = verdict
        message = verdict.reason
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    @property
    def laws(self):
        return self.verdict.laws

    @property
    def op_kind(self) -> str:
        return self.verdict.op_kind


class TransformDomainFailure(FractalResonanceError, ValueError):
    """A transform is undefined for its input."""

    def __init__(self, transform: Any, message: str, stage: int = -1):
        self.transform = transform
        self.stage = stage
        super().__init__(message)


class TraversalBoundExceeded(FractalResonanceError):
    """A traversal stopped at its depth or fan-out bound rather than exhausting."""

    def __init__(self, result: "TraversalResult"):
        self.result = result
        super().__init__(
            f"Traversal from n={result.start} stopped at {result.status.value} "
            f"after visiting {len(result.order)} node(s)"
        )


class InvalidLawTable(FractalResonanceError, ValueError):
    """Law bands or rule table are incomplete or inconsistent."""
