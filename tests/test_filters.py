"""
Tests for Resonance Filters
"""

import pytest

from fractal_resonance.collection import FractalCollection, ResonantFractalCollection
from fractal_resonance.edge import FractalEdge
from fractal_resonance.filters import (
    AllOf,
    AnyOf,
    LabelFilter,
    LawFilter,
    Not,
    PredicateFilter,
    ScoreFilter,
    filter_collection,
)
from fractal_resonance.node import FractalNode
from fractal_resonance.scorer import ALL_LAWS, ResonanceLaw

H, E, N = ResonanceLaw.HARMONY, ResonanceLaw.ECHO, ResonanceLaw.NEUTRAL


def make_collection(cls=FractalCollection):
    nodes = {n: FractalNode.from_n(n) for n in range(2, 8)}
    return cls([
        FractalEdge((nodes[4], nodes[6]), 0.9, H, label="core"),
        FractalEdge((nodes[2], nodes[3]), 0.6, E, label="edge"),
        FractalEdge((nodes[3], nodes[4]), 0.3, N),
    ])


class TestSimpleFilters:
    def test_law_filter(self):
        result = make_collection().filter(LawFilter([H, "echo"]))
        assert [e.law for e in result] == [H, E]

    def test_score_filter_inclusive(self):
        result = make_collection().filter(ScoreFilter(0.6, 0.9))
        assert [e.score_value for e in result] == [0.9, 0.6]
        with pytest.raises(ValueError):
            ScoreFilter(0.8, 0.2)

    def test_label_filter(self):
        result = make_collection().filter(LabelFilter("core"))
        assert [e.label for e in result] == ["core"]

    def test_predicate_filter(self):
        low = PredicateFilter(lambda law, score: score < 0.5, name="low")
        assert [e.law for e in make_collection().filter(low)] == [N]


class TestCompositeFilters:
    def test_all_of(self):
        f = AllOf([LawFilter([H, E]), ScoreFilter(min_score=0.7)])
        assert [e.law for e in make_collection().filter(f)] == [H]

    def test_any_of(self):
        f = AnyOf([LawFilter([N]), ScoreFilter(min_score=0.8)])
        assert [e.law for e in make_collection().filter(f)] == [H, N]

    def test_not(self):
        assert [e.law for e in make_collection().filter(Not(LawFilter([H])))] == [E, N]

    def test_operators(self):
        f = (LawFilter([H]) | LawFilter([N])) & ~ScoreFilter(min_score=0.8)
        assert [e.law for e in make_collection().filter(f)] == [N]


class TestProjection:
    def test_source_untouched(self):
        c = make_collection()
        c.filter(LawFilter([H]))
        assert len(c) == 3

    def test_all_laws_returns_equal_collection(self):
        c = make_collection()
        assert filter_collection(c, ALL_LAWS) == c

    def test_score_predicate(self):
        result = filter_collection(make_collection(), ALL_LAWS, lambda s: s >= 0.6)
        assert len(result) == 2

    def test_no_laws_returns_empty(self):
        assert len(filter_collection(make_collection(), [])) == 0

    def test_keeps_collection_type_and_engine(self):
        c = make_collection(ResonantFractalCollection)
        result = c.filter(LawFilter([H]))
        assert isinstance(result, ResonantFractalCollection)
        assert result.engine is c.engine

    def test_trace(self):
        c = make_collection(ResonantFractalCollection)
        trace = c.trace_filter(LawFilter([H, N]), "laws")
        assert trace.filter_name == "laws"
        assert trace.passed == [0, 2]
        assert trace.failed == [1]
        assert trace.pass_rate == pytest.approx(2 / 3)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
