"""
Tests for Fractal Nodes and Edges
"""

import pytest

from fractal_resonance.edge import FractalEdge
from fractal_resonance.errors import TransformDomainFailure
from fractal_resonance.node import FractalNode, ObjectKind
from fractal_resonance.scorer import ResonanceLaw, ResonanceScorer
from fractal_resonance.signature import signature_for
from fractal_resonance.transforms import IdentityTransform, ScaleTransform


class TestFractalNode:
    def test_from_n(self):
        node = FractalNode.from_n(6)
        assert node.n == 6
        assert node.signature == signature_for(6)
        assert node.position_key == (4, 2, 1)
        assert node.kind is ObjectKind.NODE

    def test_default_depth_is_prime_count(self):
        assert FractalNode.from_n(6).depth == 3
        assert FractalNode.from_n(11).depth == 5
        assert FractalNode.from_n(6, depth=1).depth == 1

    def test_identity_is_n(self):
        assert FractalNode.from_n(5) == FractalNode(5, {2: 1})
        assert hash(FractalNode.from_n(5)) == hash(FractalNode(5, {2: 1}))

    def test_invalid_identity(self):
        with pytest.raises(ValueError):
            FractalNode.from_n(0)
        with pytest.raises(ValueError):
            FractalNode(3, {2: 1}, depth=-1)

    def test_self_score(self):
        score, law = FractalNode.from_n(4).score(ResonanceScorer())
        assert score == pytest.approx(1.0)
        assert law is ResonanceLaw.HARMONY

    def test_only_identity_transforms_nodes(self):
        node = FractalNode.from_n(4)
        assert node.transform(IdentityTransform()) is node
        with pytest.raises(TransformDomainFailure):
            node.transform(ScaleTransform(0.5))


class TestFractalEdge:
    def test_between(self):
        edge = FractalEdge.between(FractalNode.from_n(6), FractalNode.from_n(4))
        assert edge.ids == (4, 6)
        assert edge.law is ResonanceLaw.HARMONY
        assert edge.score_value == pytest.approx(0.966092, abs=1e-6)
        assert edge.kind is ObjectKind.EDGE

    def test_endpoint_order_does_not_matter(self):
        a, b = FractalNode.from_n(3), FractalNode.from_n(8)
        assert FractalEdge.between(a, b) == FractalEdge.between(b, a)

    def test_invalid_edges(self):
        node = FractalNode.from_n(3)
        with pytest.raises(ValueError):
            FractalEdge((node,), 0.5, ResonanceLaw.ECHO)
        with pytest.raises(ValueError):
            FractalEdge((node, node), 0.5, ResonanceLaw.ECHO)
        with pytest.raises(ValueError):
            FractalEdge((node, FractalNode.from_n(4)), 1.5, ResonanceLaw.ECHO)

    def test_identity_includes_law_and_score(self):
        edge = FractalEdge.between(FractalNode.from_n(4), FractalNode.from_n(6))
        assert edge.with_law(ResonanceLaw.ECHO) != edge
        assert edge.with_law(ResonanceLaw.HARMONY) == edge
        assert edge.key == ((4, 6), ResonanceLaw.HARMONY, edge.score_value)

    def test_label_not_part_of_identity(self):
        a, b = FractalNode.from_n(4), FractalNode.from_n(6)
        assert FractalEdge.between(a, b, label="x") == FractalEdge.between(a, b, label="y")

    def test_spanning(self):
        nodes = [FractalNode.from_n(n) for n in (4, 5, 6)]
        edge = FractalEdge.spanning(nodes)
        assert edge.ids == (4, 5, 6)
        assert edge.score_value == pytest.approx(ResonanceScorer().score_collection(nodes).score)

    def test_score_is_intrinsic(self):
        edge = FractalEdge((FractalNode.from_n(2), FractalNode.from_n(3)), 0.1, ResonanceLaw.DISSONANCE)
        assert edge.classify(ResonanceScorer()) is ResonanceLaw.DISSONANCE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
