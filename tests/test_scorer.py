"""
Tests for Resonance Scoring and Law Bands
"""

import pytest
import numpy as np

from fractal_resonance.errors import InvalidLawTable
from fractal_resonance.node import FractalNode
from fractal_resonance.scorer import (
    ALL_LAWS,
    LawBand,
    LawBands,
    ResonanceLaw,
    ResonanceScorer,
    cosine_similarity,
)
from fractal_resonance.signature import FactorialSignature, signature_for


class TestResonanceLaw:
    def test_ordering(self):
        assert ALL_LAWS == (ResonanceLaw.DISSONANCE, ResonanceLaw.NEUTRAL,
                            ResonanceLaw.ECHO, ResonanceLaw.HARMONY)
        assert ResonanceLaw.DISSONANCE < ResonanceLaw.HARMONY

    def test_parse(self):
        assert ResonanceLaw.parse("Harmony") is ResonanceLaw.HARMONY
        assert ResonanceLaw.parse(ResonanceLaw.ECHO) is ResonanceLaw.ECHO
        with pytest.raises(ValueError):
            ResonanceLaw.parse("chaos")


class TestLawBands:
    def test_default_boundaries(self):
        bands = LawBands.default()
        assert bands.classify(0.0) is ResonanceLaw.DISSONANCE
        assert bands.classify(0.2499) is ResonanceLaw.DISSONANCE
        assert bands.classify(0.25) is ResonanceLaw.NEUTRAL
        assert bands.classify(0.5) is ResonanceLaw.ECHO
        assert bands.classify(0.75) is ResonanceLaw.HARMONY
        assert bands.classify(1.0) is ResonanceLaw.HARMONY

    def test_every_threshold_has_exactly_one_law(self):
        bands = LawBands.default()
        for t in bands.thresholds:
            for score in (t, np.nextafter(t, 0.0), np.nextafter(t, 1.0)):
                if 0.0 <= score <= 1.0:
                    assert len(bands.matching(float(score))) == 1
                    assert bands.matching(float(score)) == [bands.classify(float(score))]

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            LawBands.default().classify(1.0001)
        with pytest.raises(ValueError):
            LawBands.default().classify(-0.1)

    def test_gap_rejected(self):
        with pytest.raises(InvalidLawTable):
            LawBands([
                LawBand(ResonanceLaw.DISSONANCE, 0.0, 0.4),
                LawBand(ResonanceLaw.HARMONY, 0.5, 1.0),
            ])

    def test_overlap_rejected(self):
        with pytest.raises(InvalidLawTable):
            LawBands([
                LawBand(ResonanceLaw.DISSONANCE, 0.0, 0.6),
                LawBand(ResonanceLaw.HARMONY, 0.5, 1.0),
            ])

    def test_duplicate_law_rejected(self):
        with pytest.raises(InvalidLawTable):
            LawBands([
                LawBand(ResonanceLaw.HARMONY, 0.0, 0.5),
                LawBand(ResonanceLaw.HARMONY, 0.5, 1.0),
            ])

    def test_must_cover_unit_interval(self):
        with pytest.raises(InvalidLawTable):
            LawBands([LawBand(ResonanceLaw.HARMONY, 0.1, 1.0)])
        with pytest.raises(InvalidLawTable):
            LawBands([LawBand(ResonanceLaw.HARMONY, 0.0, 0.9)])

    def test_custom_two_band_table(self):
        bands = LawBands.from_edges((0.0, 0.9, 1.0), (ResonanceLaw.NEUTRAL, ResonanceLaw.HARMONY))
        assert bands.classify(0.95) is ResonanceLaw.HARMONY
        assert bands.classify(0.5) is ResonanceLaw.NEUTRAL
        assert bands.band_for(ResonanceLaw.ECHO) is None


class TestCosineSimilarity:
    def test_four_and_six_factorial(self):
        # dot 14, norms √10 and √21
        sim = cosine_similarity(signature_for(4), signature_for(6))
        assert sim == pytest.approx(14 / np.sqrt(210))
        assert sim == pytest.approx(0.966092, abs=1e-6)

    def test_symmetry(self):
        for a in range(2, 10):
            for b in range(2, 10):
                assert cosine_similarity(signature_for(a), signature_for(b)) == \
                    pytest.approx(cosine_similarity(signature_for(b), signature_for(a)))

    def test_range(self):
        for a in range(0, 12):
            for b in range(0, 12):
                assert 0.0 <= cosine_similarity(signature_for(a), signature_for(b)) <= 1.0

    def test_empty_signature_scores_zero(self):
        assert cosine_similarity(FactorialSignature({}), signature_for(5)) == 0.0

    def test_disjoint_primes(self):
        assert cosine_similarity(FactorialSignature({2: 1}), FactorialSignature({3: 1})) == 0.0


class TestResonanceScorer:
    def test_score_pair(self):
        scorer = ResonanceScorer()
        score, law = scorer.score(signature_for(4), signature_for(6))
        assert law is ResonanceLaw.HARMONY
        assert score == pytest.approx(0.966092, abs=1e-6)

    def test_accepts_nodes(self):
        scorer = ResonanceScorer()
        a, b = FractalNode.from_n(4), FractalNode.from_n(6)
        assert scorer.score(a, b) == scorer.score(a.signature, b.signature)

    def test_self_score(self):
        scorer = ResonanceScorer()
        score, law = scorer.score(signature_for(7))
        assert score == pytest.approx(1.0)
        assert law is ResonanceLaw.HARMONY

    def test_custom_bands_change_law(self):
        strict = LawBands.from_edges((0.0, 0.99, 1.0), (ResonanceLaw.ECHO, ResonanceLaw.HARMONY))
        assert ResonanceScorer(strict).score(signature_for(4), signature_for(6)).law is ResonanceLaw.ECHO

    def test_is_resonant_with(self):
        scorer = ResonanceScorer()
        assert scorer.is_resonant_with(signature_for(5), signature_for(6))
        assert not scorer.is_resonant_with(FactorialSignature({2: 1}), FactorialSignature({3: 1}))

    def test_pairwise_matrix_matches_pairwise_scores(self):
        scorer = ResonanceScorer()
        sigs = [signature_for(n) for n in (1, 2, 4, 6, 9)]
        matrix = scorer.pairwise_matrix(sigs)
        assert matrix.shape == (5, 5)
        for i, a in enumerate(sigs):
            for j, b in enumerate(sigs):
                assert matrix[i, j] == pytest.approx(cosine_similarity(a, b))

    def test_score_collection(self):
        scorer = ResonanceScorer()
        sigs = [signature_for(n) for n in (4, 5, 6)]
        expected = np.mean([
            cosine_similarity(sigs[0], sigs[1]),
            cosine_similarity(sigs[0], sigs[2]),
            cosine_similarity(sigs[1], sigs[2]),
        ])
        result = scorer.score_collection(sigs)
        assert result.score == pytest.approx(expected)
        assert result.law is ResonanceLaw.HARMONY

    def test_score_collection_single_and_empty(self):
        scorer = ResonanceScorer()
        assert scorer.score_collection([signature_for(3)]).score == pytest.approx(1.0)
        with pytest.raises(ValueError):
            scorer.score_collection([])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
