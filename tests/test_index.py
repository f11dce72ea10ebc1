"""
Tests for the Fractal Index (graph, trie and spatial facets)
"""

import threading

import pytest

from fractal_resonance.errors import DuplicateKey, TraversalBoundExceeded
from fractal_resonance.index import FractalIndex, IndexConfig, TraversalStatus
from fractal_resonance.node import FractalNode
from fractal_resonance.scorer import ResonanceLaw, cosine_similarity
from fractal_resonance.signature import FactorialSignature, signature_for


def build_index(ns, **config):
    index = FractalIndex(IndexConfig(**config)) if config else FractalIndex()
    for n in ns:
        index.insert_n(n)
    return index


class TestIndexConfig:
    def test_defaults(self):
        config = IndexConfig()
        assert config.threshold == 0.5
        assert config.fanout == 8

    def test_invalid(self):
        with pytest.raises(ValueError):
            IndexConfig(threshold=1.0)
        with pytest.raises(ValueError):
            IndexConfig(fanout=0)
        with pytest.raises(ValueError):
            IndexConfig(max_traversal_nodes=0)
        with pytest.raises(ValueError):
            IndexConfig(cache_size=0)


class TestInsertion:
    def test_insert_and_lookup(self):
        index = build_index(range(2, 8))
        assert len(index) == 6
        assert 6 in index
        assert FractalNode.from_n(6) in index
        assert index.get(6).signature == signature_for(6)
        assert [node.n for node in index] == [2, 3, 4, 5, 6, 7]

    def test_duplicate_key(self):
        index = build_index([5])
        with pytest.raises(DuplicateKey) as exc_info:
            index.insert_n(5)
        assert exc_info.value.n == 5
        assert isinstance(exc_info.value, KeyError)
        assert len(index) == 1

    def test_insert_many_is_all_or_nothing(self):
        index = build_index([5])
        with pytest.raises(DuplicateKey):
            index.insert_many([FractalNode.from_n(20), FractalNode.from_n(5)])
        assert 20 not in index
        assert len(index) == 1

    def test_unknown_node(self):
        with pytest.raises(KeyError):
            build_index([2, 3]).neighbors(9)


class TestNeighbors:
    def test_ordering_by_similarity(self):
        index = build_index(range(2, 8))
        assert [nb.node.n for nb in index.neighbors(6, k=2)] == [5, 7]

    def test_similarities_descend_and_exceed_threshold(self):
        index = build_index(range(2, 12))
        found = index.neighbors(6, threshold=0.9)
        sims = [nb.similarity for nb in found]
        assert sims == sorted(sims, reverse=True)
        assert all(s > 0.9 for s in sims)
        assert 6 not in [nb.node.n for nb in found]
        assert [nb.node.n for nb in found[:3]] == [10, 11, 5]

    def test_matches_brute_force(self):
        index = build_index(range(2, 20))
        for n in (3, 8, 13):
            expected = sorted(
                (m for m in range(2, 20) if m != n
                 and cosine_similarity(signature_for(n), signature_for(m)) > 0.95),
                key=lambda m: (-cosine_similarity(signature_for(n), signature_for(m)), m),
            )
            assert [nb.node.n for nb in index.neighbors(n, k=50, threshold=0.95)] == expected

    def test_ties_break_by_ascending_n(self):
        index = FractalIndex()
        index.insert(FractalNode(10, {2: 1}))
        index.insert(FractalNode(7, {2: 1, 3: 1}))
        index.insert(FractalNode(3, {2: 1, 3: 1}))
        index.insert(FractalNode(5, {2: 1}))
        assert [nb.node.n for nb in index.neighbors(10)] == [5, 3, 7]

    def test_threshold_is_strict(self):
        index = FractalIndex()
        index.insert(FractalNode(10, {2: 1}))
        index.insert(FractalNode(3, {2: 1, 3: 1}))
        index.insert(FractalNode(5, {2: 1}))
        boundary = cosine_similarity(FactorialSignature({2: 1}), FactorialSignature({2: 1, 3: 1}))
        assert [nb.node.n for nb in index.neighbors(10, threshold=boundary)] == [5]

    def test_fanout_limit(self):
        index = build_index(range(2, 12))
        assert len(index.neighbors(6, k=3)) == 3

    def test_empty_signature_is_isolated(self):
        index = build_index([1, 2, 3])
        assert index.neighbors(1) == []
        assert 1 not in [nb.node.n for nb in index.neighbors(2)]

    def test_cache_invalidated_on_insert(self):
        index = build_index(range(2, 8))
        assert [nb.node.n for nb in index.neighbors(6, k=2)] == [5, 7]
        index.insert_n(10)
        assert [nb.node.n for nb in index.neighbors(6, k=2)] == [10, 5]

    def test_cache_is_bounded(self):
        index = build_index(range(2, 12), cache_size=2)
        for threshold in (0.5, 0.6, 0.7):
            index.neighbors(6, threshold=threshold)
        assert len(index._neighbor_cache) <= 2
        assert [nb.node.n for nb in index.neighbors(6, k=2, threshold=0.5)] == [10, 11]
        for other in (2, 3, 4):
            index.edge(6, other)
        assert len(index._edge_cache) <= 2

    def test_nearest(self):
        index = build_index(range(2, 8))
        assert [nb.node.n for nb in index.nearest(6)] == [5]
        with pytest.raises(ValueError):
            index.nearest(6, k=0)

    def test_similar_to_unindexed_signature(self):
        index = build_index([2, 3, 4, 5, 7])
        assert index.similar_to(signature_for(6), k=1)[0].node.n == 5


class TestEdges:
    def test_edge(self):
        index = build_index(range(2, 8))
        edge = index.edge(6, 4)
        assert edge.ids == (4, 6)
        assert edge.law is ResonanceLaw.HARMONY
        assert index.edge(4, 6) is edge

    def test_edges_from(self):
        index = build_index(range(2, 8))
        assert [e.ids for e in index.edges_from(6, k=2)] == [(5, 6), (6, 7)]


class TestTrie:
    def test_with_prefix(self):
        index = build_index(range(2, 8))
        assert [node.n for node in index.with_prefix((3, 1))] == [4, 5]
        assert [node.n for node in index.with_prefix((4, 2))] == [6, 7]
        assert [node.n for node in index.with_prefix((1,))] == [2, 3]
        assert len(index.with_prefix(())) == 6
        assert index.with_prefix((9,)) == []

    def test_shared_prefix(self):
        index = build_index(range(2, 8))
        assert index.shared_prefix(6, 7) == 3
        assert index.shared_prefix(4, 6) == 0


class TestTraversal:
    def test_visits_each_node_once_and_terminates(self):
        index = build_index(range(2, 8))
        seen = []
        result = index.traverse(6, depth_limit=5, visitor=lambda node: seen.append(node.n))
        assert sorted(result.order) == [2, 3, 4, 5, 6, 7]
        assert seen == result.order
        assert len(set(seen)) == len(seen)
        assert result.status is TraversalStatus.EXHAUSTED
        assert result.raise_for_bounds() is result

    def test_depth_zero_visits_start_only(self):
        index = build_index(range(2, 8))
        result = index.traverse(6, depth_limit=0)
        assert result.order == [6]
        assert result.status is TraversalStatus.DEPTH_BOUND

    def test_depth_one_follows_neighbor_order(self):
        index = build_index(range(2, 8))
        result = index.traverse(6, depth_limit=1)
        assert result.order == [6, 5, 7, 4, 3, 2]
        assert all(result.depths[n] == 1 for n in result.order[1:])
        assert result.exhausted

    def test_fanout_bound(self):
        index = build_index(range(2, 8))
        result = index.traverse(6, depth_limit=10, k=1)
        assert result.order == [6, 5]
        assert result.status is TraversalStatus.FANOUT_BOUND
        with pytest.raises(TraversalBoundExceeded) as exc_info:
            result.raise_for_bounds()
        assert exc_info.value.result is result

    def test_max_nodes(self):
        index = build_index(range(2, 12))
        result = index.traverse(6, depth_limit=10, max_nodes=3)
        assert len(result.order) == 3
        assert result.fanout_bound_hit

    def test_cycles_are_harmless(self):
        index = FractalIndex()
        for n in (11, 12, 13):
            index.insert(FractalNode(n, {2: 1, 3: 1}))
        result = index.traverse(11, depth_limit=10)
        assert result.order == [11, 12, 13]
        assert result.exhausted

    def test_tree_edges(self):
        index = build_index(range(2, 8))
        result = index.traverse(6, depth_limit=1, k=2)
        assert [(p, c) for p, c, _ in result.tree_edges] == [(6, 5), (6, 7)]

    def test_reaches_full_depth_neighbourhood(self):
        index = build_index(range(2, 60))
        result = index.traverse(2, depth_limit=2, threshold=0.9, k=2)
        assert 17 in result.order

    def test_matches_breadth_first_reachability(self):
        index = build_index(range(2, 40))
        for start, depth in ((2, 2), (9, 3), (20, 1)):
            reached = {start: 0}
            frontier = [start]
            for hop in range(1, depth + 1):
                nxt = []
                for n in frontier:
                    for nb in index.neighbors(n, k=3, threshold=0.9):
                        if nb.node.n not in reached:
                            reached[nb.node.n] = hop
                            nxt.append(nb.node.n)
                frontier = nxt
            result = index.traverse(start, depth_limit=depth, threshold=0.9, k=3)
            assert result.depths == reached

    def test_negative_depth(self):
        with pytest.raises(ValueError):
            build_index([2, 3]).traverse(2, depth_limit=-1)


class TestConcurrency:
    def test_concurrent_readers_and_writer(self):
        index = build_index(range(2, 10))
        errors = []

        def read():
            try:
                for _ in range(50):
                    index.neighbors(6, k=3)
                    index.traverse(4, depth_limit=2)
            except Exception as exc:  # pragma: no cover
                errors.append(exc)

        def write():
            try:
                for n in range(20, 40):
                    index.insert_n(n)
            except Exception as exc:  # pragma: no cover
                errors.append(exc)

        threads = [threading.Thread(target=read) for _ in range(4)] + [threading.Thread(target=write)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        assert len(index) == 8 + 20


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
