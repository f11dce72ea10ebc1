"""
Fractal Index: Graph + Trie + Spatial Facets over Fractal Nodes

One node table, three query facets:

================================================================================
FACETS
================================================================================

GRAPH (edges are computed, never stored by the caller)
- An edge (a, b) exists iff sim(a, b) > threshold
- neighbors(node, k, threshold): descending similarity, ties by ascending n
- edge(a, b): cached FractalEdge
- traverse(start, depth_limit, visitor): bounded self-similar expansion

TRIE (prefix sharing over position keys)
- position_key(n!) = exponents of 2, 3, 5, ... in order
- with_prefix((v2, v3)): every node whose key starts with (v2, v3)

SPATIAL (signatures as vectors)
- Unit-normalized, zero-padded exponent rows in a scipy cKDTree
- For unit vectors ‖u − v‖² = 2 − 2·cos(u, v), so the similarity threshold
  t becomes a Euclidean ball of radius √(2 − 2t)
- Ball candidates are re-scored exactly; the tree only prunes

================================================================================
CONCURRENCY
================================================================================

Single writer, many readers. Queries share a read lock; insert takes the
write lock and drops the neighbor cache. The kd-tree is rebuilt lazily on
the first query after an insert. Nodes with an empty signature (n = 1) have
no direction and are never anyone's neighbor.

The neighbor and edge caches each hold at most config.cache_size entries;
the oldest entry is evicted first.
"""

from __future__ import annotations
from typing import Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
import logging
import threading

import numpy as np
from scipy.spatial import cKDTree

from .constants import DEFAULT_FANOUT, DEFAULT_THRESHOLD, NEIGHBOR_CACHE_SIZE, SIMILARITY_EPSILON
from .edge import FractalEdge
from .errors import DuplicateKey, TraversalBoundExceeded
from .node import FractalNode
from .scorer import ResonanceScorer, cosine_similarity
from .signature import FactorialSignature, SignatureProvider, legendre_signature, primes_up_to

logger = logging.getLogger(__name__)

NodeRef = Union[FractalNode, int]
Visitor = Callable[[FractalNode], None]


# =============================================================================
# SECTION 1: Configuration
# =============================================================================

@dataclass(frozen=True)
class IndexConfig:
    """
    Defaults for index queries.

    threshold: edge exists iff similarity > threshold
    fanout: neighbors kept per query (k)
    max_traversal_nodes: optional cap on nodes visited by one traversal
    cache_size: entries kept per query cache before the oldest is evicted
    """
    threshold: float = DEFAULT_THRESHOLD
    fanout: int = DEFAULT_FANOUT
    max_traversal_nodes: Optional[int] = None
    cache_size: int = NEIGHBOR_CACHE_SIZE

    def __post_init__(self):
        if not (0.0 <= self.threshold < 1.0):
            raise ValueError(f"threshold must satisfy 0 ≤ t < 1, got {self.threshold}")
        if self.fanout < 1:
            raise ValueError(f"fanout must be >= 1, got {self.fanout}")
        if self.max_traversal_nodes is not None and self.max_traversal_nodes < 1:
            raise ValueError(f"max_traversal_nodes must be >= 1, got {self.max_traversal_nodes}")
        if self.cache_size < 1:
            raise ValueError(f"cache_size must be >= 1, got {self.cache_size}")


class _ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# =============================================================================
# SECTION 2: Trie Facet
# =============================================================================

class _TrieNode:
    __slots__ = ("children", "members")

    def __init__(self):
        self.children: Dict[int, "_TrieNode"] = {}
        self.members: set = set()


class SignatureTrie:
    """
    Prefix tree over position keys.

    Every trie node records the ids of all keys passing through it, so a
    prefix query costs O(len(prefix)) plus the size of the answer.
    """

    def __init__(self):
        self._root = _TrieNode()

    def insert(self, key: Sequence[int], n: int) -> None:
        cursor = self._root
        cursor.members.add(n)
        for exponent in key:
            cursor = cursor.children.setdefault(exponent, _TrieNode())
            cursor.members.add(n)

    def with_prefix(self, prefix: Sequence[int]) -> List[int]:
        cursor = self._root
        for exponent in prefix:
            cursor = cursor.children.get(exponent)
            if cursor is None:
                return []
        return sorted(cursor.members)

    @staticmethod
    def common_prefix_length(a: Sequence[int], b: Sequence[int]) -> int:
        length = 0
        for x, y in zip(a, b):
            if x != y:
                break
            length += 1
        return length


# =============================================================================
# SECTION 3: Query Results
# =============================================================================

class Neighbor(NamedTuple):
    node: FractalNode
    similarity: float


class TraversalStatus(Enum):
    EXHAUSTED = "exhausted"
    DEPTH_BOUND = "depth_bound"
    FANOUT_BOUND = "fanout_bound"


@dataclass
class TraversalResult:
    """
    Outcome of one traversal.

    order: node ids in visit order (each exactly once)
    depths: hop count from start along the traversal tree
    tree_edges: (parent, child, similarity) for every descent taken
    depth_bound_hit: some node at depth_limit still had unvisited neighbors
    fanout_bound_hit: a neighbor list was cut at k, or max_nodes was reached
    """
    start: int
    order: List[int] = field(default_factory=list)
    depths: Dict[int, int] = field(default_factory=dict)
    tree_edges: List[Tuple[int, int, float]] = field(default_factory=list)
    depth_bound_hit: bool = False
    fanout_bound_hit: bool = False

    @property
    def status(self) -> TraversalStatus:
        if self.depth_bound_hit:
            return TraversalStatus.DEPTH_BOUND
        if self.fanout_bound_hit:
            return TraversalStatus.FANOUT_BOUND
        return TraversalStatus.EXHAUSTED

    @property
    def exhausted(self) -> bool:
        return self.status is TraversalStatus.EXHAUSTED

    def raise_for_bounds(self) -> "TraversalResult":
        if not self.exhausted:
            raise TraversalBoundExceeded(self)
        return self


# =============================================================================
# SECTION 4: FractalIndex
# =============================================================================

class FractalIndex:
    """
    Hybrid graph/trie/spatial index keyed by node identity n.

    Example:
        >>> index = FractalIndex()
        >>> for n in range(2, 8):
        ...     index.insert_n(n)
        >>> [nb.node.n for nb in index.neighbors(6, k=2)]
        [5, 7]
    """

    def __init__(self,
                 config: Optional[IndexConfig] = None,
                 scorer: Optional[ResonanceScorer] = None,
                 provider: SignatureProvider = legendre_signature):
        self.config = config or IndexConfig()
        self.scorer = scorer or ResonanceScorer()
        self.provider = provider

        self._lock = _ReadWriteLock()
        self._nodes: Dict[int, FractalNode] = {}
        self._trie = SignatureTrie()
        self._neighbor_cache: Dict[Tuple[int, int, float], Tuple[List[Neighbor], bool]] = {}
        self._edge_cache: Dict[Tuple[int, int], FractalEdge] = {}
        self._cache_lock = threading.Lock()

        # Spatial facet, rebuilt lazily
        self._build_lock = threading.Lock()
        self._dirty = True
        self._basis: Tuple[int, ...] = ()
        self._row_ids: np.ndarray = np.zeros(0, dtype=np.int64)
        self._tree: Optional[cKDTree] = None

    # -------------------------------------------------------------------------
    # Insertion (write side)
    # -------------------------------------------------------------------------

    def insert(self, node: FractalNode) -> FractalNode:
        """
        Add a node. Re-inserting an existing n raises DuplicateKey and leaves
        the index untouched.
        """
        if not isinstance(node, FractalNode):
            raise TypeError(f"Expected FractalNode, got {type(node).__name__}")
        with self._lock.write():
            if node.n in self._nodes:
                raise DuplicateKey(node.n)
            self._store(node)
        return node

    def insert_n(self, n: int, depth: Optional[int] = None) -> FractalNode:
        """Build a node from the signature provider and insert it."""
        return self.insert(FractalNode.from_n(n, self.provider, depth=depth))

    def insert_many(self, nodes: Iterable[FractalNode]) -> List[FractalNode]:
        """All-or-nothing bulk insert."""
        batch = list(nodes)
        with self._lock.write():
            seen = set()
            for node in batch:
                if node.n in self._nodes or node.n in seen:
                    raise DuplicateKey(node.n)
                seen.add(node.n)
            for node in batch:
                self._store(node)
        return batch

    def _store(self, node: FractalNode) -> None:
        self._nodes[node.n] = node
        self._trie.insert(node.position_key, node.n)
        self._neighbor_cache.clear()
        self._dirty = True

    # -------------------------------------------------------------------------
    # Node table
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, ref: NodeRef) -> bool:
        n = ref.n if isinstance(ref, FractalNode) else ref
        return n in self._nodes

    def __iter__(self) -> Iterator[FractalNode]:
        with self._lock.read():
            nodes = [self._nodes[n] for n in sorted(self._nodes)]
        return iter(nodes)

    def get(self, ref: NodeRef) -> FractalNode:
        with self._lock.read():
            return self._resolve(ref)

    def _resolve(self, ref: NodeRef) -> FractalNode:
        n = ref.n if isinstance(ref, FractalNode) else ref
        try:
            return self._nodes[n]
        except KeyError:
            raise KeyError(f"Node n={n} not in index") from None

    # -------------------------------------------------------------------------
    # Spatial facet
    # -------------------------------------------------------------------------

    def _ensure_tree(self) -> None:
        if not self._dirty:
            return
        with self._build_lock:
            if not self._dirty:
                return
            largest = max((node.signature.largest_prime for node in self._nodes.values()), default=0)
            basis = primes_up_to(largest)
            ids, rows = [], []
            for n in sorted(self._nodes):
                sig = self._nodes[n].signature
                if sig.norm == 0.0:
                    continue
                ids.append(n)
                rows.append(sig.to_vector(basis) / sig.norm)
            self._basis = basis
            self._row_ids = np.array(ids, dtype=np.int64)
            self._tree = cKDTree(np.vstack(rows)) if rows else None
            self._dirty = False
            logger.debug("Rebuilt spatial facet: %d rows over %d primes", len(ids), len(basis))

    def _query_vector(self, signature: FactorialSignature) -> Tuple[np.ndarray, float]:
        """Unit query restricted to the basis, plus its squared in-basis mass."""
        projected = signature.to_vector(self._basis) / signature.norm
        return projected, float(projected @ projected)

    def _candidates(self, signature: FactorialSignature, threshold: float) -> List[int]:
        if self._tree is None or signature.norm == 0.0:
            return []
        vector, mass = self._query_vector(signature)
        # ‖q − u‖² = mass + 1 − 2·cos(q, u) for unit rows u
        radius = float(np.sqrt(max(0.0, mass + 1.0 - 2.0 * threshold))) + SIMILARITY_EPSILON
        hits = self._tree.query_ball_point(vector, radius)
        return [int(self._row_ids[i]) for i in hits]

    def _ranked(self, signature: FactorialSignature, threshold: float,
                exclude: Optional[int] = None) -> List[Neighbor]:
        self._ensure_tree()
        ranked = []
        for n in self._candidates(signature, threshold):
            if n == exclude:
                continue
            node = self._nodes[n]
            sim = cosine_similarity(signature, node.signature)
            if sim > threshold:
                ranked.append(Neighbor(node, sim))
        ranked.sort(key=lambda nb: (-nb.similarity, nb.node.n))
        return ranked

    # -------------------------------------------------------------------------
    # Graph facet (read side)
    # -------------------------------------------------------------------------

    def _cache_put(self, cache: Dict, key, value) -> None:
        # Readers fill caches concurrently; dicts keep insertion order
        with self._cache_lock:
            if key not in cache and len(cache) >= self.config.cache_size:
                del cache[next(iter(cache))]
            cache[key] = value

    def _neighbors_unlocked(self, node: FractalNode, k: int,
                            threshold: float) -> Tuple[List[Neighbor], bool]:
        key = (node.n, k, threshold)
        cached = self._neighbor_cache.get(key)
        if cached is not None:
            return cached
        ranked = self._ranked(node.signature, threshold, exclude=node.n)
        result = (ranked[:k], len(ranked) > k)
        self._cache_put(self._neighbor_cache, key, result)
        return result

    def neighbors(self, ref: NodeRef, k: Optional[int] = None,
                  threshold: Optional[float] = None) -> List[Neighbor]:
        """
        Nodes whose similarity to ref exceeds threshold.

        Args:
            ref: Indexed node or its n
            k: Maximum neighbors (defaults to config.fanout)
            threshold: Strict lower bound on similarity (defaults to config.threshold)

        Returns:
            Neighbors ordered by descending similarity, ties by ascending n
        """
        k, threshold = self._defaults(k, threshold)
        with self._lock.read():
            node = self._resolve(ref)
            found, _ = self._neighbors_unlocked(node, k, threshold)
            return list(found)

    def similar_to(self, signature: FactorialSignature, k: Optional[int] = None,
                   threshold: Optional[float] = None) -> List[Neighbor]:
        """Neighbor query for a signature that need not be indexed."""
        k, threshold = self._defaults(k, threshold)
        with self._lock.read():
            return self._ranked(signature, threshold)[:k]

    def nearest(self, ref: NodeRef, k: int = 1) -> List[Neighbor]:
        """The k most similar nodes, whatever their similarity."""
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        with self._lock.read():
            node = self._resolve(ref)
            self._ensure_tree()
            if self._tree is None or node.signature.norm == 0.0:
                return []
            vector, _ = self._query_vector(node.signature)
            want = min(k + 1, len(self._row_ids))
            _, idx = self._tree.query(vector, k=want)
            ranked = []
            for i in np.atleast_1d(idx):
                n = int(self._row_ids[i])
                if n == node.n:
                    continue
                other = self._nodes[n]
                ranked.append(Neighbor(other, cosine_similarity(node.signature, other.signature)))
            ranked.sort(key=lambda nb: (-nb.similarity, nb.node.n))
            return ranked[:k]

    def edge(self, a: NodeRef, b: NodeRef) -> FractalEdge:
        """Scored edge between two indexed nodes (cached)."""
        with self._lock.read():
            left, right = self._resolve(a), self._resolve(b)
            key = (min(left.n, right.n), max(left.n, right.n))
            cached = self._edge_cache.get(key)
            if cached is None:
                cached = FractalEdge.between(left, right, self.scorer)
                self._cache_put(self._edge_cache, key, cached)
            return cached

    def edges_from(self, ref: NodeRef, k: Optional[int] = None,
                   threshold: Optional[float] = None) -> List[FractalEdge]:
        """Edges from ref to each of its neighbors, in neighbor order."""
        return [self.edge(ref, nb.node) for nb in self.neighbors(ref, k, threshold)]

    # -------------------------------------------------------------------------
    # Trie facet
    # -------------------------------------------------------------------------

    def with_prefix(self, prefix: Sequence[int]) -> List[FractalNode]:
        """Nodes whose position key starts with prefix, ascending n."""
        with self._lock.read():
            return [self._nodes[n] for n in self._trie.with_prefix(tuple(prefix))]

    def shared_prefix(self, a: NodeRef, b: NodeRef) -> int:
        """Length of the common position-key prefix of two nodes."""
        with self._lock.read():
            return SignatureTrie.common_prefix_length(
                self._resolve(a).position_key, self._resolve(b).position_key
            )

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def traverse(self, start: NodeRef, depth_limit: int,
                 visitor: Optional[Visitor] = None,
                 threshold: Optional[float] = None,
                 k: Optional[int] = None,
                 max_nodes: Optional[int] = None) -> TraversalResult:
        """
        Recursive self-similar expansion from start.

        Each node is expanded into its neighbors, which are expanded in turn
        with depth − 1. Expansion runs breadth-first in neighbor order, so
        the result is the full depth_limit-hop neighbourhood (within the
        k and threshold bounds). visitor sees every reached node exactly
        once. The visited set is keyed by n, so cycles in the similarity
        graph are harmless.

        The visitor runs under the index read lock and must not insert.

        Args:
            start: Start node or its n
            depth_limit: Maximum hops from start (0 visits start only)
            visitor: Called once per visited node
            threshold: Edge threshold (defaults to config.threshold)
            k: Fan-out per expansion (defaults to config.fanout)
            max_nodes: Optional cap on visited nodes

        Returns:
            TraversalResult; status tells a natural end from a bound
        """
        if depth_limit < 0:
            raise ValueError(f"depth_limit must be >= 0, got {depth_limit}")
        k, threshold = self._defaults(k, threshold)
        if max_nodes is None:
            max_nodes = self.config.max_traversal_nodes

        with self._lock.read():
            root = self._resolve(start)
            result = TraversalResult(start=root.n)
            visited = set()

            def visit(node: FractalNode, depth: int) -> None:
                visited.add(node.n)
                result.order.append(node.n)
                result.depths[node.n] = depth
                if visitor is not None:
                    visitor(node)

            visit(root, 0)
            # Level by level, so every node is first reached by a shortest path
            queue = deque([(root, depth_limit)])
            while queue:
                node, remaining = queue.popleft()
                found, truncated = self._neighbors_unlocked(node, k, threshold)
                if remaining == 0:
                    # All nodes within depth_limit hops are visited by now
                    if any(nb.node.n not in visited for nb in found):
                        result.depth_bound_hit = True
                    continue
                if truncated:
                    result.fanout_bound_hit = True
                for nb in found:
                    if nb.node.n in visited:
                        continue
                    if max_nodes is not None and len(result.order) >= max_nodes:
                        result.fanout_bound_hit = True
                        queue.clear()
                        break
                    visit(nb.node, result.depths[node.n] + 1)
                    result.tree_edges.append((node.n, nb.node.n, nb.similarity))
                    queue.append((nb.node, remaining - 1))

        if not result.exhausted:
            logger.debug("Traversal from n=%d ended at %s after %d node(s)",
                         result.start, result.status.value, len(result.order))
        return result

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _defaults(self, k: Optional[int], threshold: Optional[float]) -> Tuple[int, float]:
        k = self.config.fanout if k is None else k
        threshold = self.config.threshold if threshold is None else threshold
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        if not (0.0 <= threshold < 1.0):
            raise ValueError(f"threshold must satisfy 0 ≤ t < 1, got {threshold}")
        return k, float(threshold)
