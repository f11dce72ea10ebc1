# fractal_resonance/constants.py
"""
Fractal Resonance Constants

This module defines constants used throughout the fractal resonance system:

LAYER 1: Similarity Constants (Edge Formation)
- DEFAULT_THRESHOLD: Minimum similarity for an edge to exist
- DEFAULT_FANOUT: Maximum neighbors returned per query (k)
- SIMILARITY_EPSILON: Slack added to spatial ball radii before exact re-scoring
- NEIGHBOR_CACHE_SIZE: Bound on each index query cache

LAYER 2: Law Bands (Classification)
- DEFAULT_BAND_EDGES: Lower bounds of DISSONANCE, NEUTRAL, ECHO, HARMONY
- Every score in [0, 1] falls in exactly one band

LAYER 3: Transform Constants
- INVARIANCE_TOLERANCE: |Δscore| below this counts as invariant
- DEFAULT_DAMPING_PIVOT: Score that damping pulls toward (NEUTRAL midpoint)
"""


# =============================================================================
# LAYER 1: Similarity Constants (Edge Formation)
# =============================================================================

# Edge exists iff cosine similarity > DEFAULT_THRESHOLD (strict)
DEFAULT_THRESHOLD = 0.5

# Neighbor fan-out bound for queries and traversal expansion
DEFAULT_FANOUT = 8

# Ball radius slack for the spatial facet (candidates are re-scored exactly)
SIMILARITY_EPSILON = 1e-9

# Entries kept per query cache (neighbor lists, scored edges); oldest evicted first
NEIGHBOR_CACHE_SIZE = 4096

assert 0.0 <= DEFAULT_THRESHOLD < 1.0, "Threshold must satisfy 0 ≤ t < 1"
assert DEFAULT_FANOUT >= 1, "Fan-out must be >= 1"
assert NEIGHBOR_CACHE_SIZE >= 1, "Cache size must be >= 1"


# =============================================================================
# LAYER 2: Law Bands (Classification)
# =============================================================================

# Lower bounds (closed) of DISSONANCE, NEUTRAL, ECHO, HARMONY.
# The last band is closed at 1.0 as well.
DEFAULT_BAND_EDGES = (0.0, 0.25, 0.5, 0.75, 1.0)

assert DEFAULT_BAND_EDGES[0] == 0.0 and DEFAULT_BAND_EDGES[-1] == 1.0
assert all(a < b for a, b in zip(DEFAULT_BAND_EDGES, DEFAULT_BAND_EDGES[1:])), \
    "Band edges must be strictly increasing"

# Similarity above which two objects are "resonant with" each other
RESONANT_WITH_THRESHOLD = 0.8


# =============================================================================
# LAYER 3: Transform Constants
# =============================================================================

INVARIANCE_TOLERANCE = 0.01

# Midpoint of the default NEUTRAL band [0.25, 0.5)
DEFAULT_DAMPING_PIVOT = 0.375

assert DEFAULT_BAND_EDGES[1] <= DEFAULT_DAMPING_PIVOT < DEFAULT_BAND_EDGES[2]
