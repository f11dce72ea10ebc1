"""
Factorial Signatures

A factorial signature is the prime-exponent vector of n!:

    n! = Π_p p^{v_p(n!)}    →    {p: v_p(n!)}

Signatures are immutable, hashable mappings ordered by prime. The core never
factorizes anything itself: it consumes a SignatureProvider, a pure function
n → {prime: exponent}. `legendre_signature` is the default provider, using
Legendre's formula v_p(n!) = Σ_{i≥1} ⌊n / p^i⌋.
"""

from __future__ import annotations
from typing import Callable, Dict, Iterator, Mapping, Tuple
from collections.abc import Mapping as MappingABC
from functools import lru_cache

import numpy as np


SignatureProvider = Callable[[int], Mapping[int, int]]


# =============================================================================
# SECTION 1: Primes
# =============================================================================

@lru_cache(maxsize=64)
def primes_up_to(limit: int) -> Tuple[int, ...]:
    """
    All primes p ≤ limit, ascending (sieve of Eratosthenes).

    Example:
        >>> primes_up_to(10)
        (2, 3, 5, 7)
    """
    if limit < 2:
        return ()
    sieve = np.ones(limit + 1, dtype=bool)
    sieve[:2] = False
    for p in range(2, int(limit ** 0.5) + 1):
        if sieve[p]:
            sieve[p * p::p] = False
    return tuple(int(p) for p in np.flatnonzero(sieve))


# =============================================================================
# SECTION 2: FactorialSignature
# =============================================================================

class FactorialSignature(MappingABC):
    """
    Immutable mapping prime → exponent.

    Zero exponents are dropped so that equal factorizations compare equal
    regardless of how the provider spelled them.
    """

    __slots__ = ("_items", "_lookup")

    def __init__(self, exponents: Mapping[int, int]):
        items = []
        for prime, exponent in exponents.items():
            if isinstance(prime, bool) or not isinstance(prime, (int, np.integer)) or prime < 2:
                raise ValueError(f"Invalid prime key: {prime!r}")
            if isinstance(exponent, bool) or not isinstance(exponent, (int, np.integer)):
                raise ValueError(f"Exponent for {prime} must be an integer, got {exponent!r}")
            if exponent < 0:
                raise ValueError(f"Exponent for {prime} must be non-negative, got {exponent}")
            if exponent:
                items.append((int(prime), int(exponent)))
        items.sort()
        object.__setattr__(self, "_items", tuple(items))
        object.__setattr__(self, "_lookup", dict(items))

    def __setattr__(self, name, value):
        raise AttributeError("FactorialSignature is immutable")

    # Mapping protocol ------------------------------------------------------

    def __getitem__(self, prime: int) -> int:
        return self._lookup[prime]

    def __iter__(self) -> Iterator[int]:
        return (p for p, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __hash__(self) -> int:
        return hash(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, FactorialSignature):
            return self._items == other._items
        if isinstance(other, MappingABC):
            return self._lookup == {p: e for p, e in other.items() if e}
        return NotImplemented

    def __repr__(self) -> str:
        body = ", ".join(f"{p}: {e}" for p, e in self._items)
        return f"FactorialSignature({{{body}}})"

    # Derived views ---------------------------------------------------------

    @property
    def primes(self) -> Tuple[int, ...]:
        return tuple(p for p, _ in self._items)

    @property
    def largest_prime(self) -> int:
        return self._items[-1][0] if self._items else 0

    @property
    def total_exponent(self) -> int:
        """Ω: number of prime factors counted with multiplicity."""
        return sum(e for _, e in self._items)

    @property
    def norm(self) -> float:
        return float(np.sqrt(sum(e * e for _, e in self._items)))

    def dot(self, other: "FactorialSignature") -> int:
        """Σ_p a[p]·b[p] over shared primes."""
        small, large = (self, other) if len(self) <= len(other) else (other, self)
        return sum(e * large._lookup.get(p, 0) for p, e in small._items)

    def position_key(self) -> Tuple[int, ...]:
        """
        Exponents for every prime up to the largest one present, in order.

        Missing primes contribute 0, so keys of different signatures line up
        position-by-position and can share trie prefixes.
        """
        return tuple(self._lookup.get(p, 0) for p in primes_up_to(self.largest_prime))

    def to_vector(self, primes: Tuple[int, ...]) -> np.ndarray:
        """Dense float vector over the given prime basis."""
        return np.array([self._lookup.get(p, 0) for p in primes], dtype=np.float64)

    def as_dict(self) -> Dict[int, int]:
        return dict(self._items)


# =============================================================================
# SECTION 3: Default Provider
# =============================================================================

def legendre_signature(n: int) -> Dict[int, int]:
    """
    Prime-exponent vector of n! by Legendre's formula.

    Example:
        >>> legendre_signature(6)
        {2: 4, 3: 2, 5: 1}
    """
    if isinstance(n, bool) or not isinstance(n, (int, np.integer)) or n < 0:
        raise ValueError(f"n must be a non-negative integer, got {n!r}")
    result = {}
    for p in primes_up_to(int(n)):
        exponent, power = 0, p
        while power <= n:
            exponent += n // power
            power *= p
        result[p] = exponent
    return result


def signature_for(n: int, provider: SignatureProvider = legendre_signature) -> FactorialSignature:
    """Ask the provider for n! and wrap the result."""
    return FactorialSignature(provider(n))
