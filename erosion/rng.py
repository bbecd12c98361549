"""Deterministic splittable seed streams for droplet spawning."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib

import numpy as np


_SEED_MASK = (1 << 64) - 1


def _normalize_seed(seed: int) -> int:
    return int(seed) & _SEED_MASK


def derive_seed(parent_seed: int, key: str, *, namespace: str = "erosion-v1") -> int:
    """Derive a child seed from a parent seed and a label."""

    payload = f"{namespace}:{_normalize_seed(parent_seed)}:{key}".encode("utf-8")
    digest = hashlib.blake2b(payload, digest_size=8, person=b"dropfork").digest()
    return int.from_bytes(digest, byteorder="big", signed=False)


@dataclass(frozen=True)
class RngStream:
    """Immutable seed holder that forks child streams by label.

    A tile worker receives ``stream.for_tile(x, y)`` so that a seeded
    partitioned run produces the same droplets no matter which worker
    picks up which tile.
    """

    seed: int
    namespace: str = "erosion-v1"

    @classmethod
    def from_entropy(cls) -> "RngStream":
        entropy = np.random.SeedSequence().entropy
        return cls(_normalize_seed(int(entropy)))

    def fork(self, key: str) -> "RngStream":
        if not key:
            raise ValueError("fork key must be non-empty")
        return RngStream(derive_seed(self.seed, key, namespace=self.namespace), self.namespace)

    def for_tile(self, tile_x: int, tile_y: int, *, stage: str = "tile") -> "RngStream":
        return self.fork(f"{stage}-{int(tile_x)}-{int(tile_y)}")

    def generator(self) -> np.random.Generator:
        return np.random.Generator(np.random.PCG64(_normalize_seed(self.seed)))
