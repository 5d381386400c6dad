from __future__ import annotations

import zlib

import numpy as np


def make_rng(seed: int | np.random.SeedSequence | None = None) -> np.random.Generator:
    """Return an explicit generator; ``None`` seeds from OS entropy."""
    return np.random.default_rng(seed)


def keyed_seed(root: np.random.SeedSequence, key: str) -> np.random.SeedSequence:
    """Child seed addressed by name rather than position.

    Streams for ``key`` do not depend on which other keys are derived from
    the same root, or in what order.
    """
    return np.random.SeedSequence(root.entropy, spawn_key=(*root.spawn_key, zlib.crc32(key.encode("utf-8"))))
