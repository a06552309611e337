"""Deterministic per-trial seeds.

A trial's seed is a pure function of the run start time, the run id, the
repetition and the level. Fixing the clock and run id reproduces a batch
exactly, while independent runs get independent streams.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime

import numpy as np


def derive_trial_seed(
    started_at_ns: int, run_id: str, repetition: int, level_id: int
) -> int:
    """Derive the RNG seed for one trial.

    Args:
        started_at_ns: Run start time in nanoseconds.
        run_id: Stable identifier of the run.
        repetition: 1-based repetition index.
        level_id: Level business code.

    Returns:
        Seed in ``[0, 2**63)``.

    Example:
        >>> derive_trial_seed(0, "run", 1, 4) == derive_trial_seed(0, "run", 1, 4)
        True
    """
    key = f"{started_at_ns}:{run_id}:rep:{repetition}:level:{level_id}"
    hash_bytes = hashlib.sha256(key.encode()).digest()
    return int.from_bytes(hash_bytes[:8], byteorder="big") % (2**63)


def make_rng(seed: int) -> np.random.Generator:
    """Create the trial-exclusive random generator."""
    return np.random.Generator(np.random.PCG64(seed))


def generate_run_id(prefix: str) -> str:
    """Generate a run id like ``game-101-20250101-120000-a1b2c3``."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{timestamp}-{secrets.token_hex(3)}"
