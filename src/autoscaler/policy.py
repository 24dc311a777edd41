# src/autoscaler/policy.py — v1
"""Proportional replica computation."""

from __future__ import annotations

import math


def clamp(value: int, min_replicas: int, max_replicas: int) -> int:
    return max(min_replicas, min(max_replicas, value))


def compute_desired_replicas(
    current: int,
    observed: float,
    target: float,
    min_replicas: int,
    max_replicas: int,
) -> int:
    """``clamp(ceil(current * observed / target), min, max)``.

    A workload currently at zero replicas is computed from ``min_replicas``.

    >>> compute_desired_replicas(2, 80.0, 40.0, 2, 5)
    4
    """
    if target <= 0:
        raise ValueError("target must be > 0")
    base = current if current > 0 else min_replicas
    # Rounding first keeps float noise (4.0000000001) from adding a replica.
    raw = math.ceil(round(base * observed / target, 6))
    return clamp(raw, min_replicas, max_replicas)
