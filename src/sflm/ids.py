"""
Stable identifier generation.

Every Block, Question, Choice, ScalePoint, Condition, Branch and skip rule
receives a stable id exactly once, at creation time. Ids are never
recomputed; sequential labels (Q1, BL2, ...) are derived elsewhere.

The generator is swappable so tests can produce deterministic ids.
"""
from __future__ import annotations

import itertools
import uuid
from typing import Callable


def _uuid_generator(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


_implementation: Callable[[str], str] = _uuid_generator


def generate_id(prefix: str) -> str:
    """Return a fresh stable id such as ``q-1f3a9c0b2d4e``."""
    return _implementation(prefix)


def set_id_generator(fn: Callable[[str], str] | None) -> None:
    """Replace the id generator. ``None`` restores the uuid-based default."""
    global _implementation
    _implementation = fn or _uuid_generator


def sequential_id_generator() -> Callable[[str], str]:
    """Build a deterministic generator: ``q-1``, ``q-2``, ``c-3``..."""
    counter = itertools.count(1)

    def _next(prefix: str) -> str:
        return f"{prefix}-{next(counter)}"

    return _next
