"""
``memopipe``
============

Provides a memoizing adapter for lazily produced sequences, so that
expensive elements are computed once on the first traversal and
replayed from memory on every traversal after that.
"""
from ._version import __version__
from . import adapter, base
from .base import (
    ConcurrentAccessError,
    DrainState,
    InvalidArgumentError,
    MemoizeError,
    PartialSourceWarning,
)
from .adapter import MemoizedIterable, memoize


__all__ = [
    "__version__",
    "adapter",
    "base",
    "MemoizedIterable",
    "memoize",
    "DrainState",
    "MemoizeError",
    "InvalidArgumentError",
    "ConcurrentAccessError",
    "PartialSourceWarning",
]
