from abc import ABC, abstractmethod
from enum import Enum
from typing import TypeVar, Generic, Optional, Iterable, Tuple, Any
from collections.abc import Iterable as IterableABC

import numpy.typing as npt


__all__ = [
    "AnyVector",
    "DrainState",
    "MemoizeError",
    "InvalidArgumentError",
    "ConcurrentAccessError",
    "PartialSourceWarning",
    "ReplayableAdapter",
]


T = TypeVar("T")
AnyVector = npt.NDArray[Any]


class DrainState(Enum):
    """Lifecycle of a replayable adapter. ``FRESH`` until the source has
    been exhausted once, then ``DRAINED`` for good.
    """

    FRESH = "fresh"
    DRAINED = "drained"


class MemoizeError(Exception):
    """Base class for errors raised by ``memopipe`` itself."""


class InvalidArgumentError(MemoizeError, ValueError, TypeError):
    """Raised on construction when the source is absent or not
    iterable.
    """


class ConcurrentAccessError(MemoizeError, RuntimeError):
    """Raised when a draining traversal is started while another one is
    still in progress.
    """


class PartialSourceWarning(UserWarning):
    """Issued when a traversal resumes a source which previously raised
    an exception mid-drain.
    """


class ReplayableAdapter(ABC, IterableABC, Generic[T]):
    """Adapter pattern interface for iterables which may be traversed
    repeatedly, consuming their underlying source at most once.
    """

    @property
    @abstractmethod
    def state(self) -> DrainState:
        pass

    @property
    @abstractmethod
    def cache(self) -> Tuple[T, ...]:
        pass

    @property
    @abstractmethod
    def source(self) -> Optional[Iterable[T]]:
        pass

    @property
    def drained(self) -> bool:
        """Whether the source has been fully consumed and released."""
        return self.state is DrainState.DRAINED
