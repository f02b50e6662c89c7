"""
``memopipe.adapter``
====================

The memopipe adapter module wraps lazily produced, potentially
expensive sequences, caching each element the first time it is pulled
so that every later traversal replays from memory.

Data is pulled using Python iterator objects, and may be exported to
NumPy arrays once the source has been drained.
"""
import typing as ty
import warnings
import weakref

import numpy as np
import numpy.typing as npt
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from memopipe import base

__all__ = ["MemoizedIterable", "memoize"]


T = ty.TypeVar("T")
_RICH_MAX_ITEMS = 10


class _DrainingCursor(ty.Iterator[T]):
    """Iterator over a fresh ``MemoizedIterable``. Replays whatever an
    earlier abandoned traversal left in the cache, then pulls the rest
    from the source, recording each element before handing it out.
    """

    def __init__(self, owner: "MemoizedIterable[T]") -> None:
        self._owner = owner
        self._position = 0
        self.finished = False

    def __iter__(self) -> "_DrainingCursor[T]":
        return self

    def __next__(self) -> T:
        if self.finished:
            raise StopIteration
        owner = self._owner
        cache = owner._cache
        if self._position < len(cache):
            item = cache[self._position]
            self._position = self._position + 1
            return item
        try:
            item = next(owner._iterator)  # type: ignore
        except StopIteration:
            self.finished = True
            owner._release()
            raise
        except Exception:
            self.finished = True
            owner._failed = True
            raise
        cache.append(item)  # type: ignore
        self._position = self._position + 1
        return item


class MemoizedIterable(base.ReplayableAdapter[T]):
    """Wrapper of a potentially expensive iterable. The first traversal
    pulls elements from the source one at a time, caching each before
    yielding it. Every subsequent traversal replays the cache, and the
    source is released as soon as it has been exhausted.

    Parameters
    ----------
    source : iterable
        The iterable whose elements are to be memoized. Objects
        supporting only the ``__getitem__`` sequence protocol are
        accepted too. It is not touched until the first traversal
        begins.

    Attributes
    ----------
    state : DrainState
        ``FRESH`` until the source has been fully consumed, thereafter
        ``DRAINED``.
    cache : tuple
        Snapshot of the elements produced so far.
    source : iterable or None
        The wrapped source, or ``None`` once it has been released.

    Raises
    ------
    InvalidArgumentError
        If ``source`` is ``None``, or is not iterable.
    ConcurrentAccessError
        If a traversal is started while the source is being drained by
        another traversal which has not yet finished.

    Notes
    -----
    This class is not thread-safe. While the source is being drained,
    only one traversal may be live at a time. Abandoning a traversal
    early is allowed: once the abandoned iterator is no longer
    referenced, a new traversal first yields every element already in
    the cache, then resumes pulling from the source where the abandoned
    one stopped. A complete traversal therefore always yields the
    whole sequence, and the source is never restarted.

    If the source raises while being drained, the exception propagates
    unchanged to the consumer. The cache keeps the elements produced
    before the failure, and the adapter remains ``FRESH``. Such an
    adapter should generally be discarded, as the source may not be
    safely resumable.

    Once drained, the cache is immutable, and any number of replay
    traversals may run independently.
    """

    def __init__(self, source: ty.Iterable[T]) -> None:
        if source is None:
            raise base.InvalidArgumentError("source must not be None.")
        is_sequence = hasattr(type(source), "__getitem__")
        if not (isinstance(source, ty.Iterable) or is_sequence):
            raise base.InvalidArgumentError(
                f"source must be iterable, not {type(source).__name__}."
            )
        self._source: ty.Optional[ty.Iterable[T]] = source
        self._iterator: ty.Optional[ty.Iterator[T]] = None
        self._cache: ty.Union[ty.List[T], ty.Tuple[T, ...]] = []
        self._state = base.DrainState.FRESH
        self._active: ty.Optional["weakref.ref[_DrainingCursor[T]]"] = None
        self._failed = False

    @property
    def state(self) -> base.DrainState:
        return self._state

    @property
    def cache(self) -> ty.Tuple[T, ...]:
        """Elements produced so far, in source order."""
        return tuple(self._cache)

    @property
    def source(self) -> ty.Optional[ty.Iterable[T]]:
        return self._source

    def __iter__(self) -> ty.Iterator[T]:
        if self._state is base.DrainState.DRAINED:
            return iter(self._cache)
        active = None if self._active is None else self._active()
        if active is not None and not active.finished:
            raise base.ConcurrentAccessError(
                "The source is already being drained by another "
                "traversal. Finish or discard that iterator before "
                "starting a new one."
            )
        if self._failed:
            self._failed = False
            warnings.warn(
                "Resuming a source which raised during a previous "
                "traversal. Its position may be inconsistent.",
                base.PartialSourceWarning,
                stacklevel=2,
            )
        if self._iterator is None:
            self._iterator = iter(self._source)  # type: ignore
        cursor = _DrainingCursor(self)
        self._active = weakref.ref(cursor)
        return cursor

    def _release(self) -> None:
        # source must not outlive the drain
        self._cache = tuple(self._cache)
        self._state = base.DrainState.DRAINED
        self._iterator = None
        self._source = None
        self._active = None

    def __str__(self) -> str:
        name = self.__class__.__name__
        state = self._state.value
        return f"{name}(state={state}, cached={len(self._cache)})"

    def __rich__(self) -> Tree:
        name = self.__class__.__name__
        tree = Tree(f"{name}(state=[yellow]'{self._state.value}'[default])")
        if self._source is not None:
            tree.add(f"[blue]source [default]= {escape(repr(self._source))}")
        num_cached = len(self._cache)
        cache_tree = tree.add(f"[blue]cache [default]({num_cached})")
        for idx, item in enumerate(self._cache[:_RICH_MAX_ITEMS]):
            item_str = escape(repr(item))
            cache_tree.add(f"[red]{idx} [default]= [green]{item_str}")
        if num_cached > _RICH_MAX_ITEMS:
            cache_tree.add(f"... {num_cached - _RICH_MAX_ITEMS} more")
        return tree

    def __repr__(self) -> str:
        console = Console(color_system=None)
        with console.capture() as capture:
            console.print(self)
        return capture.get()

    def to_numpy(
        self, dtype: ty.Optional[npt.DTypeLike] = None
    ) -> base.AnyVector:
        """Returns the memoized elements as a NumPy array, draining the
        source first if needed.

        Parameters
        ----------
        dtype : data-type, optional
            Data type of the output array. If ``None``, it is inferred
            by NumPy when every element is a scalar, otherwise the
            array holds the elements as Python objects.

        Returns
        -------
        array : numpy.ndarray
            One-dimensional, holding the elements in source order.
        """
        items = tuple(self)
        if dtype is None:
            if all(map(np.isscalar, items)):
                return np.array(items)
            out = np.empty(len(items), dtype=object)
            for idx, item in enumerate(items):
                out[idx] = item
            return out
        return np.fromiter(items, dtype, count=len(items))


def memoize(iterable: ty.Iterable[T]) -> MemoizedIterable[T]:
    """Wraps an ``iterable`` in a memoizing container, such that
    repeatedly traversing it only incurs the cost of producing its
    elements once.

    Parameters
    ----------
    iterable : iterable
        The elements to be memoized. If this is already a
        ``MemoizedIterable``, it is returned as-is.

    Returns
    -------
    memoized : MemoizedIterable
        Iterable which caches the elements of ``iterable`` in memory
        during the first traversal.

    Raises
    ------
    InvalidArgumentError
        If ``iterable`` is ``None``, or is not iterable.
    """
    if isinstance(iterable, MemoizedIterable):
        return iterable
    return MemoizedIterable(iterable)
