"""
Readiness multiplexer module.

This module isolates the event loop from the underlying readiness
primitive. Every backend keeps a WatchedSet of the handles it polls,
including the upper bound used by the plain select() scan.
"""

import select
import selectors
from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Set

from relay_common.constants import SELECT_FD_LIMIT, MultiplexerKinds


class WatchedSet:
    """Connection handles being polled, with an incrementally kept maximum."""

    def __init__(self):
        self._handles: Set[int] = set()
        self.max_handle = -1

    def add(self, handle: int):
        self._handles.add(handle)
        if handle > self.max_handle:
            self.max_handle = handle

    def discard(self, handle: int):
        if handle not in self._handles:
            return
        self._handles.remove(handle)
        # Only a removed maximum needs the O(n) rescan
        if handle == self.max_handle:
            self.max_handle = max(self._handles, default=-1)

    def __contains__(self, handle: int) -> bool:
        return handle in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._handles))


class ReadinessMultiplexer(ABC):
    """Narrow interface the event loop uses to wait for readable handles."""

    def __init__(self):
        self.watched = WatchedSet()

    @property
    def max_handle(self) -> int:
        return self.watched.max_handle

    def __contains__(self, handle: int) -> bool:
        return handle in self.watched

    @abstractmethod
    def register(self, fileobj) -> int:
        """
        Start watching ``fileobj`` for readability and return its handle.

        Raises ValueError if the backend cannot watch this handle.
        """

    @abstractmethod
    def unregister(self, handle: int):
        """Stop watching ``handle``. Unknown handles are ignored."""

    @abstractmethod
    def wait(self, timeout: Optional[float] = None) -> List[int]:
        """
        Block until at least one watched handle is readable.

        Returns the ready handles in ascending order, or an empty list when
        ``timeout`` expires. InterruptedError, OSError and ValueError
        propagate to the caller.
        """

    def close(self):
        pass


class SelectorMultiplexer(ReadinessMultiplexer):
    """Backend built on selectors.DefaultSelector (epoll/kqueue/poll)."""

    def __init__(self):
        super().__init__()
        self._selector = selectors.DefaultSelector()

    def register(self, fileobj) -> int:
        handle = fileobj.fileno()
        self._selector.register(fileobj, selectors.EVENT_READ, data=handle)
        self.watched.add(handle)
        return handle

    def unregister(self, handle: int):
        if handle not in self.watched:
            return
        try:
            self._selector.unregister(handle)
        except (KeyError, ValueError):
            pass
        self.watched.discard(handle)

    def wait(self, timeout: Optional[float] = None) -> List[int]:
        events = self._selector.select(timeout)
        return sorted(key.data for key, mask in events if mask & selectors.EVENT_READ)

    def close(self):
        self._selector.close()


class SelectMultiplexer(ReadinessMultiplexer):
    """
    Backend built on select.select().

    Ready handles are collected by scanning 0..max_handle, which is why the
    watched-set maintains its upper bound. Handles at or above FD_SETSIZE
    are refused at registration.
    """

    def register(self, fileobj) -> int:
        handle = fileobj.fileno()
        if handle >= SELECT_FD_LIMIT:
            raise ValueError(f"Handle {handle} exceeds the select() limit of {SELECT_FD_LIMIT}")
        self.watched.add(handle)
        return handle

    def unregister(self, handle: int):
        self.watched.discard(handle)

    def wait(self, timeout: Optional[float] = None) -> List[int]:
        readable, _, _ = select.select(list(self.watched), [], [], timeout)
        ready = set(readable)
        return [fd for fd in range(self.watched.max_handle + 1) if fd in ready]


def create_multiplexer(kind: str = MultiplexerKinds.SELECTORS) -> ReadinessMultiplexer:
    """Create the multiplexer backend named by ``kind``."""
    if kind == MultiplexerKinds.SELECTORS:
        return SelectorMultiplexer()
    if kind == MultiplexerKinds.SELECT:
        return SelectMultiplexer()
    raise ValueError(f"Unknown multiplexer: {kind}")
