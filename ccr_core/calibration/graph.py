"""
Dependency-ordered traversal of market objects.

Nodes live in an arena and refer to each other by integer index. A node is
processed only after all of its parents; independent nodes may run
concurrently on a thread pool.
"""

from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Generic, TypeVar

T = TypeVar("T")


class DependencyGraph(Generic[T]):
    """
    Directed acyclic graph built from a parent-lookup function.

    Parents that are not among ``items`` are ignored (they are assumed to
    be ready already).

    Parameters
    ----------
    items : Sequence[T]
        Nodes, in a stable preferred order
    parents : Callable[[T], Iterable[T]]
        Parent lookup

    Example
    -------
    >>> graph = DependencyGraph([fx, usd, eur], lambda c: c.parent_curves)
    >>> [c.name for c in graph.order]
    ['USD-OIS', 'EUR-OIS', 'EURUSD']
    """

    def __init__(self, items: Sequence[T], parents: Callable[[T], Iterable[T]]) -> None:
        self._items: list[T] = list(items)
        index = {id(item): i for i, item in enumerate(self._items)}
        if len(index) != len(self._items):
            raise ValueError("Dependency graph items must be distinct")
        self._parents: list[list[int]] = []
        self._children: list[list[int]] = [[] for _ in self._items]
        for i, item in enumerate(self._items):
            parent_ids = sorted({index[id(p)] for p in parents(item) if id(p) in index})
            if i in parent_ids:
                raise ValueError(f"{item!r} depends on itself")
            self._parents.append(parent_ids)
            for p in parent_ids:
                self._children[p].append(i)
        self._order = self._topological_order()

    def _topological_order(self) -> list[int]:
        remaining = [len(p) for p in self._parents]
        ready = [i for i, n in enumerate(remaining) if n == 0]
        order: list[int] = []
        while ready:
            ready.sort()
            node = ready.pop(0)
            order.append(node)
            for child in self._children[node]:
                remaining[child] -= 1
                if remaining[child] == 0:
                    ready.append(child)
        if len(order) != len(self._items):
            cyclic = [self._items[i] for i, n in enumerate(remaining) if n > 0]
            raise ValueError(f"Dependency cycle among {cyclic!r}")
        return order

    @property
    def order(self) -> list[T]:
        """Items in dependency order (parents first, ties by input order)."""
        return [self._items[i] for i in self._order]

    def parents_of(self, item: T) -> list[T]:
        i = next(k for k, x in enumerate(self._items) if x is item)
        return [self._items[p] for p in self._parents[i]]

    def __len__(self) -> int:
        return len(self._items)

    def for_each(self, action: Callable[[T], None]) -> None:
        """Apply ``action`` to every item serially in dependency order."""
        for item in self.order:
            action(item)

    def parallel_for_each(
        self, action: Callable[[T], None], max_workers: int | None = None
    ) -> None:
        """
        Apply ``action`` to every item, parents before children, in parallel.

        Parameters
        ----------
        action : Callable[[T], None]
            Work item; must be thread-safe across independent items
        max_workers : int | None
            Thread pool size (default: executor default)

        Raises
        ------
        Exception
            The first exception raised by ``action``; no new items are
            started after a failure
        """
        remaining = [len(p) for p in self._parents]
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            running: dict[Future[None], int] = {}
            for i, n in enumerate(remaining):
                if n == 0:
                    running[pool.submit(action, self._items[i])] = i
            while running:
                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    node = running.pop(future)
                    error = future.exception()
                    if error is not None:
                        for pending in running:
                            pending.cancel()
                        raise error
                    for child in self._children[node]:
                        remaining[child] -= 1
                        if remaining[child] == 0:
                            running[pool.submit(action, self._items[child])] = child
