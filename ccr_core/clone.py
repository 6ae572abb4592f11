"""
Deep cloning of object graphs with reference identity preserved.

Cloning goes through :func:`copy.deepcopy`, whose memo dictionary maps the
identity of every original object to its copy. Shared objects therefore
stay shared in the clone (two trades on one curve point to one cloned
curve), and dictionaries keyed by market objects are re-keyed to the
cloned objects.

Classes declare their ownership schema through ``_clone_shared`` (fields
copied by reference) and ``_clone_reset`` (fields reset to ``None``, e.g.
cached results that belong to a previous run).
"""

import copy
from typing import Any, ClassVar, TypeVar

T = TypeVar("T")


class DeepCloneable:
    """
    Mixin implementing ``__deepcopy__`` from per-class field rules.

    Example
    -------
    >>> class Holder(DeepCloneable):
    ...     _clone_shared = frozenset({"logger"})
    ...     _clone_reset = frozenset({"cache"})
    """

    _clone_shared: ClassVar[frozenset[str]] = frozenset()
    _clone_reset: ClassVar[frozenset[str]] = frozenset()

    def __deepcopy__(self, memo: dict[int, Any]) -> Any:
        cls = type(self)
        clone = cls.__new__(cls)
        memo[id(self)] = clone
        for key, value in self.__dict__.items():
            if key in cls._clone_reset:
                setattr(clone, key, None)
            elif key in cls._clone_shared:
                setattr(clone, key, value)
            else:
                setattr(clone, key, copy.deepcopy(value, memo))
        return clone


def deep_clone(obj: T, memo: dict[int, Any] | None = None) -> tuple[T, dict[int, Any]]:
    """
    Clone an object graph.

    Parameters
    ----------
    obj : T
        Root of the graph
    memo : dict | None
        Identity map to extend (a new one is created if None)

    Returns
    -------
    tuple[T, dict]
        The clone and the identity map, which :func:`counterpart` uses to
        find the copy of any object reachable from ``obj``
    """
    if memo is None:
        memo = {}
    return copy.deepcopy(obj, memo), memo


def counterpart(memo: dict[int, Any], original: T) -> T:
    """Return the clone of ``original`` recorded in ``memo``."""
    try:
        return memo[id(original)]
    except KeyError:
        raise KeyError(f"{original!r} is not part of the cloned graph") from None
