"""
Multi-stream random number generation with jump-ahead.

Every path owns a fixed block of ``factor_count × date_count`` draws of one
serial stream. A generator can seek to any block in O(log N) with the
``advance`` method of numpy's PCG64 family, so paths can be generated in any
order and on any number of threads with bit-identical results.
"""

from collections.abc import Sequence
from enum import Enum

import numpy as np
from scipy.special import ndtri

from ccr_core._types import FloatArray

# Generator.random draws from [0, 1) on a 2**-53 grid; zero is lifted to
# half a grid step so that the inverse normal CDF stays finite.
_SMALLEST_UNIFORM = 2.0**-54


class RandomKind(Enum):
    """Bit generators supporting jump-ahead by a number of 64-bit draws."""

    PCG64 = "pcg64"
    PCG64DXSM = "pcg64dxsm"


_BIT_GENERATORS = {
    RandomKind.PCG64: np.random.PCG64,
    RandomKind.PCG64DXSM: np.random.PCG64DXSM,
}


class MultiStreamRandomGenerator:
    """
    Random generator indexed by (path, date, factor).

    Parameters
    ----------
    kind : RandomKind
        Bit generator family
    factor_count : int
        Draws per simulation step
    date_count : int
        Number of simulation steps
    seed : int
        Seed of the serial stream

    Example
    -------
    >>> rng = MultiStreamRandomGenerator.create("pcg64", 10, range(50), seed=7)
    >>> serial = rng.stream().random(3 * rng.block_size)
    >>> bool(np.array_equal(rng.clone().uniform(2), serial[2 * 500:]))
    True
    """

    def __init__(
        self,
        kind: RandomKind,
        factor_count: int,
        date_count: int,
        seed: int,
    ) -> None:
        if factor_count < 1:
            raise ValueError(f"factor_count must be positive, got {factor_count}")
        if date_count < 1:
            raise ValueError(f"date_count must be positive, got {date_count}")
        self.kind = RandomKind(kind)
        self.factor_count = factor_count
        self.date_count = date_count
        self.seed = seed
        self._bit_generator = _BIT_GENERATORS[self.kind](seed)
        self._initial_state = self._bit_generator.state

    @classmethod
    def create(
        cls,
        kind: "RandomKind | str",
        factor_count: int,
        date_offsets: Sequence[float],
        seed: int = 42,
    ) -> "MultiStreamRandomGenerator":
        """
        Create a generator for a simulation with ``len(date_offsets)`` steps.

        Parameters
        ----------
        kind : RandomKind | str
            Bit generator family (``"pcg64"`` or ``"pcg64dxsm"``)
        factor_count : int
            Draws per step
        date_offsets : Sequence[float]
            Step end times (only the count is used)
        seed : int
            Seed of the serial stream
        """
        return cls(RandomKind(kind), factor_count, len(date_offsets), seed)

    @property
    def block_size(self) -> int:
        """Number of draws per path."""
        return self.factor_count * self.date_count

    def stream(self) -> np.random.Generator:
        """Fresh serial generator positioned at draw 0."""
        return np.random.Generator(_BIT_GENERATORS[self.kind](self.seed))

    def uniform(self, path_index: int, out: FloatArray | None = None) -> FloatArray:
        """
        Uniform draws of one path.

        Parameters
        ----------
        path_index : int
            Path index (>= 0)
        out : FloatArray | None
            Buffer of length ``block_size`` to fill

        Returns
        -------
        FloatArray
            Draws ``path_index*block_size .. (path_index+1)*block_size - 1``
            of the serial stream
        """
        if path_index < 0:
            raise ValueError(f"path_index must be non-negative, got {path_index}")
        self._bit_generator.state = self._initial_state
        self._bit_generator.advance(path_index * self.block_size)
        generator = np.random.Generator(self._bit_generator)
        if out is None:
            return generator.random(self.block_size)
        if out.shape != (self.block_size,):
            raise ValueError(f"Buffer must have shape ({self.block_size},), got {out.shape}")
        generator.random(self.block_size, out=out)
        return out

    def normal(self, path_index: int, out: FloatArray | None = None) -> FloatArray:
        """Standard normal draws of one path (inverse-CDF of :meth:`uniform`)."""
        u = self.uniform(path_index, out)
        np.maximum(u, _SMALLEST_UNIFORM, out=u)
        return ndtri(u, out=u)

    def clone(self) -> "MultiStreamRandomGenerator":
        """Independent generator with the same seed and layout."""
        return MultiStreamRandomGenerator(self.kind, self.factor_count, self.date_count, self.seed)

    def __repr__(self) -> str:
        return (
            f"MultiStreamRandomGenerator(kind={self.kind.value}, "
            f"factor_count={self.factor_count}, date_count={self.date_count}, seed={self.seed})"
        )
