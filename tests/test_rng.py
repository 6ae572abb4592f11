"""
Tests for the multi-stream random number generator.
"""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from ccr_core.rng import MultiStreamRandomGenerator, RandomKind


class TestMultiStreamRandomGenerator:
    """Tests for jump-ahead path streams."""

    @pytest.mark.parametrize("kind", ["pcg64", "pcg64dxsm"])
    def test_blocks_match_serial_stream(self, kind: str) -> None:
        """Path p reads draws p*B .. (p+1)*B - 1 of the serial stream."""
        rng = MultiStreamRandomGenerator.create(kind, 3, range(4), seed=11)
        serial = rng.stream().random(5 * rng.block_size)
        for p in (0, 2, 4):
            block = serial[p * rng.block_size : (p + 1) * rng.block_size]
            np.testing.assert_array_equal(rng.uniform(p), block)

    def test_jump_ahead_on_full_run_layout(self) -> None:
        """Ten factors over fifty dates: each of 5000 paths matches the serial stream."""
        rng = MultiStreamRandomGenerator.create("pcg64", 10, range(50), seed=2024)
        assert rng.block_size == 500
        serial = rng.stream().random(5000 * rng.block_size).reshape(5000, rng.block_size)
        out = np.empty(rng.block_size)
        for p in range(5000):
            np.testing.assert_array_equal(rng.uniform(p, out=out), serial[p])

    def test_threads_match_serial(self) -> None:
        """Cloned generators on a thread pool reproduce the serial draws."""
        rng = MultiStreamRandomGenerator.create("pcg64", 10, range(50), seed=7)
        serial = np.array([rng.normal(p) for p in range(2000)])

        def chunk(paths: range) -> np.ndarray:
            local = rng.clone()
            return np.array([local.normal(p) for p in paths])

        starts = range(0, 2000, 250)
        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = {s: pool.submit(chunk, range(s, s + 250)) for s in reversed(starts)}
            parallel = np.vstack([futures[s].result() for s in starts])
        np.testing.assert_array_equal(parallel, serial)

    def test_order_independent(self) -> None:
        """Paths drawn in any order are bit-identical."""
        rng = MultiStreamRandomGenerator(RandomKind.PCG64, 5, 10, seed=3)
        forward = [rng.uniform(p) for p in range(6)]
        backward = [rng.uniform(p) for p in reversed(range(6))][::-1]
        for a, b in zip(forward, backward):
            np.testing.assert_array_equal(a, b)

    def test_clone_is_independent(self) -> None:
        rng = MultiStreamRandomGenerator(RandomKind.PCG64, 2, 3, seed=5)
        clone = rng.clone()
        np.testing.assert_array_equal(rng.normal(7), clone.normal(7))
        assert clone is not rng
        assert repr(clone) == repr(rng)

    def test_normal_is_finite(self) -> None:
        rng = MultiStreamRandomGenerator(RandomKind.PCG64, 50, 50, seed=1)
        z = rng.normal(0)
        assert np.all(np.isfinite(z))
        assert abs(z.mean()) < 0.1
        assert z.std() == pytest.approx(1.0, abs=0.1)

    def test_buffer_is_filled(self) -> None:
        rng = MultiStreamRandomGenerator(RandomKind.PCG64, 2, 2, seed=9)
        out = np.empty(4)
        result = rng.normal(1, out=out)
        assert result is out
        np.testing.assert_array_equal(out, rng.normal(1))

    def test_invalid_arguments(self) -> None:
        with pytest.raises(ValueError):
            MultiStreamRandomGenerator(RandomKind.PCG64, 0, 2, seed=1)
        rng = MultiStreamRandomGenerator(RandomKind.PCG64, 2, 2, seed=1)
        with pytest.raises(ValueError):
            rng.uniform(-1)
        with pytest.raises(ValueError):
            rng.uniform(0, out=np.empty(3))
