"""
Sample containers for the streaming pipeline.

Two element kinds flow between stages:

    RealSamples     one float32 array            (audio, envelopes, control)
    ComplexSamples  two parallel float32 arrays  (IQ baseband, "split" layout)

The split layout keeps the real and imaginary components in separate
contiguous arrays so every per-component operation is a plain numpy vector
op.  Kernel coefficients are always real, so FIR / resampler dot products run
once per component against the same weight vector.

Key rules:
  1. Everything is float32 / complex64.  Nothing in here widens precision.
  2. The component arrays of a ComplexSamples always have equal length.
  3. Growing a buffer with ``resize`` pads with NaN so a value read before it
     is written is easy to spot.
"""
from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

FLOAT = np.float32
COMPLEX = np.complex64


def modulus(x):
    """|x| as float32, for real or complex scalars and arrays."""
    return np.abs(x).astype(FLOAT) if isinstance(x, np.ndarray) else FLOAT(abs(x))


def argument(x):
    """Phase angle of x in radians, float32."""
    return np.angle(x).astype(FLOAT) if isinstance(x, np.ndarray) else FLOAT(np.angle(x))


def _as_weights(weights) -> np.ndarray:
    return np.ascontiguousarray(weights, dtype=FLOAT)


class Samples:
    """Growable, indexable block of samples stored as float32 component arrays.

    Subclasses declare how many components an element has and how an element
    is split into / joined from its components.
    """

    NUM_COMPONENTS = 1
    dtype = FLOAT
    zero = FLOAT(0.0)
    nan = FLOAT(np.nan)

    __slots__ = ("_parts",)

    def __init__(self, values=None) -> None:
        if values is None:
            self._parts: List[np.ndarray] = [
                np.empty(0, dtype=FLOAT) for _ in range(self.NUM_COMPONENTS)
            ]
        elif isinstance(values, Samples):
            self._parts = [p.copy() for p in values.components()]
        else:
            self._parts = self._split_array(np.asarray(values))

    # ── element conversion (per subclass) ────────────────────────────

    def _split_array(self, array: np.ndarray) -> List[np.ndarray]:
        raise NotImplementedError

    def _join(self, parts: Sequence) -> object:
        raise NotImplementedError

    def _split(self, value) -> Tuple:
        raise NotImplementedError

    # ── construction helpers ─────────────────────────────────────────

    @classmethod
    def zeros(cls, count: int) -> "Samples":
        out = cls()
        out._parts = [np.zeros(count, dtype=FLOAT) for _ in range(cls.NUM_COMPONENTS)]
        return out

    @classmethod
    def full(cls, value, count: int) -> "Samples":
        out = cls()
        out._parts = [np.full(count, v, dtype=FLOAT) for v in out._split(value)]
        return out

    @classmethod
    def from_components(cls, *parts: np.ndarray) -> "Samples":
        out = cls()
        out.assign(*parts)
        return out

    def copy(self) -> "Samples":
        return type(self)(self)

    # ── storage access ───────────────────────────────────────────────

    def components(self) -> Tuple[np.ndarray, ...]:
        """The underlying component arrays (views, not copies)."""
        return tuple(self._parts)

    def assign(self, *parts: np.ndarray) -> None:
        """Replace the contents with the given component arrays."""
        if len(parts) != self.NUM_COMPONENTS:
            raise ValueError(
                f"{type(self).__name__} needs {self.NUM_COMPONENTS} component(s), got {len(parts)}"
            )
        arrays = [np.ascontiguousarray(p, dtype=FLOAT).ravel() for p in parts]
        n = len(arrays[0])
        if any(len(a) != n for a in arrays):
            raise ValueError("component arrays must have equal length")
        self._parts = arrays

    def to_numpy(self) -> np.ndarray:
        raise NotImplementedError

    def __len__(self) -> int:
        return len(self._parts[0])

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    def __getitem__(self, index):
        if isinstance(index, slice):
            out = type(self)()
            out._parts = [p[index].copy() for p in self._parts]
            return out
        return self._join([p[index] for p in self._parts])

    def __setitem__(self, index: int, value) -> None:
        for p, v in zip(self._parts, self._split(value)):
            p[index] = v

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_numpy()!r})"

    # ── mutation ─────────────────────────────────────────────────────

    def append(self, value) -> None:
        self._parts = [
            np.append(p, FLOAT(v)) for p, v in zip(self._parts, self._split(value))
        ]

    def extend(self, values: Union["Samples", Iterable]) -> None:
        if isinstance(values, Samples):
            self.append_range(values, 0, len(values))
            return
        other = type(self)(list(values))
        self.append_range(other, 0, len(other))

    def append_range(self, other: "Samples", start: int, stop: int) -> None:
        """Append ``other[start:stop]``."""
        self._parts = [
            np.concatenate((p, q[start:stop])) for p, q in zip(self._parts, other._parts)
        ]

    def replace_range(
        self, start: int, stop: int, other: "Samples", w_start: int, w_stop: int
    ) -> None:
        """Replace ``self[start:stop]`` with ``other[w_start:w_stop]``.

        The two ranges may differ in length; the block grows or shrinks.
        """
        self._parts = [
            np.concatenate((p[:start], q[w_start:w_stop], p[stop:]))
            for p, q in zip(self._parts, other._parts)
        ]

    def remove_range(self, start: int, stop: int) -> None:
        self._parts = [np.concatenate((p[:start], p[stop:])) for p in self._parts]

    def clear(self) -> None:
        self._parts = [p[:0].copy() for p in self._parts]

    def resize(self, count: int) -> None:
        """Truncate to ``count`` or pad with NaN up to ``count``."""
        n = len(self)
        if count < n:
            self._parts = [p[:count].copy() for p in self._parts]
        elif count > n:
            pad = np.full(count - n, np.nan, dtype=FLOAT)
            self._parts = [np.concatenate((p, pad)) for p in self._parts]

    # ── dot products ─────────────────────────────────────────────────

    def weighted_sum(self, at: int, weights) -> object:
        """Dot product of ``weights`` with the samples starting at ``at``."""
        w = _as_weights(weights)
        if at < 0 or at + len(w) > len(self):
            raise IndexError(
                f"weighted_sum window [{at}, {at + len(w)}) outside block of {len(self)}"
            )
        return self._join([FLOAT(np.dot(p[at:at + len(w)], w)) for p in self._parts])

    def sliding_weighted_sum(self, weights, count: int, at: int = 0) -> "Samples":
        """``count`` consecutive weighted sums starting at ``at``.

        Output ``k`` equals ``weighted_sum(at + k, weights)``.
        """
        w = _as_weights(weights)
        out = type(self)()
        if count <= 0:
            return out
        if at < 0 or at + count + len(w) - 1 > len(self):
            raise IndexError("sliding_weighted_sum runs past the end of the block")
        out._parts = [
            sliding_window_view(p[at:at + count + len(w) - 1], len(w)) @ w
            for p in self._parts
        ]
        return out

    def gathered_weighted_sum(self, positions: np.ndarray, weight_rows: np.ndarray) -> "Samples":
        """Weighted sums at arbitrary ``positions``, each with its own weight row.

        ``weight_rows`` has shape ``(len(positions), taps)``.
        """
        out = type(self)()
        if len(positions) == 0:
            return out
        rows = np.asarray(weight_rows, dtype=FLOAT)
        taps = rows.shape[1]
        out._parts = [
            np.einsum("ij,ij->i", sliding_window_view(p, taps)[positions], rows).astype(FLOAT)
            for p in self._parts
        ]
        return out


class RealSamples(Samples):
    """Block of real (float32) samples."""

    __slots__ = ()

    def _split_array(self, array):
        if np.iscomplexobj(array):
            raise TypeError("RealSamples cannot hold complex values")
        return [np.array(array, dtype=FLOAT).ravel()]

    def _join(self, parts):
        return FLOAT(parts[0])

    def _split(self, value):
        return (FLOAT(value),)

    @property
    def real(self) -> np.ndarray:
        return self._parts[0]

    def to_numpy(self) -> np.ndarray:
        return self._parts[0].copy()

    @classmethod
    def tone(cls, phases: np.ndarray, level: float = 1.0) -> "RealSamples":
        """cos(phase) * level for every phase."""
        phases = np.asarray(phases, dtype=FLOAT)
        return cls.from_components(np.cos(phases) * FLOAT(level))


class ComplexSamples(Samples):
    """Block of complex samples in split layout (separate real / imag arrays)."""

    NUM_COMPONENTS = 2
    dtype = COMPLEX
    zero = COMPLEX(0.0)
    nan = COMPLEX(complex(np.nan, np.nan))

    __slots__ = ()

    def _split_array(self, array):
        array = np.asarray(array, dtype=COMPLEX).ravel()
        return [array.real.astype(FLOAT), array.imag.astype(FLOAT)]

    def _join(self, parts):
        return COMPLEX(complex(parts[0], parts[1]))

    def _split(self, value):
        value = complex(value)
        return (FLOAT(value.real), FLOAT(value.imag))

    @property
    def real(self) -> np.ndarray:
        return self._parts[0]

    @property
    def imag(self) -> np.ndarray:
        return self._parts[1]

    def to_numpy(self) -> np.ndarray:
        out = np.empty(len(self), dtype=COMPLEX)
        out.real = self._parts[0]
        out.imag = self._parts[1]
        return out

    @classmethod
    def tone(cls, phases: np.ndarray, level: float = 1.0) -> "ComplexSamples":
        """(cos(phase) + j sin(phase)) * level for every phase."""
        phases = np.asarray(phases, dtype=FLOAT)
        lv = FLOAT(level)
        return cls.from_components(np.cos(phases) * lv, np.sin(phases) * lv)
