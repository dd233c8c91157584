"""
Dense complex amplitude vector.

The state of an n-register system is a complex128 array of length 2^n.
Register 0 is the most significant bit of a basis index, so the tensor
view has shape (2, 2, ..., 2) with axis r belonging to register r.

Memory usage: 2^n * 16 bytes
    10 registers: 16 KB
    20 registers: 16 MB
    25 registers: 512 MB
"""

from __future__ import annotations

from typing import Iterable, Iterator

import numpy as np
from numpy import ndarray

from .exceptions import DimensionError, NormalizationError

NORM_TOLERANCE = 1e-9


def _register_count(length: int) -> int:
    if length < 2 or length & (length - 1):
        raise DimensionError(
            f"Amplitude vector length must be a power of two >= 2, got {length}"
        )
    return length.bit_length() - 1


class StateVector:
    """
    Quantum state as a dense vector of complex amplitudes.

    Parameters
    ----------
    n_registers : int
        Number of registers. The state starts as |0...0⟩.

    Example
    -------
    >>> sv = StateVector(2)
    >>> sv.get(0)
    (1+0j)
    >>> sv.norm_squared_sum()
    1.0
    """

    __slots__ = ("n_registers", "_data")

    def __init__(self, n_registers: int) -> None:
        if n_registers < 1:
            raise DimensionError(f"Need at least 1 register, got {n_registers}")
        self.n_registers = n_registers
        self._data = np.zeros(2**n_registers, dtype=np.complex128)
        self._data[0] = 1.0

    # -- Construction -------------------------------------------------------

    @classmethod
    def zero(cls, n_registers: int) -> StateVector:
        """The all-zero basis state |0...0⟩ on n registers."""
        return cls(n_registers)

    @classmethod
    def from_amplitudes(
        cls, values: Iterable[complex] | ndarray, tol: float = NORM_TOLERANCE
    ) -> StateVector:
        """
        Build a state from explicit amplitudes (copied).

        Raises
        ------
        DimensionError
            If the length is not a power of two.
        NormalizationError
            If the squared magnitudes do not sum to 1 within ``tol``.
        """
        data = np.array(values, dtype=np.complex128).reshape(-1).copy()
        n = _register_count(data.shape[0])
        norm = float(np.sum(np.abs(data) ** 2))
        if abs(norm - 1.0) > tol:
            raise NormalizationError(
                f"Amplitudes must have unit norm, got norm squared {norm:.12g}"
            )
        state = cls.__new__(cls)
        state.n_registers = n
        state._data = data
        return state

    @classmethod
    def basis(cls, n_registers: int, index: int) -> StateVector:
        """Computational basis state |index⟩."""
        state = cls(n_registers)
        if not 0 <= index < state.dim:
            raise DimensionError(
                f"Basis index {index} out of range for {n_registers} registers"
            )
        state._data[0] = 0.0
        state._data[index] = 1.0
        return state

    # -- Properties ---------------------------------------------------------

    @property
    def dim(self) -> int:
        return self._data.shape[0]

    @property
    def data(self) -> ndarray:
        """The live amplitude array. Mutating it mutates the state."""
        return self._data

    @property
    def amplitudes(self) -> ndarray:
        """Copy of the flat amplitude array."""
        return self._data.copy()

    @property
    def tensor(self) -> ndarray:
        """Live (2, 2, ..., 2) view; axis r is register r."""
        return self._data.reshape((2,) * self.n_registers)

    # -- Element access -----------------------------------------------------

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.dim:
            raise DimensionError(
                f"Index {index} out of range for vector of length {self.dim}"
            )

    def get(self, index: int) -> complex:
        self._check_index(index)
        return complex(self._data[index])

    def set(self, index: int, value: complex) -> None:
        self._check_index(index)
        self._data[index] = value

    def __len__(self) -> int:
        return self.dim

    def __getitem__(self, index: int) -> complex:
        return self.get(index)

    def __iter__(self) -> Iterator[complex]:
        return iter(self._data.copy())

    # -- Norm & probabilities -----------------------------------------------

    def norm_squared_sum(self) -> float:
        """Sum of squared magnitudes; 1 for a valid state."""
        return float(np.sum(np.abs(self._data) ** 2))

    def is_normalized(self, tol: float = NORM_TOLERANCE) -> bool:
        return abs(self.norm_squared_sum() - 1.0) <= tol

    def probabilities(self) -> ndarray:
        """Born-rule probability of every basis state."""
        return np.abs(self._data) ** 2

    def bitstring(self, index: int) -> str:
        """Basis index as a bitstring, register 0 first."""
        return format(index, f"0{self.n_registers}b")

    # -- Utilities ----------------------------------------------------------

    def copy(self) -> StateVector:
        clone = StateVector.__new__(StateVector)
        clone.n_registers = self.n_registers
        clone._data = self._data.copy()
        return clone

    def allclose(self, other: StateVector | ndarray, atol: float = NORM_TOLERANCE) -> bool:
        """Element-wise comparison with another state or array."""
        values = other.data if isinstance(other, StateVector) else np.asarray(other)
        if values.shape != self._data.shape:
            return False
        return bool(np.allclose(self._data, values, atol=atol))

    def fidelity(self, other: StateVector) -> float:
        """State fidelity |⟨self|other⟩|²."""
        return float(np.abs(np.vdot(self._data, other.data)) ** 2)

    def __repr__(self) -> str:
        return f"StateVector(n_registers={self.n_registers}, dim={self.dim})"
