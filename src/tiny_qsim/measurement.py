"""
Measurement engine: Born-rule sampling and state collapse.

Randomness always comes from an injected ``numpy.random.Generator``, so
a fixed seed reproduces every outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
from numpy import ndarray

from .evolution import check_registers
from .exceptions import EmptyStateError, QuantumError
from .statevector import StateVector

logger = logging.getLogger(__name__)

RandomSource = Union[int, np.random.Generator, np.random.SeedSequence, None]

EMPTY_TOLERANCE = 1e-15


@dataclass(frozen=True)
class MeasurementOutcome:
    """
    Classical result of measuring some registers once.

    Attributes
    ----------
    registers : tuple[int, ...]
        Measured registers, in the order requested.
    bits : tuple[int, ...]
        One bit per register, same order.
    probability : float
        Probability the sampled outcome had before collapse.
    moment : int | None
        Circuit moment of the measurement, if run from a circuit.
    """

    registers: tuple[int, ...]
    bits: tuple[int, ...]
    probability: float
    moment: int | None = None

    @property
    def bitstring(self) -> str:
        return "".join(str(b) for b in self.bits)

    @property
    def value(self) -> int:
        """Outcome as an integer, first register most significant."""
        return int(self.bitstring, 2)

    def __getitem__(self, register: int) -> int:
        """Bit measured on ``register``."""
        return self.bits[self.registers.index(register)]

    def __str__(self) -> str:
        return self.bitstring


def marginal_probabilities(state: StateVector, registers: Sequence[int]) -> ndarray:
    """
    Probability of each of the 2^k outcomes on ``registers``.

    Outcome index j has the bit of ``registers[0]`` as its most
    significant bit. Probabilities are summed over all other registers.
    """
    registers = tuple(registers)
    check_registers(state, registers)
    n = state.n_registers
    probs = state.probabilities().reshape((2,) * n)
    others = tuple(r for r in range(n) if r not in registers)
    marginal = probs.sum(axis=others) if others else probs
    ascending = sorted(registers)
    marginal = np.transpose(marginal, [ascending.index(r) for r in registers])
    return marginal.reshape(-1)


def _sample_index(probs: ndarray, rng: np.random.Generator) -> int:
    # cdf[-1] is exactly 1.0 after division, so zero-probability
    # outcomes occupy empty intervals and can never be drawn.
    cdf = np.cumsum(probs)
    cdf /= cdf[-1]
    return int(np.searchsorted(cdf, rng.random(), side="right"))


def measure(
    state: StateVector,
    registers: Sequence[int],
    rng: np.random.Generator,
    moment: int | None = None,
) -> MeasurementOutcome:
    """
    Measure ``registers`` in the computational basis and collapse ``state``.

    Amplitudes inconsistent with the sampled outcome are zeroed and the
    rest renormalized to unit norm.

    Raises
    ------
    RegisterIndexError
        If a register is not in the state.
    EmptyStateError
        If the state carries no probability mass.
    """
    registers = tuple(registers)
    probs = marginal_probabilities(state, registers)
    total = float(probs.sum())
    if not np.isfinite(total) or total <= EMPTY_TOLERANCE:
        raise EmptyStateError(
            f"Cannot measure: total probability is {total!r}",
            moment=moment,
            registers=registers,
        )

    outcome = _sample_index(probs, rng)
    k = len(registers)
    bits = tuple((outcome >> (k - 1 - j)) & 1 for j in range(k))

    tensor = state.tensor
    index: list[object] = [slice(None)] * state.n_registers
    for r, b in zip(registers, bits):
        index[r] = b
    kept = tensor[tuple(index)].copy()
    norm = np.sqrt(np.sum(np.abs(kept) ** 2))
    tensor[...] = 0.0
    tensor[tuple(index)] = kept / norm

    result = MeasurementOutcome(registers, bits, float(probs[outcome] / total), moment)
    logger.debug("measured %s -> %s (p=%.6f)", list(registers), result.bitstring, result.probability)
    return result


class MeasurementEngine:
    """
    Measurement with an owned random generator.

    Parameters
    ----------
    random_source : int | Generator | SeedSequence | None
        Seed or generator; passed to ``numpy.random.default_rng``. A
        ``Generator`` is used as-is.

    Example
    -------
    >>> engine = MeasurementEngine(7)
    >>> engine.measure(StateVector(1), [0]).bitstring
    '0'
    """

    def __init__(self, random_source: RandomSource = None) -> None:
        self.rng = np.random.default_rng(random_source)

    def measure(
        self, state: StateVector, registers: Sequence[int], moment: int | None = None
    ) -> MeasurementOutcome:
        try:
            return measure(state, registers, self.rng, moment)
        except QuantumError as exc:
            raise exc.with_context(moment=moment, registers=registers, gate="measure")

    def probabilities(self, state: StateVector, registers: Sequence[int]) -> ndarray:
        return marginal_probabilities(state, registers)
