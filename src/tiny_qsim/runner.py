"""
Circuit runner.

Drives a circuit over a fresh state: moments in ascending order,
placements within a moment in the circuit's deterministic order, gates
through the evolution engine and ``measure`` placements through the
measurement engine.

A run either completes or raises. On failure the runner's status becomes
``FAILED`` and the originating exception propagates with the moment,
registers and gate attached; nothing partial is returned.

Independent runs own independent states, so ``sample`` can spread shots
over worker threads. Each shot gets its own child seed spawned from one
``SeedSequence``, which keeps counts identical for any worker count.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

import numpy as np
from numpy import ndarray

from .circuit import Circuit
from .config import RunOptions
from .evolution import EvolutionEngine
from .exceptions import (
    DimensionError,
    QuantumError,
    RunCancelledError,
    RunnerBusyError,
)
from .gates import GateCatalog
from .measurement import MeasurementEngine, MeasurementOutcome, RandomSource
from .statevector import StateVector

logger = logging.getLogger(__name__)

PROBABILITY_CUTOFF = 1e-12


class RunStatus(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RunResult:
    """
    Result of one circuit run.

    Attributes
    ----------
    final_state : StateVector
        State after the last moment (collapsed by any measurements).
    measurements : list[MeasurementOutcome]
        Outcomes in the order they occurred.
    probabilities : dict[str, float] | None
        Basis-state probabilities of the final state (bitstring keys,
        register 0 first), when requested. Entries below 1e-12 are left
        out.
    """

    final_state: StateVector
    measurements: list[MeasurementOutcome] = field(default_factory=list)
    probabilities: dict[str, float] | None = None
    status: RunStatus = RunStatus.COMPLETED

    @property
    def statevector(self) -> ndarray:
        return self.final_state.amplitudes

    def bitstrings(self) -> list[str]:
        """One bitstring per measurement, in order."""
        return [m.bitstring for m in self.measurements]

    @property
    def bitstring(self) -> str:
        """All measured bits of the run concatenated."""
        return "".join(self.bitstrings())


@dataclass
class SampleResult:
    """Histogram of repeated independent runs."""

    counts: dict[str, int]
    shots: int

    def most_frequent(self) -> str:
        return max(self.counts, key=self.counts.get)

    def frequency(self, bitstring: str) -> float:
        """Empirical probability of ``bitstring``."""
        return self.counts.get(bitstring, 0) / self.shots


def state_probabilities(state: StateVector, cutoff: float = PROBABILITY_CUTOFF) -> dict[str, float]:
    probs = state.probabilities()
    return {state.bitstring(i): float(p) for i, p in enumerate(probs) if p > cutoff}


class CircuitRunner:
    """
    Runs circuits: ``IDLE → RUNNING → COMPLETED | FAILED | CANCELLED``.

    One run at a time per runner; use separate runners (or ``sample``)
    for parallel runs.

    Parameters
    ----------
    gate_catalog : GateCatalog, optional
        Catalog to resolve gates with. Defaults to the circuit's own.
    check_norm : bool
        Assert the norm invariant after each gate.

    Example
    -------
    >>> from tiny_qsim import Circuit, CircuitRunner
    >>> qc = Circuit(2).h(0).cx(0, 1).measure_all()
    >>> result = CircuitRunner().run(qc, random_source=42)
    >>> result.bitstring in ("00", "11")
    True
    """

    def __init__(self, gate_catalog: GateCatalog | None = None, check_norm: bool = True) -> None:
        self.catalog = gate_catalog
        self.check_norm = check_norm
        self._status = RunStatus.IDLE
        self._lock = threading.Lock()
        self._cancel = threading.Event()

    @property
    def status(self) -> RunStatus:
        return self._status

    def cancel(self) -> None:
        """
        Ask the active run to stop before its next moment.

        A request made while no run is active applies to the next run,
        which then stops before its first moment. The request is cleared
        whenever a run ends.
        """
        self._cancel.set()

    @staticmethod
    def _initial_state(
        circuit: Circuit, initial_state: StateVector | Sequence[complex] | ndarray | None
    ) -> StateVector:
        if initial_state is None:
            return StateVector.zero(circuit.n_registers)
        if isinstance(initial_state, StateVector):
            state = initial_state.copy()
        else:
            state = StateVector.from_amplitudes(initial_state)
        if state.n_registers != circuit.n_registers:
            raise DimensionError(
                f"Initial state has {state.dim} amplitudes, circuit needs "
                f"{2 ** circuit.n_registers}"
            )
        return state

    def run(
        self,
        circuit: Circuit,
        initial_state: StateVector | Sequence[complex] | ndarray | None = None,
        random_source: RandomSource = None,
        collect_probabilities: bool = False,
    ) -> RunResult:
        """
        Execute ``circuit``.

        Parameters
        ----------
        circuit : Circuit
            Read-only input; never modified.
        initial_state : StateVector or array-like, optional
            Starting amplitudes (copied). Defaults to |0...0⟩.
        random_source : int | Generator | SeedSequence, optional
            Seed or generator for measurements.
        collect_probabilities : bool
            Attach the final basis-state probabilities to the result.

        Raises
        ------
        RunnerBusyError
            If this runner is already running.
        RunCancelledError
            If ``cancel()`` was called during the run.
        QuantumError
            Any component error, with moment / registers / gate context.
        """
        if not self._lock.acquire(blocking=False):
            raise RunnerBusyError("Runner is already executing a circuit")
        try:
            self._status = RunStatus.RUNNING
            result = self._execute(circuit, initial_state, random_source, collect_probabilities)
            self._status = RunStatus.COMPLETED
            return result
        except RunCancelledError:
            self._status = RunStatus.CANCELLED
            logger.info("run of %r cancelled", circuit.name)
            raise
        except Exception as exc:
            self._status = RunStatus.FAILED
            logger.warning("run of %r failed: %s", circuit.name, exc)
            raise
        finally:
            self._cancel.clear()
            self._lock.release()

    def _execute(
        self,
        circuit: Circuit,
        initial_state: Any,
        random_source: RandomSource,
        collect_probabilities: bool,
    ) -> RunResult:
        state = self._initial_state(circuit, initial_state)
        evolution = EvolutionEngine(self.catalog or circuit.catalog, self.check_norm)
        measurement = MeasurementEngine(random_source)
        outcomes: list[MeasurementOutcome] = []

        for moment in circuit.moments():
            if self._cancel.is_set():
                raise RunCancelledError("Run cancelled", moment=moment.index)
            logger.debug("moment %d: %d placement(s)", moment.index, len(moment))
            for placement in moment:
                try:
                    if placement.is_measurement:
                        outcomes.append(
                            measurement.measure(state, placement.registers, moment.index)
                        )
                    else:
                        evolution.apply(state, placement)
                except QuantumError as exc:
                    raise exc.with_context(
                        moment=moment.index, registers=placement.registers, gate=placement.gate
                    )

        logger.debug(
            "run of %r completed: %d moment(s), %d measurement(s)",
            circuit.name,
            circuit.n_moments,
            len(outcomes),
        )
        return RunResult(
            final_state=state,
            measurements=outcomes,
            probabilities=state_probabilities(state) if collect_probabilities else None,
        )


def run_circuit(circuit: Circuit, options: RunOptions | None = None, **overrides: Any) -> RunResult:
    """
    Run a circuit once with ``RunOptions``.

    Keyword overrides (``seed``, ``initial_state``,
    ``collect_probabilities``, ``check_norm``) replace the matching
    option when not ``None``.
    """
    options = (options or RunOptions()).merged(**overrides)
    options.validate()
    runner = CircuitRunner(check_norm=options.check_norm)
    return runner.run(
        circuit,
        initial_state=options.initial_state,
        random_source=options.seed,
        collect_probabilities=options.collect_probabilities,
    )


def _shot(
    circuit: Circuit,
    seed: np.random.SeedSequence,
    initial_state: Any,
    check_norm: bool,
) -> str:
    rng = np.random.default_rng(seed)
    result = CircuitRunner(check_norm=check_norm).run(
        circuit, initial_state=initial_state, random_source=rng
    )
    if result.measurements:
        return result.bitstring
    # No measurement in the circuit: read out every register at the end
    final = MeasurementEngine(rng).measure(result.final_state, range(circuit.n_registers))
    return final.bitstring


def sample(
    circuit: Circuit,
    shots: int = 1024,
    seed: int | None = None,
    workers: int = 1,
    initial_state: StateVector | Sequence[complex] | ndarray | None = None,
    check_norm: bool = True,
) -> SampleResult:
    """
    Run ``circuit`` ``shots`` times on independent states.

    Each shot's key is the concatenation of all of its measurement
    bitstrings; circuits without measurements are read out on every
    register after the last moment.

    Example
    -------
    >>> qc = Circuit(2).h(0).cx(0, 1).measure_all()
    >>> counts = sample(qc, shots=1000, seed=42).counts
    >>> sorted(counts)
    ['00', '11']
    """
    if shots < 1:
        raise ValueError("shots must be >= 1")
    if workers < 1:
        raise ValueError("workers must be >= 1")
    if isinstance(initial_state, StateVector):
        initial_state = initial_state.amplitudes
    seeds = np.random.SeedSequence(seed).spawn(shots)

    def one(ss: np.random.SeedSequence) -> str:
        return _shot(circuit, ss, initial_state, check_norm)

    keys: Iterable[str]
    if workers == 1:
        keys = map(one, seeds)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            keys = list(pool.map(one, seeds))

    counts: dict[str, int] = {}
    for key in keys:
        counts[key] = counts.get(key, 0) + 1
    logger.info("sampled %r: %d shot(s), %d distinct outcome(s)", circuit.name, shots, len(counts))
    return SampleResult(counts=dict(sorted(counts.items())), shots=shots)


def sample_with_options(circuit: Circuit, options: RunOptions) -> SampleResult:
    """``sample`` driven by ``RunOptions`` (``shots``, ``workers``, ``seed``)."""
    options.validate()
    return sample(
        circuit,
        shots=options.shots,
        seed=options.seed,
        workers=options.workers,
        initial_state=options.initial_state,
        check_norm=options.check_norm,
    )
