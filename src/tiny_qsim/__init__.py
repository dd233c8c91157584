"""
tiny-qsim: a small quantum state-vector simulator over moment-based circuits.

Features:
- Moment grid circuits: Circuit(2).h(0).cx(0, 1).measure_all()
- Validated, immutable gate catalog
- O(2^n) gate application via tensor contraction, controls by slicing
- Seeded Born-rule measurement with state collapse
- Parallel batch sampling with reproducible per-shot seeds
- Text-grid front end: parse_grid("H X#0\\nI X#1")

Quick Start:
    >>> from tiny_qsim import Circuit, run_circuit, sample
    >>> qc = Circuit(2).h(0).cx(0, 1)
    >>> run_circuit(qc).final_state.amplitudes.round(3)
    array([0.707+0.j, 0.   +0.j, 0.   +0.j, 0.707+0.j])
    >>> sample(qc.measure_all(), shots=1000, seed=7).counts  # {'00': ~500, '11': ~500}
"""
__version__ = "0.1.0"

from . import gates
from .circuit import MEASURE, Circuit, Moment, Placement, Role
from .config import RunOptions, load_options
from .evolution import EvolutionEngine, apply_matrix, apply_placement
from .exceptions import (
    ConflictError,
    DimensionError,
    EmptyStateError,
    InvalidGateError,
    NormalizationError,
    QuantumError,
    RangeError,
    RegisterIndexError,
    RunCancelledError,
    RunnerBusyError,
)
from .gates import Gate, GateCatalog, catalog
from .measurement import (
    MeasurementEngine,
    MeasurementOutcome,
    marginal_probabilities,
    measure,
)
from .runner import (
    CircuitRunner,
    RunResult,
    RunStatus,
    SampleResult,
    run_circuit,
    sample,
    sample_with_options,
)
from .statevector import StateVector

__all__ = [
    # Core
    "StateVector",
    "Gate",
    "GateCatalog",
    "catalog",
    "gates",
    "Circuit",
    "Moment",
    "Placement",
    "Role",
    "MEASURE",
    # Engines
    "EvolutionEngine",
    "apply_matrix",
    "apply_placement",
    "MeasurementEngine",
    "MeasurementOutcome",
    "marginal_probabilities",
    "measure",
    # Execution
    "CircuitRunner",
    "RunResult",
    "RunStatus",
    "SampleResult",
    "RunOptions",
    "load_options",
    "run_circuit",
    "sample",
    "sample_with_options",
    # Errors
    "QuantumError",
    "DimensionError",
    "NormalizationError",
    "InvalidGateError",
    "ConflictError",
    "RangeError",
    "RegisterIndexError",
    "EmptyStateError",
    "RunCancelledError",
    "RunnerBusyError",
]
