"""
State evolution engine.

Applies one gate placement to a ``StateVector`` in place. The full
2^n × 2^n operator is never built: the state is viewed as a rank-n
tensor (2×2×...×2) and the gate's matrix is contracted along the target
register axes only, which touches every amplitude pair (or 2^k-tuple)
that differs in the target bits exactly once. Cost is O(2^n · 4^k) for a
k-target gate.

Controlled gates are applied by first slicing the tensor at index 1 on
every control axis; the target operator is contracted on that slice
alone, so amplitudes with any control bit 0 are left untouched.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from numpy import ndarray

from .circuit import Placement
from .exceptions import InvalidGateError, QuantumError, RegisterIndexError
from .gates import GateCatalog, catalog as default_catalog
from .statevector import NORM_TOLERANCE, StateVector

logger = logging.getLogger(__name__)


def check_registers(state: StateVector, registers: Sequence[int]) -> None:
    for r in registers:
        if not 0 <= r < state.n_registers:
            raise RegisterIndexError(
                f"Register {r} does not exist in a {state.n_registers}-register state",
                registers=registers,
            )
    if len(set(registers)) != len(registers):
        raise RegisterIndexError(f"Duplicate registers {list(registers)}", registers=registers)


def apply_matrix(
    state: StateVector,
    matrix: ndarray,
    targets: Sequence[int],
    controls: Sequence[int] = (),
) -> None:
    """
    Apply ``matrix`` to ``targets``, conditioned on every control being 1.

    Parameters
    ----------
    state : StateVector
        Mutated in place.
    matrix : ndarray
        2^k × 2^k operator, k = len(targets). Row/column bit order
        follows ``targets`` (first target most significant).
    targets, controls : sequence of int
        Disjoint register indices.

    Raises
    ------
    RegisterIndexError
        If a register is not in the state, or appears twice.
    """
    targets = tuple(targets)
    controls = tuple(controls)
    check_registers(state, controls + targets)
    k = len(targets)
    if matrix.shape != (2**k, 2**k):
        raise InvalidGateError(
            f"Matrix shape {matrix.shape} does not fit {k} target register(s)",
            registers=controls + targets,
        )

    n = state.n_registers
    tensor = state.tensor

    index: list[object] = [slice(None)] * n
    for c in controls:
        index[c] = 1
    view = tensor[tuple(index)]

    # Axis of each target once the control axes are sliced away
    axes = [t - sum(1 for c in controls if c < t) for t in targets]

    gate_tensor = matrix.reshape((2,) * (2 * k))
    updated = np.tensordot(gate_tensor, view, axes=(list(range(k, 2 * k)), axes))
    updated = np.moveaxis(updated, list(range(k)), axes)
    tensor[tuple(index)] = updated


class EvolutionEngine:
    """
    Applies catalog gates to states.

    Parameters
    ----------
    gate_catalog : GateCatalog, optional
        Where gate names are resolved. Defaults to the standard catalog.
    check_norm : bool
        Assert the norm invariant after every gate (only when Python runs
        without ``-O``).
    """

    def __init__(
        self, gate_catalog: GateCatalog | None = None, check_norm: bool = True
    ) -> None:
        self.catalog = gate_catalog or default_catalog()
        self.check_norm = check_norm

    def apply(self, state: StateVector, placement: Placement) -> StateVector:
        """Apply one gate placement in place and return the state."""
        if placement.is_measurement:
            raise InvalidGateError(
                "Measurement placements are handled by the measurement engine",
                moment=placement.moment,
                registers=placement.registers,
                gate=placement.gate,
            )
        try:
            gate = self.catalog.gate(placement.gate)
            target = gate.target_matrix(placement.params)
            apply_matrix(state, target, placement.targets, placement.controls)
        except QuantumError as exc:
            raise exc.with_context(
                moment=placement.moment, registers=placement.registers, gate=placement.gate
            )

        if __debug__ and self.check_norm:
            norm = state.norm_squared_sum()
            assert abs(norm - 1.0) <= NORM_TOLERANCE, (
                f"Norm drifted to {norm!r} after {placement}"
            )
        logger.debug("applied %s", placement)
        return state

    def apply_gate(
        self,
        state: StateVector,
        name: str,
        registers: Sequence[int],
        params: Sequence[float] = (),
    ) -> StateVector:
        """Apply a catalog gate by name; the gate's controls come first in ``registers``."""
        gate = self.catalog.gate(name)
        registers = tuple(registers)
        if len(registers) != gate.n_registers:
            raise InvalidGateError(
                f"Gate '{gate.name}' acts on {gate.n_registers} register(s), got {len(registers)}",
                registers=registers,
                gate=gate.name,
            )
        try:
            apply_matrix(
                state,
                gate.target_matrix(tuple(params)),
                registers[gate.n_controls:],
                registers[: gate.n_controls],
            )
        except QuantumError as exc:
            raise exc.with_context(registers=registers, gate=gate.name)
        return state


def apply_placement(
    state: StateVector,
    placement: Placement,
    gate_catalog: GateCatalog | None = None,
    check_norm: bool = True,
) -> StateVector:
    """Apply one gate placement to ``state`` in place; see ``EvolutionEngine.apply``."""
    return EvolutionEngine(gate_catalog, check_norm).apply(state, placement)
