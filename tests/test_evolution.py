"""Tests for the state evolution engine."""

import numpy as np
import pytest

from tiny_qsim import (
    Circuit,
    EvolutionEngine,
    InvalidGateError,
    RegisterIndexError,
    StateVector,
    apply_matrix,
    apply_placement,
)
from tiny_qsim import gates as g
from tiny_qsim.circuit import Placement, Role


@pytest.fixture
def engine():
    return EvolutionEngine()


def _full_operator(matrix, registers, n):
    """Dense reference: permute the gate into position via kron + swaps."""
    dim = 2**n
    k = len(registers)
    full = np.zeros((dim, dim), dtype=complex)
    for col in range(dim):
        bits = [(col >> (n - 1 - r)) & 1 for r in range(n)]
        sub_in = 0
        for r in registers:
            sub_in = (sub_in << 1) | bits[r]
        for sub_out in range(2**k):
            amp = matrix[sub_out, sub_in]
            if amp == 0:
                continue
            out_bits = list(bits)
            for j, r in enumerate(registers):
                out_bits[r] = (sub_out >> (k - 1 - j)) & 1
            row = int("".join(map(str, out_bits)), 2)
            full[row, col] += amp
    return full


def _random_state(n, seed=0):
    rng = np.random.default_rng(seed)
    amps = rng.normal(size=2**n) + 1j * rng.normal(size=2**n)
    return StateVector.from_amplitudes(amps / np.linalg.norm(amps))


# ---------------------------------------------------------------------------
# Single-register gates
# ---------------------------------------------------------------------------

def test_x_flips_register(engine):
    state = StateVector(1)
    engine.apply_gate(state, "x", [0])
    np.testing.assert_allclose(state.amplitudes, [0, 1], atol=1e-12)


def test_x_on_register_zero_is_most_significant(engine):
    state = StateVector(2)
    engine.apply_gate(state, "x", [0])
    np.testing.assert_allclose(state.amplitudes, [0, 0, 1, 0], atol=1e-12)


def test_hadamard_superposition(engine):
    state = StateVector(1)
    engine.apply_gate(state, "h", [0])
    np.testing.assert_allclose(state.amplitudes, np.array([1, 1]) / np.sqrt(2), atol=1e-12)


def test_hadamard_twice_restores_state(engine):
    state = _random_state(3, seed=4)
    before = state.amplitudes
    engine.apply_gate(state, "h", [1])
    engine.apply_gate(state, "h", [1])
    np.testing.assert_allclose(state.amplitudes, before, atol=1e-12)


def test_identity_leaves_state_unchanged(engine):
    state = _random_state(2, seed=1)
    before = state.amplitudes
    engine.apply_gate(state, "i", [0])
    np.testing.assert_allclose(state.amplitudes, before, atol=1e-12)


@pytest.mark.parametrize("register", [0, 1, 2, 3])
@pytest.mark.parametrize("name", ["h", "x", "y", "s", "t", "sx"])
def test_single_register_matches_dense_reference(engine, name, register):
    n = 4
    state = _random_state(n, seed=register)
    expected = _full_operator(g.get_matrix(name), [register], n) @ state.amplitudes
    engine.apply_gate(state, name, [register])
    np.testing.assert_allclose(state.amplitudes, expected, atol=1e-12)


def test_single_register_touches_pairs_differing_in_one_bit(engine):
    # Only amplitudes 0b000 and 0b010 are populated; H on register 1 mixes exactly that pair
    state = StateVector(3)
    engine.apply_gate(state, "h", [1])
    expected = np.zeros(8, dtype=complex)
    expected[0b000] = expected[0b010] = 1 / np.sqrt(2)
    np.testing.assert_allclose(state.amplitudes, expected, atol=1e-12)


# ---------------------------------------------------------------------------
# Controlled & multi-register gates
# ---------------------------------------------------------------------------

def test_bell_state(engine):
    state = StateVector(2)
    engine.apply_gate(state, "h", [0])
    engine.apply_gate(state, "cx", [0, 1])
    np.testing.assert_allclose(
        state.amplitudes, np.array([1, 0, 0, 1]) / np.sqrt(2), atol=1e-12
    )


def test_cnot_control_zero_is_identity(engine):
    state = StateVector(2)
    engine.apply_gate(state, "cx", [0, 1])
    np.testing.assert_allclose(state.amplitudes, [1, 0, 0, 0], atol=1e-12)


def test_cnot_reversed_control(engine):
    state = StateVector.basis(2, 0b01)
    engine.apply_gate(state, "cx", [1, 0])
    np.testing.assert_allclose(state.amplitudes, [0, 0, 0, 1], atol=1e-12)


def test_controlled_leaves_control_zero_amplitudes(engine):
    state = _random_state(3, seed=9)
    before = state.amplitudes
    engine.apply_gate(state, "cy", [1, 2])
    after = state.amplitudes
    for i in range(8):
        if not (i >> 1) & 1:  # register 1 is bit 1 in a 3-register state
            assert after[i] == before[i]


@pytest.mark.parametrize(
    "name,registers",
    [
        ("cx", [0, 2]), ("cx", [2, 0]), ("cz", [1, 3]), ("cy", [3, 1]),
        ("swap", [0, 3]), ("swap", [2, 1]), ("iswap", [1, 2]),
        ("ccx", [0, 1, 3]), ("ccx", [3, 2, 0]), ("cswap", [2, 0, 3]),
    ],
)
def test_multi_register_matches_dense_reference(engine, name, registers):
    n = 4
    state = _random_state(n, seed=len(registers))
    expected = _full_operator(g.get_matrix(name), registers, n) @ state.amplitudes
    engine.apply_gate(state, name, registers)
    np.testing.assert_allclose(state.amplitudes, expected, atol=1e-12)


def test_parameterized_controlled_phase(engine):
    state = StateVector.basis(2, 0b11)
    engine.apply_gate(state, "cp", [0, 1], [np.pi / 2])
    np.testing.assert_allclose(state.amplitudes, [0, 0, 0, 1j], atol=1e-12)


def test_apply_matrix_with_explicit_controls():
    state = StateVector.basis(3, 0b110)
    apply_matrix(state, g.X, targets=[2], controls=[0, 1])
    np.testing.assert_allclose(state.amplitudes, np.eye(8)[0b111], atol=1e-12)


# ---------------------------------------------------------------------------
# Norm invariant
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("name", ["h", "x", "y", "z", "s", "t", "sx"])
def test_norm_preserved_single(engine, name):
    state = _random_state(3, seed=2)
    engine.apply_gate(state, name, [2])
    assert state.norm_squared_sum() == pytest.approx(1.0, abs=1e-9)


def test_norm_preserved_over_long_sequence(engine):
    state = _random_state(4, seed=3)
    rng = np.random.default_rng(11)
    for _ in range(200):
        a, b = rng.choice(4, size=2, replace=False)
        engine.apply_gate(state, "rx", [int(a)], [float(rng.uniform(-3, 3))])
        engine.apply_gate(state, "cx", [int(a), int(b)])
        assert state.norm_squared_sum() == pytest.approx(1.0, abs=1e-9)


# ---------------------------------------------------------------------------
# Placements & errors
# ---------------------------------------------------------------------------

def test_apply_placement(engine):
    state = StateVector(2)
    engine.apply(state, Placement(0, "x", (1,), (Role.TARGET,)))
    np.testing.assert_allclose(state.amplitudes, [0, 1, 0, 0], atol=1e-12)


def test_register_index_error_carries_context(engine):
    state = StateVector(2)
    placement = Placement(3, "h", (2,), (Role.TARGET,))
    with pytest.raises(RegisterIndexError) as info:
        engine.apply(state, placement)
    assert info.value.moment == 3
    assert info.value.gate == "h"
    assert info.value.registers == (2,)
    assert "moment=3" in str(info.value)


def test_register_index_error_is_index_error(engine):
    with pytest.raises(IndexError):
        engine.apply_gate(StateVector(1), "cx", [0, 1])


def test_measurement_placement_rejected(engine):
    with pytest.raises(InvalidGateError):
        engine.apply(StateVector(1), Placement(0, "measure", (0,), (Role.TARGET,)))


def test_wrong_arity_by_name(engine):
    with pytest.raises(InvalidGateError):
        engine.apply_gate(StateVector(2), "cx", [0])


def test_apply_matrix_shape_mismatch():
    with pytest.raises(InvalidGateError):
        apply_matrix(StateVector(2), g.CNOT, targets=[0])


def test_circuit_placements_apply_in_order(engine):
    qc = Circuit(3).h(0).cx(0, 1).cx(1, 2)
    state = StateVector(3)
    for moment in qc.moments():
        for placement in moment:
            engine.apply(state, placement)
    expected = np.zeros(8)
    expected[0] = expected[7] = 1 / np.sqrt(2)
    np.testing.assert_allclose(state.amplitudes, expected, atol=1e-12)


def test_apply_placement_function():
    state = StateVector(2)
    apply_placement(state, Placement(0, "cx", (0, 1), (Role.CONTROL, Role.TARGET)))
    np.testing.assert_allclose(state.amplitudes, [1, 0, 0, 0], atol=1e-12)
    apply_placement(state, Placement(1, "x", (0,), (Role.TARGET,)))
    apply_placement(state, Placement(2, "cx", (0, 1), (Role.CONTROL, Role.TARGET)))
    np.testing.assert_allclose(state.amplitudes, [0, 0, 0, 1], atol=1e-12)
