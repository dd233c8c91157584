"""Tests for the circuit runner and batch sampling."""

import threading

import numpy as np
import pytest

from tiny_qsim import (
    Circuit,
    CircuitRunner,
    DimensionError,
    EvolutionEngine,
    InvalidGateError,
    RegisterIndexError,
    RunCancelledError,
    RunnerBusyError,
    RunOptions,
    RunStatus,
    StateVector,
    run_circuit,
    sample,
    sample_with_options,
)
from tiny_qsim.gates import Gate, GateCatalog
from tiny_qsim import gates as g


@pytest.fixture
def runner():
    return CircuitRunner()


def _bell():
    return Circuit(2, name="bell").h(0).cx(0, 1)


# ---------------------------------------------------------------------------
# Basic execution
# ---------------------------------------------------------------------------

def test_initial_status_idle(runner):
    assert runner.status is RunStatus.IDLE


def test_empty_circuit_returns_zero_state(runner):
    result = runner.run(Circuit(3))
    expected = np.zeros(8)
    expected[0] = 1
    np.testing.assert_allclose(result.statevector, expected, atol=1e-12)
    assert result.measurements == []
    assert runner.status is RunStatus.COMPLETED


def test_identity_only_circuit_leaves_state_unchanged(runner):
    qc = Circuit(1).i(0)
    result = runner.run(qc)
    np.testing.assert_allclose(result.statevector, [1, 0], atol=1e-12)

    start = StateVector.from_amplitudes([0.6, 0.8j])
    result = runner.run(qc, initial_state=start)
    np.testing.assert_allclose(result.statevector, [0.6, 0.8j], atol=1e-12)


def test_hadamard_twice_round_trip(runner):
    qc = Circuit(1).h(0).h(0)
    result = runner.run(qc)
    np.testing.assert_allclose(result.statevector, [1, 0], atol=1e-12)


def test_bell_state_amplitudes(runner):
    result = runner.run(_bell())
    np.testing.assert_allclose(
        result.statevector, [0.70710678, 0, 0, 0.70710678], atol=1e-8
    )


def test_ghz_state(runner):
    qc = Circuit(3).h(0).cx(0, 1).cx(1, 2)
    sv = runner.run(qc).statevector
    assert abs(sv[0]) ** 2 == pytest.approx(0.5, abs=1e-10)
    assert abs(sv[7]) ** 2 == pytest.approx(0.5, abs=1e-10)
    assert sum(abs(sv[i]) ** 2 for i in range(1, 7)) == pytest.approx(0, abs=1e-10)


def test_initial_state_is_copied(runner):
    start = StateVector(1)
    runner.run(Circuit(1).x(0), initial_state=start)
    assert start.get(0) == 1


def test_initial_state_from_array(runner):
    result = runner.run(Circuit(1).x(0), initial_state=[0, 1])
    np.testing.assert_allclose(result.statevector, [1, 0], atol=1e-12)


def test_initial_state_wrong_size(runner):
    with pytest.raises(DimensionError):
        runner.run(Circuit(2), initial_state=[1, 0])
    assert runner.status is RunStatus.FAILED


def test_circuit_not_modified_by_run(runner):
    qc = _bell().measure_all()
    before = qc.placements
    runner.run(qc, random_source=1)
    runner.run(qc, random_source=2)
    assert qc.placements == before


# ---------------------------------------------------------------------------
# Measurement in runs
# ---------------------------------------------------------------------------

def test_measurements_in_order(runner):
    qc = Circuit(2).x(0).measure(0).h(1).measure(1)
    result = runner.run(qc, random_source=0)
    assert [m.moment for m in result.measurements] == [1, 1]
    assert [m.registers for m in result.measurements] == [(0,), (1,)]
    assert result.measurements[0].bitstring == "1"


def test_measurements_ordered_across_moments(runner):
    qc = Circuit(1).x(0).measure(0).x(0).measure(0)
    result = runner.run(qc, random_source=0)
    assert result.bitstrings() == ["1", "0"]
    assert result.bitstring == "10"
    assert [m.moment for m in result.measurements] == [1, 3]


def test_bell_measurement_correlated(runner):
    qc = _bell().measure(0).measure(1)
    for seed in range(30):
        result = runner.run(qc, random_source=seed)
        assert result.bitstring in ("00", "11")


def test_same_seed_reproducible(runner):
    qc = Circuit(3).h(0).h(1).h(2).measure_all()
    a = [runner.run(qc, random_source=s).bitstring for s in range(10)]
    b = [runner.run(qc, random_source=s).bitstring for s in range(10)]
    assert a == b


def test_collect_probabilities(runner):
    result = runner.run(_bell(), collect_probabilities=True)
    assert result.probabilities == pytest.approx({"00": 0.5, "11": 0.5})
    assert runner.run(_bell()).probabilities is None


# ---------------------------------------------------------------------------
# Failure semantics
# ---------------------------------------------------------------------------

def test_failure_status_and_context():
    # The circuit validates against the standard catalog, the runner's catalog lacks "x"
    qc = Circuit(2).h(1).x(0)
    runner = CircuitRunner(gate_catalog=GateCatalog([Gate("h", 1, g.H)]))
    with pytest.raises(InvalidGateError) as info:
        runner.run(qc)
    assert runner.status is RunStatus.FAILED
    assert info.value.moment == 0
    assert info.value.registers == (0,)
    assert info.value.gate == "x"


def test_register_error_surfaces_from_run(monkeypatch, runner):
    qc = Circuit(2).h(1)

    def broken(self, state, placement):
        raise RegisterIndexError("boom", registers=(5,))

    monkeypatch.setattr(EvolutionEngine, "apply", broken)
    with pytest.raises(RegisterIndexError) as info:
        runner.run(qc)
    assert info.value.moment == 0
    assert info.value.registers == (5,)
    assert info.value.gate == "h"
    assert runner.status is RunStatus.FAILED


def test_runner_reusable_after_failure(runner):
    with pytest.raises(DimensionError):
        runner.run(Circuit(1), initial_state=[1, 0, 0, 0])
    result = runner.run(Circuit(1).x(0))
    assert runner.status is RunStatus.COMPLETED
    np.testing.assert_allclose(result.statevector, [0, 1])


# ---------------------------------------------------------------------------
# Cancellation & exclusivity
# ---------------------------------------------------------------------------

def test_cancel_between_moments(monkeypatch, runner):
    qc = Circuit(1).x(0).x(0).x(0)
    original = EvolutionEngine.apply
    calls = []

    def apply_and_cancel(self, state, placement):
        calls.append(placement.moment)
        runner.cancel()
        return original(self, state, placement)

    monkeypatch.setattr(EvolutionEngine, "apply", apply_and_cancel)
    with pytest.raises(RunCancelledError) as info:
        runner.run(qc)
    assert calls == [0]
    assert info.value.moment == 1
    assert runner.status is RunStatus.CANCELLED


def test_cancel_before_run_stops_next_run_only(runner):
    runner.cancel()
    with pytest.raises(RunCancelledError) as info:
        runner.run(Circuit(1).x(0))
    assert info.value.moment == 0
    assert runner.status is RunStatus.CANCELLED

    runner.run(Circuit(1).x(0))
    assert runner.status is RunStatus.COMPLETED


def test_concurrent_run_on_same_runner_rejected(monkeypatch, runner):
    entered = threading.Event()
    release = threading.Event()
    original = EvolutionEngine.apply

    def slow_apply(self, state, placement):
        entered.set()
        release.wait(timeout=5)
        return original(self, state, placement)

    monkeypatch.setattr(EvolutionEngine, "apply", slow_apply)
    worker = threading.Thread(target=runner.run, args=(Circuit(1).x(0),))
    worker.start()
    try:
        assert entered.wait(timeout=5)
        with pytest.raises(RunnerBusyError):
            runner.run(Circuit(1))
        assert runner.status is RunStatus.RUNNING
    finally:
        release.set()
        worker.join(timeout=5)
    assert runner.status is RunStatus.COMPLETED


# ---------------------------------------------------------------------------
# run_circuit & options
# ---------------------------------------------------------------------------

def test_run_circuit_defaults():
    result = run_circuit(_bell())
    np.testing.assert_allclose(np.abs(result.statevector) ** 2, [0.5, 0, 0, 0.5], atol=1e-12)


def test_run_circuit_with_options():
    options = RunOptions(seed=3, initial_state=(0, 1, 0, 0), collect_probabilities=True)
    result = run_circuit(Circuit(2).x(1), options)
    assert result.probabilities == pytest.approx({"00": 1.0})


def test_run_circuit_with_statevector_initial_state():
    result = run_circuit(Circuit(1).x(0), initial_state=StateVector.basis(1, 1))
    np.testing.assert_allclose(result.statevector, [1, 0], atol=1e-12)


def test_run_options_accept_statevector():
    options = RunOptions(initial_state=StateVector.basis(2, 0b11))
    assert options.initial_state == (0j, 0j, 0j, 1 + 0j)
    result = run_circuit(Circuit(2).cx(0, 1), options)
    np.testing.assert_allclose(result.statevector, [0, 0, 1, 0], atol=1e-12)


def test_run_circuit_overrides():
    qc = Circuit(2).h(0).h(1).measure_all()
    a = run_circuit(qc, RunOptions(seed=1), seed=8)
    b = run_circuit(qc, seed=8)
    assert a.bitstring == b.bitstring


def test_run_circuit_invalid_options():
    with pytest.raises(ValueError):
        run_circuit(Circuit(1), RunOptions(seed=-1))


# ---------------------------------------------------------------------------
# Batch sampling
# ---------------------------------------------------------------------------

def test_sample_bell_histogram():
    qc = _bell().measure_all()
    result = sample(qc, shots=10_000, seed=2024)
    assert set(result.counts) == {"00", "11"}
    assert sum(result.counts.values()) == 10_000
    assert result.frequency("00") == pytest.approx(0.5, abs=0.03)
    assert result.frequency("01") == 0
    assert result.most_frequent() in ("00", "11")


def test_sample_without_measurements_reads_all_registers():
    result = sample(Circuit(2).x(0), shots=20, seed=1)
    assert result.counts == {"10": 20}


def test_sample_is_independent_of_worker_count():
    qc = Circuit(3).h(0).h(1).cx(1, 2).measure_all()
    serial = sample(qc, shots=300, seed=5, workers=1)
    parallel = sample(qc, shots=300, seed=5, workers=4)
    assert serial.counts == parallel.counts


def test_sample_with_initial_state():
    result = sample(Circuit(1).measure(0), shots=10, seed=0, initial_state=StateVector.basis(1, 1))
    assert result.counts == {"1": 10}


def test_sample_with_options():
    qc = _bell().measure_all()
    result = sample_with_options(qc, RunOptions(seed=4, shots=64, workers=2))
    assert result.shots == 64
    assert set(result.counts) <= {"00", "11"}


@pytest.mark.parametrize("kwargs", [{"shots": 0}, {"workers": 0}])
def test_sample_rejects_bad_arguments(kwargs):
    with pytest.raises(ValueError):
        sample(Circuit(1), **kwargs)
