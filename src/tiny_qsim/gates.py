"""
Gate matrix library.

Every gate is a unitary numpy matrix. Controlled gates are stored as
their target operator plus a control count; the full matrix (controls
first, register 0 most significant) is derived from it.

The default catalog is built once at import time and validated for
unitarity; a bad entry raises ``InvalidGateError`` during import and
never while a circuit is running. The catalog and every matrix it hands
out are read-only.

Gate categories:
    - Single-register: I, H, X, Y, Z, S, Sdg, T, Tdg, SX
    - Parameterized: P (phase), Rx, Ry, Rz, U3
    - Two-register: SWAP, iSWAP
    - Controlled: CX, CY, CZ, CS, CP, CCX (Toffoli), CSWAP (Fredkin)
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterable, Iterator, Mapping

import numpy as np
from numpy import ndarray

from .exceptions import InvalidGateError

Matrix = ndarray

UNITARY_TOLERANCE = 1e-9

_SQRT2_INV = 1.0 / np.sqrt(2.0)

# Angles used to validate parameterized gates when the catalog is built.
_PROBE_ANGLES = (0.0, 0.37, np.pi / 2, np.pi, -1.3)


def _frozen(matrix: Matrix) -> Matrix:
    matrix = np.array(matrix, dtype=np.complex128)
    matrix.setflags(write=False)
    return matrix


# ---------------------------------------------------------------------------
# Single-register fixed gates
# ---------------------------------------------------------------------------

I = _frozen(np.eye(2))
"""Identity."""

H = _frozen(np.array([[1, 1], [1, -1]]) * _SQRT2_INV)
"""Hadamard."""

X = _frozen([[0, 1], [1, 0]])
"""Pauli-X (NOT)."""

Y = _frozen([[0, -1j], [1j, 0]])
"""Pauli-Y."""

Z = _frozen([[1, 0], [0, -1]])
"""Pauli-Z."""

S = _frozen([[1, 0], [0, 1j]])
"""S = sqrt(Z)."""

Sdg = _frozen([[1, 0], [0, -1j]])

T = _frozen([[1, 0], [0, np.exp(1j * np.pi / 4)]])
"""T = sqrt(S)."""

Tdg = _frozen([[1, 0], [0, np.exp(-1j * np.pi / 4)]])

SX = _frozen(np.array([[1 + 1j, 1 - 1j], [1 - 1j, 1 + 1j]]) * 0.5)
"""sqrt(X), a.k.a. sqrt(NOT)."""

# ---------------------------------------------------------------------------
# Two-register fixed gates
# ---------------------------------------------------------------------------

SWAP = _frozen([[1, 0, 0, 0], [0, 0, 1, 0], [0, 1, 0, 0], [0, 0, 0, 1]])

iSWAP = _frozen([[1, 0, 0, 0], [0, 0, 1j, 0], [0, 1j, 0, 0], [0, 0, 0, 1]])


# ---------------------------------------------------------------------------
# Parameterized gates
# ---------------------------------------------------------------------------

def P(phi: float) -> Matrix:
    """Phase gate: P(φ)|1⟩ = e^(iφ)|1⟩."""
    return np.array([[1, 0], [0, np.exp(1j * phi)]], dtype=np.complex128)


def Rx(theta: float) -> Matrix:
    """Rotation around X-axis: exp(-iθX/2)."""
    c, s = np.cos(theta / 2), np.sin(theta / 2)
    return np.array([[c, -1j * s], [-1j * s, c]], dtype=np.complex128)


def Ry(theta: float) -> Matrix:
    """Rotation around Y-axis: exp(-iθY/2)."""
    c, s = np.cos(theta / 2), np.sin(theta / 2)
    return np.array([[c, -s], [s, c]], dtype=np.complex128)


def Rz(theta: float) -> Matrix:
    """Rotation around Z-axis: exp(-iθZ/2)."""
    return np.array(
        [[np.exp(-1j * theta / 2), 0], [0, np.exp(1j * theta / 2)]],
        dtype=np.complex128,
    )


def U3(theta: float, phi: float, lam: float) -> Matrix:
    """
    General single-register unitary (IBM U3 convention).

    U3(θ, φ, λ) = [[cos(θ/2), -e^(iλ) sin(θ/2)],
                    [e^(iφ) sin(θ/2), e^(i(φ+λ)) cos(θ/2)]]
    """
    c, s = np.cos(theta / 2), np.sin(theta / 2)
    return np.array(
        [
            [c, -np.exp(1j * lam) * s],
            [np.exp(1j * phi) * s, np.exp(1j * (phi + lam)) * c],
        ],
        dtype=np.complex128,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def is_unitary(matrix: Matrix, tol: float = UNITARY_TOLERANCE) -> bool:
    """Check U·U† = I within ``tol``."""
    matrix = np.asarray(matrix)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return False
    product = matrix @ matrix.conj().T
    return bool(np.allclose(product, np.eye(matrix.shape[0]), atol=tol))


def controlled(target: Matrix, n_controls: int) -> Matrix:
    """
    Full matrix of ``target`` controlled on ``n_controls`` registers.

    Controls come first (most significant), so the target operator fills
    the bottom-right block and everything else is identity.
    """
    target = np.asarray(target, dtype=np.complex128)
    if n_controls == 0:
        return target
    d = target.shape[0]
    full = np.eye(d * 2**n_controls, dtype=np.complex128)
    full[-d:, -d:] = target
    return full


# ---------------------------------------------------------------------------
# Gate & catalog
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Gate:
    """
    A catalog entry.

    ``base`` is the operator applied to the target registers: a fixed
    matrix, or a factory taking ``n_params`` floats. When ``n_controls``
    is non-zero it is applied only where every control register is 1.
    """

    name: str
    n_registers: int
    base: Matrix | Callable[..., Matrix]
    n_controls: int = 0
    n_params: int = 0
    aliases: tuple[str, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not callable(self.base):
            object.__setattr__(self, "base", _frozen(self.base))

    @property
    def n_targets(self) -> int:
        return self.n_registers - self.n_controls

    @property
    def is_parameterized(self) -> bool:
        return self.n_params > 0

    @property
    def is_controlled(self) -> bool:
        return self.n_controls > 0

    def _check_params(self, params: tuple[float, ...]) -> None:
        if len(params) != self.n_params:
            raise InvalidGateError(
                f"Gate '{self.name}' takes {self.n_params} parameter(s), "
                f"got {len(params)}",
                gate=self.name,
            )

    def target_matrix(self, params: tuple[float, ...] = ()) -> Matrix:
        """Operator on the target registers only (read-only)."""
        params = tuple(params)
        self._check_params(params)
        if self.n_params == 0:
            return self.base  # type: ignore[return-value]
        return _frozen(self.base(*params))  # type: ignore[operator]

    def matrix(self, params: tuple[float, ...] = ()) -> Matrix:
        """Full 2^k × 2^k matrix over all of the gate's registers."""
        target = self.target_matrix(params)
        if not self.n_controls:
            return target
        return _frozen(controlled(target, self.n_controls))


class GateCatalog:
    """
    Immutable, validated name → gate lookup.

    Names are case-insensitive. Construction checks every entry: matrix
    shape must match the register count and every matrix (every probe
    angle for parameterized gates) must be unitary.

    Raises
    ------
    InvalidGateError
        If any entry fails validation or two entries share a name.
    """

    def __init__(self, gates: Iterable[Gate], tol: float = UNITARY_TOLERANCE) -> None:
        table: dict[str, Gate] = {}
        canonical: list[Gate] = []
        for gate in gates:
            self._validate(gate, tol)
            for key in (gate.name, *gate.aliases):
                key = key.lower()
                if key in table:
                    raise InvalidGateError(f"Duplicate gate name '{key}'", gate=gate.name)
                table[key] = gate
            canonical.append(gate)
        self._table: Mapping[str, Gate] = MappingProxyType(table)
        self._gates: tuple[Gate, ...] = tuple(canonical)

    @staticmethod
    def _validate(gate: Gate, tol: float) -> None:
        if gate.n_registers < 1 or not 0 <= gate.n_controls < gate.n_registers:
            raise InvalidGateError(
                f"Gate '{gate.name}' has invalid arity "
                f"({gate.n_controls} controls, {gate.n_registers} registers)",
                gate=gate.name,
            )
        if gate.n_params:
            probes = list(itertools.product(_PROBE_ANGLES, repeat=gate.n_params))
        else:
            probes = [()]
        expected = 2**gate.n_targets
        for params in probes:
            try:
                target = gate.target_matrix(params)
            except Exception as exc:
                raise InvalidGateError(
                    f"Gate '{gate.name}' failed to build: {exc}", gate=gate.name
                ) from exc
            if target.shape != (expected, expected):
                raise InvalidGateError(
                    f"Gate '{gate.name}' expects a {expected}x{expected} matrix, "
                    f"got {target.shape}",
                    gate=gate.name,
                )
            if not is_unitary(target, tol):
                raise InvalidGateError(
                    f"Gate '{gate.name}' is not unitary"
                    + (f" at params {params}" if params else ""),
                    gate=gate.name,
                )

    def gate(self, name: str) -> Gate:
        """Look up a gate entry by name or alias."""
        try:
            return self._table[name.lower()]
        except KeyError:
            raise InvalidGateError(
                f"Unknown gate: '{name}'. Available: {self.names()}", gate=name
            ) from None

    def get(self, name: str, params: tuple[float, ...] = ()) -> Matrix:
        """Full read-only matrix for ``name`` with optional parameters."""
        return self.gate(name).matrix(tuple(params))

    def names(self) -> list[str]:
        """Canonical gate names, in catalog order."""
        return [g.name for g in self._gates]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._table

    def __iter__(self) -> Iterator[Gate]:
        return iter(self._gates)

    def __len__(self) -> int:
        return len(self._gates)

    def __repr__(self) -> str:
        return f"GateCatalog(gates={len(self._gates)})"


STANDARD_GATES: tuple[Gate, ...] = (
    Gate("i", 1, I, aliases=("id", "identity"), description="Identity"),
    Gate("h", 1, H, aliases=("hadamard",), description="Hadamard"),
    Gate("x", 1, X, aliases=("not", "pauli-x"), description="Pauli-X (NOT)"),
    Gate("y", 1, Y, aliases=("pauli-y",), description="Pauli-Y"),
    Gate("z", 1, Z, aliases=("pauli-z",), description="Pauli-Z"),
    Gate("s", 1, S, description="S = sqrt(Z)"),
    Gate("sdg", 1, Sdg, description="S-dagger"),
    Gate("t", 1, T, description="T = sqrt(S)"),
    Gate("tdg", 1, Tdg, description="T-dagger"),
    Gate("sx", 1, SX, aliases=("v", "sqrt-not"), description="sqrt(X)"),
    Gate("p", 1, P, n_params=1, aliases=("phase",), description="Phase"),
    Gate("rx", 1, Rx, n_params=1, description="X rotation"),
    Gate("ry", 1, Ry, n_params=1, description="Y rotation"),
    Gate("rz", 1, Rz, n_params=1, description="Z rotation"),
    Gate("u3", 1, U3, n_params=3, description="General single-register unitary"),
    Gate("swap", 2, SWAP, description="SWAP"),
    Gate("iswap", 2, iSWAP, description="iSWAP"),
    Gate("cx", 2, X, n_controls=1, aliases=("cnot",), description="Controlled-NOT"),
    Gate("cy", 2, Y, n_controls=1, description="Controlled-Y"),
    Gate("cz", 2, Z, n_controls=1, description="Controlled-Z"),
    Gate("cs", 2, S, n_controls=1, description="Controlled-S"),
    Gate("cp", 2, P, n_controls=1, n_params=1, description="Controlled phase"),
    Gate("ccx", 3, X, n_controls=2, aliases=("toffoli", "ccnot"), description="Toffoli"),
    Gate("cswap", 3, SWAP, n_controls=1, aliases=("fredkin",), description="Fredkin"),
)

_DEFAULT_CATALOG = GateCatalog(STANDARD_GATES)

# Full-matrix views of the common controlled gates.
CNOT = CX = _DEFAULT_CATALOG.get("cx")
CZ = _DEFAULT_CATALOG.get("cz")
CCX = Toffoli = _DEFAULT_CATALOG.get("ccx")
CSWAP = Fredkin = _DEFAULT_CATALOG.get("cswap")


def catalog() -> GateCatalog:
    """The process-wide default catalog."""
    return _DEFAULT_CATALOG


def get_matrix(name: str, params: tuple[float, ...] = ()) -> Matrix:
    """Look up a gate matrix in the default catalog."""
    return _DEFAULT_CATALOG.get(name, params)
