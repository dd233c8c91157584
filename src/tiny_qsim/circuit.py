"""
Moment-based circuit representation.

A circuit is a grid: columns are moments (discrete time steps), rows are
registers. Each cell holds at most one gate placement; a multi-register
placement occupies one cell in each of its registers and records whether
each register is a control or a target.

Example
-------
>>> from tiny_qsim import Circuit
>>> qc = Circuit(2)
>>> qc.add_gate(0, "h", [0])
>>> qc.add_gate(1, "cx", {0: "control", 1: "target"})
>>> [len(m) for m in qc.moments()]
[1, 1]

The fluent helpers place each gate at the first moment after the last
one used by its registers:

>>> Circuit(2).h(0).cx(0, 1).measure_all().depth
3
"""

from __future__ import annotations

import copy
import enum
import math
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Sequence, Union

from .exceptions import ConflictError, InvalidGateError, RangeError
from .gates import GateCatalog, catalog as default_catalog

MEASURE = "measure"


class Role(str, enum.Enum):
    """Part a register plays in a placement."""

    CONTROL = "control"
    TARGET = "target"


RegisterRoles = Union[
    Sequence[int],
    Mapping[int, Union[Role, str]],
    Sequence[tuple[int, Union[Role, str]]],
]


# ---------------------------------------------------------------------------
# Placement & Moment
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Placement:
    """A gate bound to registers at one moment. Controls come first."""

    moment: int
    gate: str
    registers: tuple[int, ...]
    roles: tuple[Role, ...]
    params: tuple[float, ...] = ()

    @property
    def controls(self) -> tuple[int, ...]:
        return tuple(r for r, role in zip(self.registers, self.roles) if role is Role.CONTROL)

    @property
    def targets(self) -> tuple[int, ...]:
        return tuple(r for r, role in zip(self.registers, self.roles) if role is Role.TARGET)

    @property
    def is_measurement(self) -> bool:
        return self.gate == MEASURE

    def __str__(self) -> str:
        params = f"({', '.join(f'{p:g}' for p in self.params)})" if self.params else ""
        regs = ", ".join(
            f"{r}*" if role is Role.CONTROL else str(r)
            for r, role in zip(self.registers, self.roles)
        )
        return f"{self.gate}{params}[{regs}]@{self.moment}"


@dataclass(frozen=True)
class Moment:
    """One time step: its index and placements in application order."""

    index: int
    placements: tuple[Placement, ...]

    def __iter__(self) -> Iterator[Placement]:
        return iter(self.placements)

    def __len__(self) -> int:
        return len(self.placements)

    @property
    def registers(self) -> frozenset[int]:
        return frozenset(r for p in self.placements for r in p.registers)


class MomentSequence:
    """
    Lazy, restartable view over a circuit's moments.

    Each iteration walks moments 0..N-1 in order, including empty ones,
    and builds ``Moment`` objects on the fly.
    """

    def __init__(self, circuit: Circuit) -> None:
        self._circuit = circuit

    def __iter__(self) -> Iterator[Moment]:
        for index in range(self._circuit.n_moments):
            yield self._circuit.moment(index)

    def __len__(self) -> int:
        return self._circuit.n_moments


# ---------------------------------------------------------------------------
# Circuit
# ---------------------------------------------------------------------------

class Circuit:
    """
    Quantum circuit over a fixed number of registers.

    Parameters
    ----------
    n_registers : int
        Number of registers (qubits). Fixed for the circuit's lifetime.
    name : str, optional
        Circuit name for display.
    gate_catalog : GateCatalog, optional
        Catalog used to resolve gate names. Defaults to the standard one.

    Raises
    ------
    RangeError
        If ``n_registers < 1``.
    """

    def __init__(
        self,
        n_registers: int,
        name: str = "circuit",
        gate_catalog: GateCatalog | None = None,
    ) -> None:
        if n_registers < 1:
            raise RangeError(f"Need at least 1 register, got {n_registers}")
        self.n_registers = n_registers
        self.name = name
        self.catalog = gate_catalog or default_catalog()
        self._cells: dict[int, dict[int, Placement]] = {}
        self._last_moment = [-1] * n_registers

    # -- Properties ---------------------------------------------------------

    @property
    def n_moments(self) -> int:
        """One past the highest occupied moment index."""
        return max(self._cells) + 1 if self._cells else 0

    @property
    def depth(self) -> int:
        return self.n_moments

    @property
    def placements(self) -> list[Placement]:
        """All placements in application order."""
        return [p for moment in self.moments() for p in moment]

    @property
    def num_gates(self) -> int:
        """Number of placements excluding measurements."""
        return sum(1 for p in self.placements if not p.is_measurement)

    @property
    def has_measurements(self) -> bool:
        return any(p.is_measurement for p in self.placements)

    # -- Internal helpers ---------------------------------------------------

    @staticmethod
    def _split_roles(register_roles: RegisterRoles) -> list[tuple[int, Role | None]]:
        if isinstance(register_roles, Mapping):
            items: Iterable[Any] = register_roles.items()
        else:
            items = register_roles
        pairs: list[tuple[int, Role | None]] = []
        for item in items:
            if isinstance(item, Sequence) and not isinstance(item, str):
                if len(item) != 2:
                    raise InvalidGateError(f"Expected a (register, role) pair, got {item!r}")
                register, role = item
                try:
                    role = Role(role)
                except ValueError:
                    raise InvalidGateError(f"Unknown register role {role!r}") from None
            else:
                register, role = item, None
            try:
                pairs.append((int(register), role))
            except (TypeError, ValueError):
                raise InvalidGateError(f"Register must be an integer, got {register!r}") from None
        return pairs

    def _resolve(
        self,
        moment: int,
        gate_name: str,
        register_roles: RegisterRoles,
        params: tuple[float, ...],
    ) -> Placement:
        if moment < 0:
            raise RangeError(f"Moment must be non-negative, got {moment}", gate=gate_name)

        pairs = self._split_roles(register_roles)
        registers = [r for r, _ in pairs]
        if not registers:
            raise InvalidGateError("Placement needs at least one register", moment=moment, gate=gate_name)
        for r in registers:
            if not 0 <= r < self.n_registers:
                raise RangeError(
                    f"Register {r} out of range for {self.n_registers}-register circuit",
                    moment=moment,
                    registers=registers,
                    gate=gate_name,
                )
        if len(set(registers)) != len(registers):
            raise ConflictError(
                f"Duplicate registers in placement {registers}",
                moment=moment,
                registers=registers,
                gate=gate_name,
            )

        if gate_name.lower() == MEASURE:
            if any(role is Role.CONTROL for _, role in pairs):
                raise InvalidGateError("Measurement has no control registers", moment=moment, gate=MEASURE)
            if params:
                raise InvalidGateError("Measurement takes no parameters", moment=moment, gate=MEASURE)
            return Placement(moment, MEASURE, tuple(registers), (Role.TARGET,) * len(registers))

        gate = self.catalog.gate(gate_name)
        if len(registers) != gate.n_registers:
            raise InvalidGateError(
                f"Gate '{gate.name}' acts on {gate.n_registers} register(s), got {len(registers)}",
                moment=moment,
                registers=registers,
                gate=gate.name,
            )
        if all(role is None for _, role in pairs):
            roles = [Role.CONTROL] * gate.n_controls + [Role.TARGET] * gate.n_targets
            pairs = list(zip(registers, roles))
        elif any(role is None for _, role in pairs):
            raise InvalidGateError(
                "Either give a role for every register or for none",
                moment=moment,
                registers=registers,
                gate=gate.name,
            )
        controls = [r for r, role in pairs if role is Role.CONTROL]
        targets = [r for r, role in pairs if role is Role.TARGET]
        if len(controls) != gate.n_controls:
            raise InvalidGateError(
                f"Gate '{gate.name}' needs {gate.n_controls} control(s), got {len(controls)}",
                moment=moment,
                registers=registers,
                gate=gate.name,
            )
        try:
            params = tuple(float(p) for p in params)
        except (TypeError, ValueError):
            raise InvalidGateError(
                f"Gate '{gate.name}' parameters must be numbers, got {list(params)}",
                moment=moment,
                registers=registers,
                gate=gate.name,
            ) from None
        if not all(math.isfinite(p) for p in params):
            raise InvalidGateError(
                f"Gate '{gate.name}' parameters must be finite, got {list(params)}",
                moment=moment,
                registers=registers,
                gate=gate.name,
            )
        try:
            gate.matrix(params)
        except InvalidGateError as exc:
            raise exc.with_context(moment=moment, registers=registers)
        ordered = tuple(controls + targets)
        roles_out = (Role.CONTROL,) * len(controls) + (Role.TARGET,) * len(targets)
        return Placement(moment, gate.name, ordered, roles_out, params)

    def _next_moment(self, registers: Iterable[int]) -> int:
        regs = list(registers)
        if not regs:
            raise InvalidGateError("Placement needs at least one register")
        for r in regs:
            if not 0 <= r < self.n_registers:
                raise RangeError(
                    f"Register {r} out of range for {self.n_registers}-register circuit",
                    registers=regs,
                )
        return max(self._last_moment[r] for r in regs) + 1

    # -- Construction -------------------------------------------------------

    def add_gate(
        self,
        moment: int,
        gate_name: str,
        register_roles: RegisterRoles,
        params: Sequence[float] = (),
    ) -> Circuit:
        """
        Place a gate at ``moment``.

        Parameters
        ----------
        moment : int
            Non-negative moment index.
        gate_name : str
            Catalog gate name (case-insensitive) or ``"measure"``.
        register_roles : sequence or mapping
            Registers the gate acts on. Plain integers take their roles
            from the gate (controls first). Alternatively a mapping or a
            sequence of ``(register, role)`` pairs with roles
            ``"control"`` / ``"target"``.
        params : sequence of float
            Parameters for parameterized gates.

        Raises
        ------
        RangeError
            Negative moment or register outside the circuit.
        ConflictError
            A register already has a placement in this moment, or is
            listed twice.
        InvalidGateError
            Unknown gate, wrong arity, roles or parameter count.
        """
        placement = self._resolve(moment, gate_name, register_roles, tuple(params))
        cells = self._cells.get(moment, {})
        busy = [r for r in placement.registers if r in cells]
        if busy:
            raise ConflictError(
                f"Register(s) {busy} already occupied by '{cells[busy[0]].gate}'",
                moment=moment,
                registers=placement.registers,
                gate=placement.gate,
            )
        cells = self._cells.setdefault(moment, {})
        for r in placement.registers:
            cells[r] = placement
            self._last_moment[r] = max(self._last_moment[r], moment)
        return self

    def append(self, other: Circuit) -> Circuit:
        """Append ``other``'s moments after this circuit's last moment."""
        if other.n_registers != self.n_registers:
            raise RangeError(
                f"Cannot append {other.n_registers}-register circuit to "
                f"{self.n_registers}-register circuit"
            )
        offset = self.n_moments
        for p in other.placements:
            self.add_gate(p.moment + offset, p.gate, list(zip(p.registers, p.roles)), p.params)
        return self

    # -- Access -------------------------------------------------------------

    def moment(self, index: int) -> Moment:
        """Placements at ``index``, ordered by their lowest register."""
        cells = self._cells.get(index, {})
        unique = {id(p): p for p in cells.values()}
        ordered = sorted(unique.values(), key=lambda p: min(p.registers))
        return Moment(index, tuple(ordered))

    def moments(self) -> MomentSequence:
        """Lazy, restartable sequence of moments in ascending order."""
        return MomentSequence(self)

    def placement_at(self, moment: int, register: int) -> Placement | None:
        return self._cells.get(moment, {}).get(register)

    # -- Single-register gates ----------------------------------------------

    def _place(self, name: str, registers: tuple[int, ...], params: tuple = (), moment: int | None = None) -> Circuit:
        if moment is None:
            moment = self._next_moment(registers)
        return self.add_gate(moment, name, registers, params)

    def i(self, register: int, moment: int | None = None) -> Circuit:
        """Identity."""
        return self._place("i", (register,), moment=moment)

    def h(self, register: int, moment: int | None = None) -> Circuit:
        """Hadamard."""
        return self._place("h", (register,), moment=moment)

    def x(self, register: int, moment: int | None = None) -> Circuit:
        """Pauli-X."""
        return self._place("x", (register,), moment=moment)

    def y(self, register: int, moment: int | None = None) -> Circuit:
        return self._place("y", (register,), moment=moment)

    def z(self, register: int, moment: int | None = None) -> Circuit:
        return self._place("z", (register,), moment=moment)

    def s(self, register: int, moment: int | None = None) -> Circuit:
        return self._place("s", (register,), moment=moment)

    def t(self, register: int, moment: int | None = None) -> Circuit:
        return self._place("t", (register,), moment=moment)

    # -- Parameterized gates ------------------------------------------------

    def p(self, phi: float, register: int, moment: int | None = None) -> Circuit:
        """Phase gate."""
        return self._place("p", (register,), (phi,), moment)

    def rx(self, theta: float, register: int, moment: int | None = None) -> Circuit:
        return self._place("rx", (register,), (theta,), moment)

    def ry(self, theta: float, register: int, moment: int | None = None) -> Circuit:
        return self._place("ry", (register,), (theta,), moment)

    def rz(self, theta: float, register: int, moment: int | None = None) -> Circuit:
        return self._place("rz", (register,), (theta,), moment)

    # -- Multi-register gates -----------------------------------------------

    def cx(self, control: int, target: int, moment: int | None = None) -> Circuit:
        """Controlled-NOT."""
        return self._place("cx", (control, target), moment=moment)

    def cnot(self, control: int, target: int, moment: int | None = None) -> Circuit:
        """Alias for cx."""
        return self.cx(control, target, moment)

    def cz(self, control: int, target: int, moment: int | None = None) -> Circuit:
        return self._place("cz", (control, target), moment=moment)

    def swap(self, r0: int, r1: int, moment: int | None = None) -> Circuit:
        return self._place("swap", (r0, r1), moment=moment)

    def ccx(self, c0: int, c1: int, target: int, moment: int | None = None) -> Circuit:
        """Toffoli."""
        return self._place("ccx", (c0, c1, target), moment=moment)

    # -- Measurement --------------------------------------------------------

    def measure(self, *registers: int, moment: int | None = None) -> Circuit:
        """Measure one or more registers together at one moment."""
        return self._place(MEASURE, tuple(registers), moment=moment)

    def measure_all(self, moment: int | None = None) -> Circuit:
        """Measure every register in a single placement."""
        return self.measure(*range(self.n_registers), moment=moment)

    # -- Copy & display -----------------------------------------------------

    def copy(self) -> Circuit:
        """Deep copy; the catalog is shared."""
        clone = Circuit(self.n_registers, self.name, self.catalog)
        clone._cells = copy.deepcopy(self._cells)
        clone._last_moment = list(self._last_moment)
        return clone

    def __len__(self) -> int:
        return len(self.placements)

    def __repr__(self) -> str:
        return (
            f"Circuit(n_registers={self.n_registers}, moments={self.n_moments}, "
            f"gates={self.num_gates})"
        )
