"""
Text-grid circuit front end.

Turns a text circuit diagram into a ``Circuit``. Each non-blank line is
one register (first line = register 0); each whitespace-separated token
is one moment.

    H  X#0
    I  X#1

Supported tokens:
    - ``I``, ``-``, ``.``: nothing happens on this register at this moment
    - ``H``, ``X``, ``RZ(pi/4)``, ...: a catalog gate on one register
    - ``M``: measure this register
    - ``NAME#k``: component k of a multi-register gate. All tokens with
      the same name in one column form one placement; component order is
      the gate's register order (controls first, target last). When the
      gate has fewer registers than components, it is promoted to its
      controlled form, so ``X#0`` / ``X#1`` is a CNOT and ``X#0`` /
      ``X#1`` / ``X#2`` a Toffoli. ``M#k`` measures registers jointly.
    - ``//`` starts a comment running to the end of the line.

Parameter expressions accept numbers, ``pi``, ``+ - * /`` and
parentheses.

This module only builds circuits; the simulation core never imports it.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from ..circuit import MEASURE, Circuit
from ..exceptions import QuantumError
from ..gates import GateCatalog, catalog as default_catalog

EMPTY_TOKENS = frozenset({"I", "-", ".", "ID", "IDENTITY"})


class GridParseError(ValueError):
    """Malformed text grid."""

    def __init__(self, message: str, line: int = 0, column: int = 0) -> None:
        self.line = line
        self.column = column
        if line:
            message = f"Line {line}, column {column}: {message}"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

@dataclass
class Cell:
    """One non-empty token of the grid."""

    register: int
    moment: int
    name: str
    component: int | None = None
    params: tuple[float, ...] = ()
    line: int = 0
    column: int = 0


_CELL_RE = re.compile(
    r"^(?P<name>[A-Za-z][A-Za-z0-9_\-]*)"
    r"(?:\((?P<params>[^()]*(?:\([^()]*\)[^()]*)*)\))?"
    r"(?:#(?P<component>\d+))?$"
)

_TOKEN_RE = re.compile(r"\S+")

_EXPR_TOKEN_RE = re.compile(r"\s*(?:(\d+\.\d*(?:[eE][+-]?\d+)?|\.\d+|\d+(?:[eE][+-]?\d+)?)|(pi|π)|(.))")


def _evaluate(expr: str, line: int, column: int) -> float:
    """Evaluate a small arithmetic expression (numbers, pi, + - * /, parens)."""
    tokens: list[tuple[str, str]] = []
    for number, pi, op in _EXPR_TOKEN_RE.findall(expr.strip()):
        if number:
            tokens.append(("NUMBER", number))
        elif pi:
            tokens.append(("NUMBER", repr(math.pi)))
        elif op.strip():
            tokens.append(("OP", op))
    pos = 0

    def peek() -> tuple[str, str] | None:
        return tokens[pos] if pos < len(tokens) else None

    def additive() -> float:
        nonlocal pos
        value = multiplicative()
        while peek() in (("OP", "+"), ("OP", "-")):
            op = tokens[pos][1]
            pos += 1
            right = multiplicative()
            value = value + right if op == "+" else value - right
        return value

    def multiplicative() -> float:
        nonlocal pos
        value = unary()
        while peek() in (("OP", "*"), ("OP", "/")):
            op = tokens[pos][1]
            pos += 1
            right = unary()
            if op == "/" and right == 0:
                raise GridParseError("Division by zero in parameter", line, column)
            value = value * right if op == "*" else value / right
        return value

    def unary() -> float:
        nonlocal pos
        if peek() == ("OP", "-"):
            pos += 1
            return -unary()
        if peek() == ("OP", "+"):
            pos += 1
            return unary()
        return primary()

    def primary() -> float:
        nonlocal pos
        tok = peek()
        if tok is None:
            raise GridParseError(f"Incomplete parameter expression {expr!r}", line, column)
        if tok[0] == "NUMBER":
            pos += 1
            return float(tok[1])
        if tok == ("OP", "("):
            pos += 1
            value = additive()
            if peek() != ("OP", ")"):
                raise GridParseError(f"Unmatched '(' in {expr!r}", line, column)
            pos += 1
            return value
        raise GridParseError(f"Unexpected {tok[1]!r} in parameter {expr!r}", line, column)

    value = additive()
    if pos != len(tokens):
        raise GridParseError(f"Trailing input in parameter {expr!r}", line, column)
    return value


def tokenize_grid(text: str) -> tuple[int, list[Cell]]:
    """
    Split a grid into cells.

    Returns
    -------
    tuple[int, list[Cell]]
        Number of registers (non-blank lines) and the non-empty cells.
    """
    cells: list[Cell] = []
    register = 0
    for line_no, raw in enumerate(text.splitlines(), start=1):
        content = raw.split("//", 1)[0]
        if not content.strip():
            continue
        for moment, match in enumerate(_TOKEN_RE.finditer(content)):
            token = match.group()
            column = match.start() + 1
            if token.upper() in EMPTY_TOKENS:
                continue
            parsed = _CELL_RE.match(token)
            if parsed is None:
                raise GridParseError(f"Cannot read token {token!r}", line_no, column)
            params: tuple[float, ...] = ()
            if parsed.group("params") is not None:
                params = tuple(
                    _evaluate(p, line_no, column)
                    for p in parsed.group("params").split(",")
                    if p.strip()
                )
            component = parsed.group("component")
            cells.append(
                Cell(
                    register=register,
                    moment=moment,
                    name=parsed.group("name").lower(),
                    component=int(component) if component is not None else None,
                    params=params,
                    line=line_no,
                    column=column,
                )
            )
        register += 1
    return register, cells


# ---------------------------------------------------------------------------
# Grid → Circuit
# ---------------------------------------------------------------------------

@dataclass
class _Group:
    name: str
    moment: int
    cells: list[Cell] = field(default_factory=list)


def _resolve_name(name: str, n_components: int, gate_catalog: GateCatalog) -> str:
    if name in ("m", MEASURE):
        return MEASURE
    if name in gate_catalog:
        gate = gate_catalog.gate(name)
        if gate.n_registers == n_components:
            return gate.name
        extra = n_components - gate.n_registers
        promoted = "c" * extra + gate.name
        if extra > 0 and promoted in gate_catalog:
            return gate_catalog.gate(promoted).name
    return name


def parse_grid(
    text: str, name: str = "circuit", gate_catalog: GateCatalog | None = None
) -> Circuit:
    """
    Build a circuit from a text grid.

    Raises
    ------
    GridParseError
        Malformed tokens, inconsistent components, or a placement the
        circuit rejects (the originating error is chained).
    """
    gate_catalog = gate_catalog or default_catalog()
    n_registers, cells = tokenize_grid(text)
    if n_registers == 0:
        raise GridParseError("Grid has no registers")

    circuit = Circuit(n_registers, name=name, gate_catalog=gate_catalog)
    groups: dict[tuple[int, str], _Group] = {}
    singles: list[Cell] = []
    for cell in cells:
        if cell.component is None:
            singles.append(cell)
        else:
            key = (cell.moment, cell.name)
            groups.setdefault(key, _Group(cell.name, cell.moment)).cells.append(cell)

    def place(moment: int, gate_name: str, registers: list[int], params: tuple, anchor: Cell) -> None:
        try:
            circuit.add_gate(moment, gate_name, registers, params)
        except QuantumError as exc:
            raise GridParseError(str(exc), anchor.line, anchor.column) from exc

    for cell in singles:
        place(cell.moment, _resolve_name(cell.name, 1, gate_catalog), [cell.register], cell.params, cell)

    for group in sorted(groups.values(), key=lambda g: (g.moment, g.name)):
        ordered = sorted(group.cells, key=lambda c: c.component)  # type: ignore[arg-type, return-value]
        anchor = ordered[0]
        components = [c.component for c in ordered]
        if components != list(range(len(ordered))):
            raise GridParseError(
                f"Gate '{group.name}' at moment {group.moment} needs components "
                f"0..{len(ordered) - 1}, got {components}",
                anchor.line,
                anchor.column,
            )
        param_sets = {c.params for c in ordered if c.params}
        if len(param_sets) > 1:
            raise GridParseError(
                f"Gate '{group.name}' at moment {group.moment} has conflicting parameters",
                anchor.line,
                anchor.column,
            )
        params = param_sets.pop() if param_sets else ()
        gate_name = _resolve_name(group.name, len(ordered), gate_catalog)
        place(group.moment, gate_name, [c.register for c in ordered], params, anchor)

    return circuit
