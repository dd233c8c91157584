"""
Error taxonomy for tiny-qsim.

Every error raised by the simulation core derives from ``QuantumError``.
The runner attaches diagnostic context (moment index, registers, gate
name) to the original exception before re-raising it, so callers always
see the originating error type.
"""

from __future__ import annotations

from typing import Sequence


class QuantumError(Exception):
    """Base class for all tiny-qsim errors."""

    def __init__(
        self,
        message: str,
        *,
        moment: int | None = None,
        registers: Sequence[int] | None = None,
        gate: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.moment = moment
        self.registers = tuple(registers) if registers is not None else None
        self.gate = gate

    def with_context(
        self,
        moment: int | None = None,
        registers: Sequence[int] | None = None,
        gate: str | None = None,
    ) -> QuantumError:
        """Fill in any missing context fields and return self."""
        if self.moment is None:
            self.moment = moment
        if self.registers is None and registers is not None:
            self.registers = tuple(registers)
        if self.gate is None:
            self.gate = gate
        return self

    def __str__(self) -> str:
        context = []
        if self.moment is not None:
            context.append(f"moment={self.moment}")
        if self.registers is not None:
            context.append(f"registers={list(self.registers)}")
        if self.gate is not None:
            context.append(f"gate={self.gate!r}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class DimensionError(QuantumError, ValueError):
    """Amplitude vector length is not a power of two, or index out of range."""


class NormalizationError(QuantumError, ValueError):
    """Supplied amplitudes do not have unit norm."""


class InvalidGateError(QuantumError, ValueError):
    """Unknown gate, wrong arity, or a catalog matrix that is not unitary."""


class ConflictError(QuantumError, ValueError):
    """A register already has a placement in the same moment."""


class RangeError(QuantumError, ValueError):
    """Negative moment, register outside the circuit, or bad register count."""


class RegisterIndexError(QuantumError, IndexError):
    """A placement references a register the state does not have."""


class EmptyStateError(QuantumError, RuntimeError):
    """Measurement found zero total probability mass."""


class RunCancelledError(QuantumError, RuntimeError):
    """A run was cancelled between moments."""


class RunnerBusyError(QuantumError, RuntimeError):
    """A runner was asked to start a run while another is in flight."""
