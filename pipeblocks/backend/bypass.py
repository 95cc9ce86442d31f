from typing import Sequence

from amaranth import *
from amaranth.lib.data import View

from transactron import TModule
from amaranth_types import ValueLike

__all__ = ["resolve_operand"]


def resolve_operand(
    m: TModule, reg: ValueLike, used: ValueLike, latched: ValueLike, candidates: Sequence[View]
) -> tuple[Signal, Signal]:
    """Finds the current value of a source register.

    The candidates are in-flight results (`ExecuteLayouts.bypass`), youngest
    first. The first valid candidate writing `reg` supplies the value; if
    there is none, the value latched at register read is used. Register 0 is
    never bypassed.

    Parameters
    ----------
    m: TModule
        Module to which the logic is added.
    reg: ValueLike
        Source register number.
    used: ValueLike
        The instruction reads this operand.
    latched: ValueLike
        Value read from the register file.
    candidates: Sequence[View]
        In-flight results, youngest first.

    Returns
    -------
    value: Signal
        Operand value.
    stall: Signal
        The matching candidate has not computed its value yet.
    """
    reg = Value.cast(reg)
    value = Signal.like(Value.cast(latched))
    stall = Signal()

    m.d.comb += value.eq(latched)

    # later assignments win, so the oldest candidate goes first
    for candidate in reversed(candidates):
        with m.If(candidate.valid & (candidate.rd == reg) & reg.any()):
            m.d.comb += value.eq(candidate.value)
            m.d.comb += stall.eq(Value.cast(used) & ~candidate.ready)

    return value, stall
