from amaranth import *
from amaranth.lib.data import StructLayout

from transactron import TModule
from amaranth_types import ValueLike

__all__ = ["handshake", "PipelineRegister"]


def handshake(
    m: TModule, valid: Signal, in_valid: ValueLike, out_ready: ValueLike, flush: ValueLike = 0
) -> tuple[Signal, Signal]:
    """Valid/ready transfer rule of a single-slot pipeline register.

    The register can take a new value when it is empty or when its current
    value leaves in the same cycle. A flush invalidates the register and
    blocks loading; the offered value is still consumed, so the producer
    drops it too.

    Parameters
    ----------
    m: TModule
        Module to which the logic is added.
    valid: Signal
        Validity flag of the register. Updated by this function.
    in_valid: ValueLike
        The producer offers a value.
    out_ready: ValueLike
        The consumer takes the current value. Only meaningful when `valid` is set.
    flush: ValueLike
        Discard the content and the offered value.

    Returns
    -------
    in_ready: Signal
        The offered value is consumed in this cycle.
    load: Signal
        The offered value is stored in the register at the end of this cycle.
    """
    in_ready = Signal()
    load = Signal()

    m.d.comb += in_ready.eq(~valid | out_ready | flush)
    m.d.comb += load.eq(in_valid & in_ready & ~flush)

    with m.If(flush):
        m.d.sync += valid.eq(0)
    with m.Elif(load):
        m.d.sync += valid.eq(1)
    with m.Elif(out_ready):
        m.d.sync += valid.eq(0)

    return in_ready, load


class PipelineRegister(Elaboratable):
    """A value held between two pipeline stages, with its validity flag.

    Attributes
    ----------
    in_valid: Signal(1), in
    in_ready: Signal(1), out
    in_data: Signal(layout), in
    out_valid: Signal(1), out
    out_ready: Signal(1), in
    out_data: Signal(layout), out
    flush: Signal(1), in
        Invalidate the register and drop the offered value.
    """

    def __init__(self, layout: StructLayout):
        self.layout = layout

        self.in_valid = Signal()
        self.in_ready = Signal()
        self.in_data = Signal(layout)
        self.out_valid = Signal()
        self.out_ready = Signal()
        self.out_data = Signal(layout)
        self.flush = Signal()

    def elaborate(self, platform):
        m = TModule()

        valid = Signal()
        # contents are meaningless until the first load
        data = Signal(self.layout, reset_less=True)

        in_ready, load = handshake(m, valid, self.in_valid, self.out_ready, self.flush)

        m.d.comb += [
            self.in_ready.eq(in_ready),
            self.out_valid.eq(valid),
            self.out_data.eq(data),
        ]

        with m.If(load):
            m.d.sync += data.eq(self.in_data)

        return m
