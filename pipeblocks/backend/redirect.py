from amaranth import *

from transactron import TModule
from transactron.lib import logging

from pipeblocks.params import GenParams
from pipeblocks.interface.layouts import ExecuteLayouts, FetchLayouts
from pipeblocks.interface.types import FetchReason

__all__ = ["RedirectArbiter"]

log = logging.HardwareLogger("backend.redirect")


class RedirectArbiter(Elaboratable):
    """
    Chooses the fetch redirect of this cycle. A trap committed by execute-2
    goes first, then a redirect requested by an instruction committed by
    execute-2, then a misprediction found by execute-1, which belongs to a
    younger instruction.

    Attributes
    ----------
    outcome: Signal(ExecuteLayouts.outcome), in
        Execute-2 commit.
    trap_vector: Signal(xlen), in
        Handler address of the committed trap.
    mispredict: Signal(1), in
    mispredict_target: Signal(xlen), in
        Execute-1 misprediction and the actual next PC.
    redirect: Signal(FetchLayouts.redirect), out
    """

    def __init__(self, gen_params: GenParams):
        self.gen_params = gen_params
        xlen = gen_params.isa.xlen

        self.outcome = Signal(gen_params.get(ExecuteLayouts).outcome)
        self.trap_vector = Signal(xlen)
        self.mispredict = Signal()
        self.mispredict_target = Signal(xlen)
        self.redirect = Signal(gen_params.get(FetchLayouts).redirect)

    def elaborate(self, platform):
        m = TModule()

        with m.If(self.outcome.trap.valid):
            m.d.comb += [
                self.redirect.valid.eq(1),
                self.redirect.target.eq(self.trap_vector),
                self.redirect.reason.eq(FetchReason.EXCEPTION),
            ]
        with m.Elif(self.outcome.redirect.valid):
            m.d.comb += self.redirect.eq(self.outcome.redirect)
        with m.Elif(self.mispredict):
            m.d.comb += [
                self.redirect.valid.eq(1),
                self.redirect.target.eq(self.mispredict_target),
                self.redirect.reason.eq(FetchReason.MISPREDICT),
            ]

        if self.gen_params.extra_verification:
            log.assertion(
                m,
                ~(self.mispredict & (self.outcome.trap.valid | self.outcome.redirect.valid)),
                "Misprediction issued next to an execute-2 redirect",
            )

        return m
