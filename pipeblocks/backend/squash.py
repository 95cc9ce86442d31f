from amaranth import *

from transactron import TModule
from transactron.lib import logging

from pipeblocks.params import GenParams
from pipeblocks.interface.types import FetchReason, PipelineState

__all__ = ["SquashControl"]

log = logging.HardwareLogger("backend.squash")


class SquashControl(Elaboratable):
    """
    Decides which instructions arriving at execute-1 may issue.

    In `NORMAL` state only the instruction at the expected PC, which is the
    actual next PC of the previously issued instruction, may issue. After a
    redirect only the first instruction fetched from its target, recognized
    by its fetch reason, may issue. Any other instruction is dropped by
    execute-1 without effects.

    Attributes
    ----------
    pc: Signal(xlen), in
    reason: Signal(FetchReason), in
        Address and fetch reason of the instruction in execute-1.
    gate: Signal(1), out
        The instruction in execute-1 may issue.
    issue: Signal(1), in
        The instruction in execute-1 issued.
    mispredict: Signal(1), in
        The issued instruction's next PC differs from the predicted one.
    npc: Signal(xlen), in
        Actual next PC of the issued instruction.
    trap: Signal(1), in
        Execute-2 commits a trap.
    trap_vector: Signal(xlen), in
    redirect: Signal(1), in
        Execute-2 commits an instruction which redirects fetching.
    redirect_target: Signal(xlen), in
    state: Signal(PipelineState), out
    expected_pc: Signal(xlen), out
    """

    def __init__(self, gen_params: GenParams):
        self.gen_params = gen_params
        xlen = gen_params.isa.xlen

        self.pc = Signal(xlen)
        self.reason = Signal(FetchReason)
        self.gate = Signal()

        self.issue = Signal()
        self.mispredict = Signal()
        self.npc = Signal(xlen)

        self.trap = Signal()
        self.trap_vector = Signal(xlen)
        self.redirect = Signal()
        self.redirect_target = Signal(xlen)

        self.state = Signal(PipelineState, init=PipelineState.MISPREDICT_DRAIN)
        self.expected_pc = Signal(xlen, init=gen_params.start_pc)

    def may_issue(self, m: TModule, state: Value) -> Signal:
        gate = Signal()
        with m.Switch(state):
            with m.Case(PipelineState.NORMAL):
                m.d.comb += gate.eq(self.pc == self.expected_pc)
            with m.Case(PipelineState.MISPREDICT_DRAIN):
                m.d.comb += gate.eq(FetchReason.is_redirect(self.reason))
            with m.Case(PipelineState.EXCEPTION_DRAIN):
                m.d.comb += gate.eq(self.reason == FetchReason.EXCEPTION)
        return gate

    def transition(self, m: TModule) -> tuple[Signal, Signal]:
        """Next state and expected PC, given this cycle's events."""
        next_state = Signal(PipelineState)
        next_pc = Signal.like(self.expected_pc)

        m.d.comb += next_state.eq(self.state)
        m.d.comb += next_pc.eq(self.expected_pc)

        with m.If(self.trap):
            m.d.comb += next_state.eq(PipelineState.EXCEPTION_DRAIN)
            m.d.comb += next_pc.eq(self.trap_vector)
        with m.Elif(self.redirect):
            m.d.comb += next_state.eq(PipelineState.MISPREDICT_DRAIN)
            m.d.comb += next_pc.eq(self.redirect_target)
        with m.Elif(self.issue):
            m.d.comb += next_state.eq(Mux(self.mispredict, PipelineState.MISPREDICT_DRAIN, PipelineState.NORMAL))
            m.d.comb += next_pc.eq(self.npc)

        return next_state, next_pc

    def elaborate(self, platform):
        m = TModule()

        # an instruction committing in execute-2 in this cycle is older, its redirect wins
        m.d.comb += self.gate.eq(self.may_issue(m, self.state) & ~self.trap & ~self.redirect)

        next_state, next_pc = self.transition(m)
        m.d.sync += self.state.eq(next_state)
        m.d.sync += self.expected_pc.eq(next_pc)

        log.debug(
            m,
            next_state != self.state,
            "state {} -> {} expected=0x{:08x}",
            self.state,
            next_state,
            next_pc,
        )

        if self.gen_params.extra_verification:
            log.assertion(m, ~(self.issue & ~self.gate), "Issue of a squashed instruction")

        return m
