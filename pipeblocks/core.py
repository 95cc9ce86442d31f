from amaranth import *
from amaranth.lib.wiring import Component, Out

from transactron.core import TModule
from transactron.utils.dependencies import DependencyContext

from pipeblocks.params.genparams import GenParams
from pipeblocks.interface.layouts import ExecuteLayouts, FetchLayouts
from pipeblocks.interface.mem_iface import InstrMemSignature, DataMemSignature, FlushSignature, InterruptSignature
from pipeblocks.core_structs.rf import RegisterFile
from pipeblocks.priv.csr.csr_unit import CSRUnit
from pipeblocks.frontend.fetch import FetchUnit
from pipeblocks.frontend.decoder.decode_stage import DecodeStage
from pipeblocks.backend.squash import SquashControl
from pipeblocks.backend.execute1 import Execute1
from pipeblocks.backend.execute2 import Execute2
from pipeblocks.backend.redirect import RedirectArbiter

__all__ = ["Core"]


class Core(Component):
    """
    In-order single issue RISC-V core: fetch, decode, two execute stages.

    Attributes
    ----------
    imem: InstrMemSignature
    dmem: DataMemSignature
    flush: FlushSignature
    interrupts: InterruptSignature
        External ports.
    commit: Signal(ExecuteLayouts.outcome)
        Commit of the current cycle, for trace collection.
    fetch_redirect: Signal(FetchLayouts.redirect)
        Redirect sent to the fetch unit in the current cycle.
    """

    def __init__(self, *, gen_params: GenParams):
        super().__init__(
            {
                "imem": Out(InstrMemSignature(gen_params)),
                "dmem": Out(DataMemSignature(gen_params)),
                "flush": Out(FlushSignature()),
                "interrupts": Out(InterruptSignature()),
            }
        )

        self.gen_params = gen_params
        self.connections = DependencyContext.get()

        self.commit = Signal(gen_params.get(ExecuteLayouts).outcome)
        self.fetch_redirect = Signal(gen_params.get(FetchLayouts).redirect)

        self.RF = RegisterFile(gen_params=self.gen_params)
        self.csr = CSRUnit(self.gen_params)
        self.fetch = FetchUnit(self.gen_params)
        self.decode = DecodeStage(self.gen_params, self.RF)
        self.squash = SquashControl(self.gen_params)
        self.ex1 = Execute1(self.gen_params)
        self.ex2 = Execute2(self.gen_params, self.csr)
        self.redirect = RedirectArbiter(self.gen_params)

    def elaborate(self, platform):
        m = TModule()

        m.submodules.RF = rf = self.RF
        m.submodules.csr = csr = self.csr
        m.submodules.fetch = fetch = self.fetch
        m.submodules.decode = decode = self.decode
        m.submodules.squash = squash = self.squash
        m.submodules.ex1 = ex1 = self.ex1
        m.submodules.ex2 = ex2 = self.ex2
        m.submodules.redirect = redirect = self.redirect

        outcome = ex2.outcome

        # External ports

        m.d.comb += [
            self.imem.req_valid.eq(fetch.req_valid),
            fetch.req_ready.eq(self.imem.req_ready),
            self.imem.req.eq(fetch.req),
            fetch.resp_valid.eq(self.imem.resp_valid),
            fetch.resp.eq(self.imem.resp),
            self.dmem.req_valid.eq(ex2.dmem_req_valid),
            ex2.dmem_req_ready.eq(self.dmem.req_ready),
            self.dmem.req.eq(ex2.dmem_req),
            ex2.dmem_resp_valid.eq(self.dmem.resp_valid),
            ex2.dmem_resp.eq(self.dmem.resp),
            self.flush.valid.eq(ex2.flush_valid),
            ex2.flush_ready.eq(self.flush.ready),
            csr.msip.eq(self.interrupts.msip),
            csr.mtip.eq(self.interrupts.mtip),
            csr.meip.eq(self.interrupts.meip),
        ]

        # Fetch and decode

        m.d.comb += [
            fetch.redirect.eq(redirect.redirect),
            fetch.ctx.eq(csr.fetch_ctx),
            decode.in_valid.eq(fetch.out_valid),
            fetch.out_ready.eq(decode.in_ready),
            decode.fetched.eq(fetch.out),
            decode.status.eq(csr.status),
            decode.rf_write.eq(rf.write),
            decode.flush.eq(redirect.redirect.valid),
        ]

        # Execute-1 and squash control

        m.d.comb += [
            ex1.in_valid.eq(decode.out_valid),
            decode.out_ready.eq(ex1.in_ready),
            ex1.instr.eq(decode.out),
            squash.pc.eq(decode.out.pc),
            squash.reason.eq(decode.out.reason),
            ex1.gate.eq(squash.gate),
            squash.issue.eq(ex1.issue),
            squash.mispredict.eq(ex1.mispredict),
            squash.npc.eq(ex1.npc),
            squash.trap.eq(outcome.trap.valid),
            squash.trap_vector.eq(csr.trap_vector),
            squash.redirect.eq(outcome.redirect.valid),
            squash.redirect_target.eq(outcome.redirect.target),
            ex1.ex2_bypass.eq(ex2.bypass),
            ex1.kill.eq(ex2.kill),
        ]

        # Execute-2, writeback and redirect

        m.d.comb += [
            ex2.in_valid.eq(ex1.out_valid),
            ex1.out_ready.eq(ex2.in_ready),
            ex2.instr.eq(ex1.out),
            rf.write.en.eq(outcome.rd_we),
            rf.write.reg_id.eq(outcome.rd),
            rf.write.reg_val.eq(outcome.value),
            redirect.outcome.eq(outcome),
            redirect.trap_vector.eq(csr.trap_vector),
            redirect.mispredict.eq(ex1.mispredict),
            redirect.mispredict_target.eq(ex1.npc),
            self.commit.eq(outcome),
            self.fetch_redirect.eq(redirect.redirect),
        ]

        return m
