from amaranth import *

from transactron import TModule
from transactron.lib import logging
from transactron.utils import popcount

from pipeblocks.arch import OpType, Extension
from pipeblocks.params import GenParams
from pipeblocks.interface.layouts import ExecuteLayouts, FetchLayouts, LSULayouts
from pipeblocks.interface.types import FetchReason, FuSelect
from pipeblocks.func_blocks.fu.lsu import LSUAdapter
from pipeblocks.func_blocks.fu.mul_unit import MulUnit
from pipeblocks.func_blocks.fu.div_unit import DivUnit
from pipeblocks.priv.csr.csr_unit import CSRUnit
from pipeblocks.lib.pipeline import handshake

__all__ = ["Execute2"]

log = logging.HardwareLogger("backend.ex2")


class Execute2(Elaboratable):
    """
    Execute-2 stage: functional unit arbitration, trap assembly and commit.

    The stage holds a single instruction. When it accepts one, it decides
    which unit completes it: a pending interrupt or an exception carried
    from earlier stages makes it a trap, otherwise the operation type selects
    the unit. Requests to multi-cycle units are made from the stage's own
    register, starting in the cycle after acceptance, and the instruction
    commits in the cycle its unit reports completion. A new instruction is
    accepted in the cycle the current one commits.

    A committing instruction either traps, and then writes no register and
    no CSR, or completes normally and may request a redirect: CSR writes
    changing protection or translation, fences and trap returns restart
    fetching after the instruction.

    Attributes
    ----------
    in_valid: Signal(1), in
    in_ready: Signal(1), out
    instr: Signal(ExecuteLayouts.ex1_result), in
        Instruction from execute-1.
    outcome: Signal(ExecuteLayouts.outcome), out
        Commit of this cycle.
    bypass: Signal(ExecuteLayouts.bypass), out
        Result of the held instruction.
    kill: Signal(1), out
        The commit traps or redirects, younger instructions must be dropped.
    dmem_req_valid: Signal(1), out
    dmem_req_ready: Signal(1), in
    dmem_req: Signal(LSULayouts.request), out
    dmem_resp_valid: Signal(1), in
    dmem_resp: Signal(LSULayouts.response), in
        Data memory port.
    flush_valid: Signal(1), out
    flush_ready: Signal(1), in
        Cache and TLB maintenance notification.
    """

    def __init__(self, gen_params: GenParams, csr: CSRUnit):
        """
        Parameters
        ----------
        gen_params: GenParams
            Core generation parameters.
        csr: CSRUnit
            CSR unit, accessed by CSR instructions and informed about commits.
        """
        self.gen_params = gen_params
        self.csr = csr

        layouts = gen_params.get(ExecuteLayouts)
        lsu_layouts = gen_params.get(LSULayouts)

        self.in_valid = Signal()
        self.in_ready = Signal()
        self.instr = Signal(layouts.ex1_result)

        self.outcome = Signal(layouts.outcome)
        self.bypass = Signal(layouts.bypass)
        self.kill = Signal()

        self.dmem_req_valid = Signal()
        self.dmem_req_ready = Signal()
        self.dmem_req = Signal(lsu_layouts.request)
        self.dmem_resp_valid = Signal()
        self.dmem_resp = Signal(lsu_layouts.response)

        self.flush_valid = Signal()
        self.flush_ready = Signal()

    def _select(self, m: TModule, op_type: Value) -> Signal:
        fu = Signal(FuSelect)
        with m.Switch(op_type):
            with m.Case(OpType.LOAD, OpType.STORE):
                m.d.comb += fu.eq(FuSelect.MEM)
            with m.Case(OpType.MUL):
                m.d.comb += fu.eq(FuSelect.MUL)
            with m.Case(OpType.DIV_REM):
                m.d.comb += fu.eq(FuSelect.DIV)
            with m.Case(OpType.CSR_REG, OpType.CSR_IMM):
                m.d.comb += fu.eq(FuSelect.CSR)
            with m.Case(OpType.WFI):
                m.d.comb += fu.eq(FuSelect.WFI)
            with m.Case(OpType.FENCEI, OpType.SFENCEVMA):
                m.d.comb += fu.eq(FuSelect.FLUSH)
            with m.Default():
                m.d.comb += fu.eq(FuSelect.ALU)
        return fu

    def elaborate(self, platform):
        m = TModule()

        layouts = self.gen_params.get(ExecuteLayouts)
        csr = self.csr
        multiply = Extension.ZMMUL in self.gen_params.isa.extensions
        divide = Extension.M in self.gen_params.isa.extensions

        # Held instruction

        valid = Signal()
        held = Signal(layouts.ex1_result, reset_less=True)
        fu = Signal(FuSelect)
        # trap decided at acceptance
        early_trap = Signal(layouts.trap)
        issued = Signal()

        commit = Signal()
        selected = self._select(m, self.instr.exec_fn.op_type)
        in_ready, load = handshake(m, valid, self.in_valid, commit, self.kill)
        m.d.comb += self.in_ready.eq(in_ready)

        with m.If(load):
            incoming = self.instr
            m.d.sync += [
                held.eq(incoming),
                issued.eq(0),
                early_trap.valid.eq(0),
                early_trap.pc.eq(incoming.pc),
            ]
            with m.If(csr.irq_pending):
                m.d.sync += [
                    fu.eq(FuSelect.TRAP),
                    early_trap.valid.eq(1),
                    early_trap.interrupt.eq(1),
                    early_trap.code.eq(csr.irq_cause),
                    early_trap.value.eq(0),
                ]
                log.info(m, 1, "interrupt cause={} at pc=0x{:08x}", csr.irq_cause, incoming.pc)
            with m.Elif(incoming.exception.valid):
                m.d.sync += [
                    fu.eq(FuSelect.TRAP),
                    early_trap.valid.eq(1),
                    early_trap.interrupt.eq(0),
                    early_trap.code.eq(incoming.exception.cause),
                    early_trap.value.eq(incoming.exception.value),
                ]
            with m.Else():
                m.d.sync += fu.eq(selected)

        op_type = held.exec_fn.op_type

        # Functional units

        m.submodules.lsu = lsu = LSUAdapter(self.gen_params)
        m.d.comb += [
            lsu.exec_fn.eq(held.exec_fn),
            lsu.addr.eq(held.result),
            lsu.data.eq(held.secondary),
            lsu.ctx.eq(csr.data_ctx),
            lsu.accept.eq(commit),
            self.dmem_req_valid.eq(lsu.req_valid),
            lsu.req_ready.eq(self.dmem_req_ready),
            self.dmem_req.eq(lsu.req),
            lsu.resp_valid.eq(self.dmem_resp_valid),
            lsu.resp.eq(self.dmem_resp),
        ]

        units: dict[FuSelect, LSUAdapter | MulUnit | DivUnit] = {FuSelect.MEM: lsu}
        if multiply:
            m.submodules.mul = units[FuSelect.MUL] = MulUnit(self.gen_params, self.gen_params.mul_type)
        if divide:
            m.submodules.div = units[FuSelect.DIV] = DivUnit(self.gen_params, self.gen_params.div_ipc)

        for sel, unit in units.items():
            if sel != FuSelect.MEM:
                m.d.comb += [
                    unit.exec_fn.eq(held.exec_fn),
                    unit.i1.eq(held.result),
                    unit.i2.eq(held.secondary),
                    unit.accept.eq(commit),
                ]
            m.d.comb += unit.issue.eq(valid & (fu == sel) & ~issued)
            with m.If(unit.issue & unit.ready):
                m.d.sync += issued.eq(1)

        # CSR access, the write happens at commit

        m.d.comb += [
            csr.access.addr.eq(held.csr),
            csr.access.funct3.eq(held.exec_fn.funct3),
            csr.access.src.eq(held.secondary),
            csr.access.we.eq(held.csr_we),
        ]

        csr_translation = Signal()
        m.d.comb += csr_translation.eq((fu == FuSelect.CSR) & held.csr_we & csr.satp_changed)

        # the maintenance notification is acknowledged before the instruction commits
        m.d.comb += self.flush_valid.eq(valid & ((fu == FuSelect.FLUSH) | csr_translation))

        done = Signal()
        value = Signal.like(held.result)
        with m.Switch(fu):
            with m.Case(FuSelect.ALU, FuSelect.TRAP):
                m.d.comb += done.eq(1)
                m.d.comb += value.eq(held.result)
            with m.Case(FuSelect.CSR):
                m.d.comb += done.eq(~csr_translation | self.flush_ready)
                m.d.comb += value.eq(csr.read_value)
            with m.Case(FuSelect.WFI):
                m.d.comb += done.eq(csr.wfi_wake)
            with m.Case(FuSelect.FLUSH):
                m.d.comb += done.eq(self.flush_ready)
            for sel, unit in units.items():
                with m.Case(sel):
                    m.d.comb += done.eq(unit.done)
                    m.d.comb += value.eq(unit.result)

        m.d.comb += commit.eq(valid & done)

        # Traps

        trap = Signal(layouts.trap)
        m.d.comb += trap.eq(early_trap)
        with m.If((fu == FuSelect.MEM) & lsu.exception.valid):
            m.d.comb += [
                trap.valid.eq(1),
                trap.interrupt.eq(0),
                trap.code.eq(lsu.exception.cause),
                trap.value.eq(lsu.exception.value),
                trap.pc.eq(held.pc),
            ]

        normal = Signal()
        m.d.comb += normal.eq(commit & ~trap.valid)

        # Redirects

        redirect = Signal(self.gen_params.get(FetchLayouts).redirect)
        m.d.comb += redirect.target.eq(held.npc)
        with m.Switch(fu):
            with m.Case(FuSelect.FLUSH):
                m.d.comb += redirect.valid.eq(1)
                m.d.comb += redirect.reason.eq(
                    Mux(op_type == OpType.FENCEI, FetchReason.FENCE_I, FetchReason.SATP_CHANGED)
                )
            with m.Case(FuSelect.CSR):
                with m.If(csr_translation):
                    m.d.comb += redirect.valid.eq(1)
                    m.d.comb += redirect.reason.eq(FetchReason.SATP_CHANGED)
                with m.Elif(held.csr_we & csr.prot_changed):
                    m.d.comb += redirect.valid.eq(1)
                    m.d.comb += redirect.reason.eq(FetchReason.PROT_CHANGED)
            with m.Case(FuSelect.ALU):
                with m.If(op_type == OpType.MRET):
                    m.d.comb += redirect.valid.eq(1)
                    m.d.comb += redirect.reason.eq(FetchReason.PROT_CHANGED)
                    m.d.comb += redirect.target.eq(csr.mepc)
                if self.gen_params.supervisor_mode:
                    with m.Elif(op_type == OpType.SRET):
                        m.d.comb += redirect.valid.eq(1)
                        m.d.comb += redirect.reason.eq(FetchReason.PROT_CHANGED)
                        m.d.comb += redirect.target.eq(csr.sepc)

        # Commit

        regs = held.regs
        m.d.comb += [
            self.outcome.commit.eq(commit),
            self.outcome.pc.eq(held.pc),
            self.outcome.rd.eq(regs.rl_dst),
            self.outcome.rd_we.eq(normal & regs.rl_dst_v & regs.rl_dst.any()),
            self.outcome.value.eq(value),
            self.outcome.trap.eq(trap),
            self.outcome.trap.valid.eq(commit & trap.valid),
            self.outcome.redirect.eq(redirect),
            self.outcome.redirect.valid.eq(normal & redirect.valid),
            self.kill.eq(commit & (trap.valid | redirect.valid)),
        ]

        m.d.comb += [
            csr.write.eq(normal & (fu == FuSelect.CSR)),
            csr.trap.eq(self.outcome.trap),
            csr.mret.eq(normal & (op_type == OpType.MRET)),
            csr.sret.eq(normal & (op_type == OpType.SRET)),
            csr.retire.eq(normal),
        ]

        m.d.comb += [
            self.bypass.valid.eq(valid & regs.rl_dst_v & regs.rl_dst.any() & ~early_trap.valid),
            self.bypass.rd.eq(regs.rl_dst),
            self.bypass.ready.eq(done),
            self.bypass.value.eq(value),
        ]

        log.debug(
            m,
            normal,
            "commit pc=0x{:08x} rd={} we={} value=0x{:08x}",
            held.pc,
            regs.rl_dst,
            self.outcome.rd_we,
            value,
        )
        log.info(
            m,
            self.outcome.redirect.valid,
            "redirect pc=0x{:08x} to 0x{:08x} reason={}",
            held.pc,
            redirect.target,
            redirect.reason,
        )

        if self.gen_params.extra_verification:
            completions = Cat(unit.done for unit in units.values())
            log.assertion(m, popcount(completions) <= 1, "More than one functional unit completed")
            for sel, unit in units.items():
                log.assertion(m, ~unit.done | (valid & (fu == sel)), "Completion of an idle functional unit")

        return m
