from amaranth import *

from transactron import TModule
from transactron.lib import logging

from pipeblocks.arch import OpType, ExceptionCause, Extension
from pipeblocks.params import GenParams
from pipeblocks.interface.layouts import DecodeLayouts, ExecuteLayouts
from pipeblocks.func_blocks.fu.alu import Alu, AluFn
from pipeblocks.func_blocks.fu.jumpbranch import JumpBranch, JumpBranchFn
from pipeblocks.lib.pipeline import PipelineRegister
from pipeblocks.backend.bypass import resolve_operand

__all__ = ["Execute1"]

log = logging.HardwareLogger("backend.ex1")


class Execute1(Elaboratable):
    """
    Execute-1 stage: operand bypass, ALU and control transfer resolution.

    Instructions which the squash control does not allow to issue are
    dropped. An allowed instruction issues when both of its operands are
    available and the register towards execute-2 can take it. Loads and
    stores get their effective address computed here; operations done by
    execute-2 units get their operands forwarded.

    Attributes
    ----------
    in_valid: Signal(1), in
    in_ready: Signal(1), out
    instr: Signal(DecodeLayouts.decoded), in
        Instruction from the decode to execute-1 register.
    gate: Signal(1), in
        The instruction may issue.
    issue: Signal(1), out
        The instruction issues in this cycle.
    npc: Signal(xlen), out
        Actual next PC of the instruction.
    mispredict: Signal(1), out
        The issued instruction's next PC differs from the one fetch predicted.
    ex2_bypass: Signal(ExecuteLayouts.bypass), in
        Result of the instruction in execute-2.
    pending_bypass: Signal(ExecuteLayouts.bypass), out
        Result of the instruction waiting for execute-2.
    kill: Signal(1), in
        Drop the instruction waiting for execute-2.
    out_valid: Signal(1), out
    out_ready: Signal(1), in
    out: Signal(ExecuteLayouts.ex1_result), out
    """

    def __init__(self, gen_params: GenParams):
        self.gen_params = gen_params

        layouts = gen_params.get(ExecuteLayouts)
        xlen = gen_params.isa.xlen

        self.in_valid = Signal()
        self.in_ready = Signal()
        self.instr = Signal(gen_params.get(DecodeLayouts).decoded)

        self.gate = Signal()
        self.issue = Signal()
        self.npc = Signal(xlen)
        self.mispredict = Signal()

        self.ex2_bypass = Signal(layouts.bypass)
        self.pending_bypass = Signal(layouts.bypass)
        self.kill = Signal()

        self.out_valid = Signal()
        self.out_ready = Signal()
        self.out = Signal(layouts.ex1_result)

        self.alu_fn = AluFn()
        self.jb_fn = JumpBranchFn()

    def elaborate(self, platform):
        m = TModule()

        layouts = self.gen_params.get(ExecuteLayouts)
        instr = self.instr
        regs = instr.regs
        op_type = instr.exec_fn.op_type
        compressed = Extension.C in self.gen_params.isa.extensions

        m.submodules.pending = pending = PipelineRegister(layouts.ex1_result)
        m.submodules.alu_decoder = alu_decoder = self.alu_fn.get_decoder(self.gen_params)
        m.submodules.jb_decoder = jb_decoder = self.jb_fn.get_decoder(self.gen_params)
        m.submodules.alu = alu = Alu(self.gen_params, alu_fn=self.alu_fn)
        m.submodules.jb = jb = JumpBranch(self.gen_params, fn=self.jb_fn)

        # Operands

        waiting = pending.out_data
        m.d.comb += [
            self.pending_bypass.valid.eq(
                pending.out_valid & waiting.regs.rl_dst_v & ~waiting.exception.valid & waiting.regs.rl_dst.any()
            ),
            self.pending_bypass.rd.eq(waiting.regs.rl_dst),
            self.pending_bypass.ready.eq(waiting.result_valid),
            self.pending_bypass.value.eq(waiting.result),
        ]

        # youngest writer first: the pending slot holds a younger instruction than execute-2
        candidates = [self.pending_bypass, self.ex2_bypass]
        s1, stall1 = resolve_operand(m, regs.rl_s1, regs.rl_s1_v, instr.s1_val, candidates)
        s2, stall2 = resolve_operand(m, regs.rl_s2, regs.rl_s2_v, instr.s2_val, candidates)

        # Computation

        m.d.comb += [
            alu_decoder.exec_fn.eq(instr.exec_fn),
            jb_decoder.exec_fn.eq(instr.exec_fn),
            alu.fn.eq(alu_decoder.decode_fn),
            alu.in1.eq(s1),
            alu.in2.eq(Mux(regs.rl_s2_v, s2, instr.imm)),
            jb.fn.eq(jb_decoder.decode_fn),
            jb.in1.eq(s1),
            jb.in2.eq(s2),
            jb.in_pc.eq(instr.pc),
            jb.in_imm.eq(instr.imm),
            jb.in_rvc.eq(instr.rvc),
        ]

        seq_pc = Signal.like(self.npc)
        m.d.comb += seq_pc.eq(instr.pc + Mux(instr.rvc, 2, 4))

        result = Signal(layouts.ex1_result)
        m.d.comb += [
            result.pc.eq(instr.pc),
            result.exec_fn.eq(instr.exec_fn),
            result.regs.eq(regs),
            result.csr.eq(instr.csr),
            result.csr_we.eq(instr.csr_we),
            result.exception.eq(instr.exception),
            result.npc.eq(seq_pc),
            result.result_valid.eq(1),
        ]

        with m.If(self.alu_fn.handles(op_type)):
            m.d.comb += result.result.eq(alu.out)
        with m.Elif(self.jb_fn.handles(op_type)):
            m.d.comb += result.result.eq(jb.reg_res)
            m.d.comb += result.npc.eq(jb.next_pc)
            misaligned = jb.jmp_addr[0:1] if compressed else jb.jmp_addr[0:2]
            with m.If(jb.taken & misaligned.any() & ~instr.exception.valid):
                m.d.comb += [
                    result.exception.valid.eq(1),
                    result.exception.cause.eq(ExceptionCause.INSTRUCTION_ADDRESS_MISALIGNED),
                    result.exception.value.eq(jb.jmp_addr),
                ]
        with m.Elif((op_type == OpType.LOAD) | (op_type == OpType.STORE)):
            m.d.comb += [
                result.result.eq(s1 + instr.imm),
                result.secondary.eq(s2),
                result.result_valid.eq(0),
            ]
        with m.Elif((op_type == OpType.MUL) | (op_type == OpType.DIV_REM)):
            m.d.comb += [
                result.result.eq(s1),
                result.secondary.eq(s2),
                result.result_valid.eq(0),
            ]
        with m.Elif(op_type == OpType.CSR_REG):
            m.d.comb += result.secondary.eq(s1)
            m.d.comb += result.result_valid.eq(0)
        with m.Elif(op_type == OpType.CSR_IMM):
            m.d.comb += result.secondary.eq(instr.imm)
            m.d.comb += result.result_valid.eq(0)

        predicted_npc = Mux(instr.prediction.taken, instr.prediction.target, seq_pc)

        # Issue

        stall = Signal()
        m.d.comb += stall.eq(stall1 | stall2)

        m.d.comb += [
            self.issue.eq(self.in_valid & self.gate & ~stall & ~self.kill & pending.in_ready),
            self.in_ready.eq(~self.gate | self.issue),
            self.npc.eq(result.npc),
            self.mispredict.eq(self.issue & (result.npc != predicted_npc) & ~result.exception.valid),
            pending.in_valid.eq(self.issue),
            pending.in_data.eq(result),
            pending.flush.eq(self.kill),
            pending.out_ready.eq(self.out_ready),
            self.out_valid.eq(pending.out_valid),
            self.out.eq(pending.out_data),
        ]

        log.debug(m, self.issue, "issue pc=0x{:08x} npc=0x{:08x}", instr.pc, result.npc)
        log.debug(m, self.in_valid & ~self.gate, "drop pc=0x{:08x}", instr.pc)
        log.info(
            m,
            self.mispredict,
            "mispredict pc=0x{:08x} predicted=0x{:08x} actual=0x{:08x}",
            instr.pc,
            predicted_npc,
            result.npc,
        )

        return m
