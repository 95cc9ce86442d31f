from amaranth import *

from transactron import TModule
from transactron.lib import logging

from pipeblocks.arch import *
from pipeblocks.params import GenParams
from pipeblocks.interface.layouts import CommonLayoutFields, DecodeLayouts, FetchLayouts, RFLayouts
from pipeblocks.core_structs.rf import RegisterFile
from pipeblocks.priv.csr.csr_unit import csr_access_illegal
from pipeblocks.lib.pipeline import handshake
from .instr_decoder import InstrDecoder
from .rvc import InstrDecompress, is_instr_compressed

__all__ = ["DecodeStage"]

log = logging.HardwareLogger("frontend.decode")


class DecodeStage(Elaboratable):
    """
    Decode stage and the decode to execute-1 pipeline register.

    The fetched word is expanded (when compressed), decoded and checked
    against the current privilege state. Decoding problems, `ECALL` and
    `EBREAK` are turned into an exception record; an exception reported by
    the fetch unit always wins. Source registers are read from the register
    file in the same cycle.

    While an instruction waits in the pipeline register, committed register
    writes to its source registers update the held operand values.

    Attributes
    ----------
    in_valid: Signal(1), in
    in_ready: Signal(1), out
    fetched: Signal(FetchLayouts.fetched), in
        Instruction from the fetch unit.
    status: Signal(DecodeLayouts.status), in
        Privilege state from the CSR unit.
    rf_write: Signal(RFLayouts.rf_write), in
        Register write of the instruction committed in this cycle.
    flush: Signal(1), in
        Drop the held instruction and the offered one.
    out_valid: Signal(1), out
    out_ready: Signal(1), in
    out: Signal(DecodeLayouts.decoded), out
        Decoded instruction for execute-1.
    """

    def __init__(self, gen_params: GenParams, rf: RegisterFile) -> None:
        """
        Parameters
        ----------
        gen_params: GenParams
            Core generation parameters.
        rf: RegisterFile
            Register file whose first two read ports are used by this stage.
        """
        self.gen_params = gen_params
        self.rf = rf

        layouts = gen_params.get(DecodeLayouts)

        self.in_valid = Signal()
        self.in_ready = Signal()
        self.fetched = Signal(gen_params.get(FetchLayouts).fetched)
        self.status = Signal(layouts.status)
        self.rf_write = Signal(gen_params.get(RFLayouts).rf_write)
        self.flush = Signal()

        self.out_valid = Signal()
        self.out_ready = Signal()
        self.out = Signal(layouts.decoded)

    def _privilege_illegal(self, m: TModule, decoder: InstrDecoder, csr_we: Value) -> Signal:
        status = self.status
        prv = status.prv
        supervisor = self.gen_params.supervisor_mode

        illegal = Signal()
        with m.Switch(decoder.optype):
            with m.Case(OpType.CSR_REG, OpType.CSR_IMM):
                m.d.comb += illegal.eq(csr_access_illegal(self.gen_params, decoder.csr, csr_we, status))
            with m.Case(OpType.MRET):
                m.d.comb += illegal.eq(prv != PrivilegeLevel.MACHINE)
            with m.Case(OpType.WFI):
                m.d.comb += illegal.eq(status.tw & (prv != PrivilegeLevel.MACHINE))
            if supervisor:
                with m.Case(OpType.SRET):
                    m.d.comb += illegal.eq(
                        (prv == PrivilegeLevel.USER) | (status.tsr & (prv == PrivilegeLevel.SUPERVISOR))
                    )
                with m.Case(OpType.SFENCEVMA):
                    m.d.comb += illegal.eq(
                        (prv == PrivilegeLevel.USER) | (status.tvm & (prv == PrivilegeLevel.SUPERVISOR))
                    )
        return illegal

    def elaborate(self, platform):
        m = TModule()

        layouts = self.gen_params.get(DecodeLayouts)
        fetched = self.fetched
        raw = fetched.instr

        m.submodules.instr_decoder = decoder = InstrDecoder(self.gen_params)

        rvc = Signal()
        if Extension.C in self.gen_params.isa.extensions:
            m.submodules.decompress = decompress = InstrDecompress(self.gen_params)
            m.d.comb += decompress.instr_in.eq(raw[0:16])
            m.d.comb += rvc.eq(is_instr_compressed(raw))
            m.d.comb += decoder.instr.eq(Mux(rvc, decompress.instr_out, raw))
        else:
            m.d.comb += decoder.instr.eq(raw)

        instr = decoder.instr

        # CSRRS and CSRRC (and their immediate forms) with rs1 / uimm equal to zero only read
        csr_we = Signal()
        m.d.comb += csr_we.eq(
            (decoder.funct3 == Funct3.CSRRW) | (decoder.funct3 == Funct3.CSRRWI) | instr[15:20].any()
        )

        privilege_illegal = self._privilege_illegal(m, decoder, csr_we)

        exception = Signal(self.gen_params.get(CommonLayoutFields).exception_layout)
        with m.If(fetched.exception.valid):
            m.d.comb += exception.eq(fetched.exception)
        with m.Elif(decoder.illegal | privilege_illegal):
            m.d.comb += [
                exception.valid.eq(1),
                exception.cause.eq(ExceptionCause.ILLEGAL_INSTRUCTION),
                exception.value.eq(Mux(rvc, raw[0:16], raw)),
            ]
        with m.Elif(decoder.optype == OpType.ECALL):
            m.d.comb += exception.valid.eq(1)
            with m.Switch(self.status.prv):
                with m.Case(PrivilegeLevel.USER):
                    m.d.comb += exception.cause.eq(ExceptionCause.ENVIRONMENT_CALL_FROM_U)
                with m.Case(PrivilegeLevel.SUPERVISOR):
                    m.d.comb += exception.cause.eq(ExceptionCause.ENVIRONMENT_CALL_FROM_S)
                with m.Default():
                    m.d.comb += exception.cause.eq(ExceptionCause.ENVIRONMENT_CALL_FROM_M)
        with m.Elif(decoder.optype == OpType.EBREAK):
            m.d.comb += [
                exception.valid.eq(1),
                exception.cause.eq(ExceptionCause.BREAKPOINT),
                exception.value.eq(fetched.pc),
            ]

        decoded = Signal(layouts.decoded)
        m.d.comb += [
            decoded.pc.eq(fetched.pc),
            decoded.reason.eq(fetched.reason),
            decoded.rvc.eq(rvc),
            decoded.prediction.eq(fetched.prediction),
            decoded.exec_fn.op_type.eq(decoder.optype),
            # unused functs are zero, functional unit decoders rely on it
            decoded.exec_fn.funct3.eq(Mux(decoder.funct3_v, decoder.funct3, 0)),
            decoded.exec_fn.funct7.eq(Mux(decoder.funct7_v, decoder.funct7, 0)),
            decoded.regs.rl_dst.eq(Mux(decoder.rd_v, decoder.rd, 0)),
            decoded.regs.rl_dst_v.eq(decoder.rd_v & ~exception.valid),
            decoded.regs.rl_s1.eq(Mux(decoder.rs1_v, decoder.rs1, 0)),
            decoded.regs.rl_s1_v.eq(decoder.rs1_v),
            decoded.regs.rl_s2.eq(Mux(decoder.rs2_v, decoder.rs2, 0)),
            decoded.regs.rl_s2_v.eq(decoder.rs2_v),
            decoded.imm.eq(decoder.imm),
            decoded.csr.eq(decoder.csr),
            decoded.csr_we.eq(csr_we),
            decoded.exception.eq(exception),
        ]

        # Register read, register 0 reads as zero
        m.d.comb += [
            self.rf.read_ids[0].eq(decoded.regs.rl_s1),
            self.rf.read_ids[1].eq(decoded.regs.rl_s2),
            decoded.s1_val.eq(self.rf.read_vals[0]),
            decoded.s2_val.eq(self.rf.read_vals[1]),
        ]

        # Pipeline register

        valid = Signal()
        # contents are meaningless until the first load
        held = Signal(layouts.decoded, reset_less=True)

        in_ready, load = handshake(m, valid, self.in_valid, self.out_ready, self.flush)

        m.d.comb += [
            self.in_ready.eq(in_ready),
            self.out_valid.eq(valid),
            self.out.eq(held),
        ]

        write = self.rf_write
        with m.If(load):
            m.d.sync += held.eq(decoded)
            log.debug(
                m,
                1,
                "decode pc=0x{:08x} instr=0x{:08x} optype={} exception={}",
                fetched.pc,
                raw,
                decoder.optype,
                exception.valid,
            )
        with m.Elif(write.en & (write.reg_id != 0)):
            with m.If(write.reg_id == held.regs.rl_s1):
                m.d.sync += held.s1_val.eq(write.reg_val)
            with m.If(write.reg_id == held.regs.rl_s2):
                m.d.sync += held.s2_val.eq(write.reg_val)

        return m
