from functools import reduce
from operator import or_

from amaranth import *

from pipeblocks.params import GenParams
from pipeblocks.arch import *
from .instr_description import instructions_by_optype, Encoding

__all__ = ["InstrDecoder"]

# New instructions which need no extra fields are added by listing their encodings in
# `instructions_by_optype` and registering the OpType in `optypes_by_extensions`.

_rd_itypes = [InstrType.R, InstrType.I, InstrType.U, InstrType.J]

_rs1_itypes = [InstrType.R, InstrType.I, InstrType.S, InstrType.B]

_rs2_itypes = [InstrType.R, InstrType.S, InstrType.B]

_itype_by_opcode = {
    InstrType.I: [Opcode.OP_IMM, Opcode.JALR, Opcode.LOAD, Opcode.MISC_MEM, Opcode.SYSTEM],
    InstrType.U: [Opcode.LUI, Opcode.AUIPC],
    InstrType.R: [Opcode.OP],
    InstrType.J: [Opcode.JAL],
    InstrType.B: [Opcode.BRANCH],
    InstrType.S: [Opcode.STORE],
}


class InstrDecoder(Elaboratable):
    """
    Combinational decoder of a single uncompressed instruction into its elementary
    components: operation type, function codes, registers and immediate.

    Attributes
    ----------
    instr: Signal(gen.isa.ilen), in
        Instruction to be decoded.
    opcode: Signal(Opcode), out
        Opcode of decoded instruction. `LUI` is reported as `OP_IMM`.
    funct3, funct7, funct12: out
        Function identifiers, with `_v` flags telling if the instruction has them.
    rd, rs1, rs2: Signal(gen.isa.reg_cnt_log), out
        Register numbers, with `_v` flags telling if the instruction uses them.
    imm: Signal(gen.isa.xlen), out
        Sign-extended immediate, zero when the instruction has none. For CSR
        instructions with an immediate operand this is the zero-extended `uimm`.
    csr: Signal(gen.isa.csr_alen), out
        CSR address.
    optype: Signal(OpType), out
        Operation type of instruction.
    illegal: Signal(1), out
        The word does not encode an instruction supported by this configuration.
    """

    def __init__(self, gen_params: GenParams):
        self.gen_params = gen_params

        self.instr = Signal(gen_params.isa.ilen)

        self.opcode = Signal(Opcode)
        self.funct3 = Signal(Funct3)
        self.funct3_v = Signal()
        self.funct7 = Signal(Funct7)
        self.funct7_v = Signal()
        self.funct12 = Signal(Funct12)
        self.funct12_v = Signal()

        self.rd = Signal(gen_params.isa.reg_cnt_log)
        self.rd_v = Signal()
        self.rs1 = Signal(gen_params.isa.reg_cnt_log)
        self.rs1_v = Signal()
        self.rs2 = Signal(gen_params.isa.reg_cnt_log)
        self.rs2_v = Signal()

        self.imm = Signal(gen_params.isa.xlen)
        self.csr = Signal(gen_params.isa.csr_alen)
        self.optype = Signal(OpType)
        self.illegal = Signal()

    def _supported_encodings(self) -> dict[Encoding, OpType]:
        extensions = self.gen_params.isa.extensions

        # E still has to decode all of the base integer instructions
        if Extension.E in extensions:
            extensions |= Extension.I

        return {
            encoding: optype
            for optype in optypes_required_by_extensions(extensions)
            for encoding in instructions_by_optype[optype]
        }

    def elaborate(self, platform):
        m = Module()

        instr = self.instr
        xlen = self.gen_params.isa.xlen
        reg_bits = self.gen_params.isa.reg_field_bits

        opcode = Signal(Opcode)
        instruction_type = Signal(InstrType)
        m.d.comb += opcode.eq(instr[2:7])

        with m.Switch(opcode):
            for itype, opcodes in _itype_by_opcode.items():
                with m.Case(*opcodes):
                    m.d.comb += instruction_type.eq(itype)

        m.d.comb += [
            self.funct3.eq(instr[12:15]),
            self.funct7.eq(instr[25:32]),
            self.funct12.eq(instr[20:32]),
            self.csr.eq(instr[20 : 20 + self.gen_params.isa.csr_alen]),
        ]

        rd_field = instr[7 : 7 + reg_bits]
        rs1_field = instr[15 : 15 + reg_bits]
        rs2_field = instr[20 : 20 + reg_bits]

        m.d.comb += [
            self.rd.eq(rd_field),
            self.rs1.eq(rs1_field),
            self.rs2.eq(rs2_field),
        ]

        rd_invalid = Signal()
        rs1_invalid = Signal()

        m.d.comb += self.optype.eq(OpType.UNKNOWN)

        for enc, optype in self._supported_encodings().items():
            with m.If(
                (opcode == enc.opcode)
                & (self.funct3 == enc.funct3 if enc.funct3 is not None else 1)
                & (self.funct7 == enc.funct7 if enc.funct7 is not None else 1)
                & (self.funct12 == enc.funct12 if enc.funct12 is not None else 1)
                & (self.rd == 0 if enc.rd_zero else 1)
                & (self.rs1 == 0 if enc.rs1_zero else 1)
            ):
                m.d.comb += self.optype.eq(optype)

                if enc.instr_type_override is not None:
                    m.d.comb += instruction_type.eq(enc.instr_type_override)

                m.d.comb += [
                    rd_invalid.eq(enc.rd_zero),
                    rs1_invalid.eq(enc.rs1_zero),
                    self.funct3_v.eq(enc.funct3 is not None),
                    self.funct7_v.eq(enc.funct7 is not None),
                    self.funct12_v.eq(enc.funct12 is not None),
                ]

        m.d.comb += [
            self.rd_v.eq(reduce(or_, (instruction_type == t for t in _rd_itypes)) & ~rd_invalid),
            self.rs1_v.eq(reduce(or_, (instruction_type == t for t in _rs1_itypes)) & ~rs1_invalid),
            self.rs2_v.eq(reduce(or_, (instruction_type == t for t in _rs2_itypes)) & ~self.funct12_v),
        ]

        # Immediates

        iimm12 = Signal(signed(12))
        simm12 = Signal(signed(12))
        bimm13 = Signal(signed(13))
        uimm20 = Signal(unsigned(20))
        jimm21 = Signal(signed(21))

        m.d.comb += [
            iimm12.eq(instr[20:32]),
            simm12.eq(Cat(instr[7:12], instr[25:32])),
            bimm13.eq(Cat(0, instr[8:12], instr[25:31], instr[7], instr[31])),
            uimm20.eq(instr[12:32]),
            jimm21.eq(Cat(0, instr[21:31], instr[20], instr[12:20], instr[31])),
        ]

        # shamt is unsigned, funct7 carries the shift kind
        with m.If((opcode == Opcode.OP_IMM) & ((self.funct3 == Funct3.SLL) | (self.funct3 == Funct3.SR))):
            m.d.comb += iimm12.eq(instr[20:25])

        with m.Switch(instruction_type):
            with m.Case(InstrType.I):
                m.d.comb += self.imm.eq(iimm12)
            with m.Case(InstrType.S):
                m.d.comb += self.imm.eq(simm12)
            with m.Case(InstrType.B):
                m.d.comb += self.imm.eq(bimm13)
            with m.Case(InstrType.U):
                m.d.comb += self.imm.eq(uimm20 << (xlen - 20))
            with m.Case(InstrType.J):
                m.d.comb += self.imm.eq(jimm21)

        with m.If(self.optype == OpType.CSR_IMM):
            m.d.comb += [
                self.imm.eq(instr[15:20]),
                self.rs1_v.eq(0),
            ]

        # lui rd, imm -> addi rd, x0, (imm << 12)
        with m.If(opcode == Opcode.LUI):
            m.d.comb += [
                self.opcode.eq(Opcode.OP_IMM),
                self.funct3.eq(Funct3.ADD),
                self.funct3_v.eq(1),
                self.rs1.eq(0),
                self.rs1_v.eq(1),
            ]
        with m.Else():
            m.d.comb += self.opcode.eq(opcode)

        register_space_invalid = Signal()
        m.d.comb += register_space_invalid.eq(
            (self.rd_v & rd_field[len(self.rd) :].any())
            | (self.rs1_v & rs1_field[len(self.rs1) :].any())
            | (self.rs2_v & rs2_field[len(self.rs2) :].any())
        )

        # bits [0:2] == 0b11 select the 32-bit encoding space, not covered by the opcode
        m.d.comb += self.illegal.eq(
            (self.optype == OpType.UNKNOWN) | (instr[0:2] != 0b11) | register_space_invalid
        )

        return m
