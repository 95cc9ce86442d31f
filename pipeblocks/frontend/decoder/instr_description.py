from dataclasses import KW_ONLY, dataclass
from typing import Optional

from pipeblocks.arch import *


@dataclass(frozen=True)
class Encoding:
    """
    Fixed fields identifying one instruction.

    Fields left as `None` are not part of the match. `instr_type_override`
    selects the operand layout when the opcode alone gives the wrong one.
    `rd_zero` and `rs1_zero` mark encodings which require these register
    fields to be zero.
    """

    opcode: Opcode
    funct3: Optional[Funct3] = None
    funct7: Optional[Funct7] = None
    funct12: Optional[Funct12] = None
    _ = KW_ONLY
    instr_type_override: Optional[InstrType] = None
    rd_zero: bool = False
    rs1_zero: bool = False


instructions_by_optype = {
    OpType.ARITHMETIC: [
        Encoding(Opcode.OP_IMM, Funct3.ADD),
        Encoding(Opcode.OP, Funct3.ADD, Funct7.ADD),
        Encoding(Opcode.OP, Funct3.ADD, Funct7.SUB),
        Encoding(Opcode.LUI),
    ],
    OpType.COMPARE: [
        Encoding(Opcode.OP_IMM, Funct3.SLT),
        Encoding(Opcode.OP_IMM, Funct3.SLTU),
        Encoding(Opcode.OP, Funct3.SLT, Funct7.SLT),
        Encoding(Opcode.OP, Funct3.SLTU, Funct7.SLT),
    ],
    OpType.LOGIC: [
        Encoding(Opcode.OP_IMM, Funct3.XOR),
        Encoding(Opcode.OP_IMM, Funct3.OR),
        Encoding(Opcode.OP_IMM, Funct3.AND),
        Encoding(Opcode.OP, Funct3.XOR, Funct7.XOR),
        Encoding(Opcode.OP, Funct3.OR, Funct7.OR),
        Encoding(Opcode.OP, Funct3.AND, Funct7.AND),
    ],
    OpType.SHIFT: [
        Encoding(Opcode.OP_IMM, Funct3.SLL, Funct7.SL),
        Encoding(Opcode.OP_IMM, Funct3.SR, Funct7.SL),
        Encoding(Opcode.OP_IMM, Funct3.SR, Funct7.SA),
        Encoding(Opcode.OP, Funct3.SLL, Funct7.SL),
        Encoding(Opcode.OP, Funct3.SR, Funct7.SL),
        Encoding(Opcode.OP, Funct3.SR, Funct7.SA),
    ],
    OpType.AUIPC: [
        Encoding(Opcode.AUIPC),
    ],
    OpType.JAL: [
        Encoding(Opcode.JAL),
    ],
    OpType.JALR: [
        Encoding(Opcode.JALR, Funct3.JALR),
    ],
    OpType.BRANCH: [
        Encoding(Opcode.BRANCH, Funct3.BEQ),
        Encoding(Opcode.BRANCH, Funct3.BNE),
        Encoding(Opcode.BRANCH, Funct3.BLT),
        Encoding(Opcode.BRANCH, Funct3.BGE),
        Encoding(Opcode.BRANCH, Funct3.BLTU),
        Encoding(Opcode.BRANCH, Funct3.BGEU),
    ],
    OpType.LOAD: [
        Encoding(Opcode.LOAD, Funct3.B),
        Encoding(Opcode.LOAD, Funct3.BU),
        Encoding(Opcode.LOAD, Funct3.H),
        Encoding(Opcode.LOAD, Funct3.HU),
        Encoding(Opcode.LOAD, Funct3.W),
    ],
    OpType.STORE: [
        Encoding(Opcode.STORE, Funct3.B),
        Encoding(Opcode.STORE, Funct3.H),
        Encoding(Opcode.STORE, Funct3.W),
    ],
    OpType.FENCE: [
        Encoding(Opcode.MISC_MEM, Funct3.FENCE),
    ],
    # privileged, Zifencei, Zicsr
    OpType.ECALL: [
        Encoding(Opcode.SYSTEM, Funct3.PRIV, funct12=Funct12.ECALL, rd_zero=True, rs1_zero=True),
    ],
    OpType.EBREAK: [
        Encoding(Opcode.SYSTEM, Funct3.PRIV, funct12=Funct12.EBREAK, rd_zero=True, rs1_zero=True),
    ],
    OpType.MRET: [
        Encoding(Opcode.SYSTEM, Funct3.PRIV, funct12=Funct12.MRET, rd_zero=True, rs1_zero=True),
    ],
    OpType.WFI: [
        Encoding(Opcode.SYSTEM, Funct3.PRIV, funct12=Funct12.WFI, rd_zero=True, rs1_zero=True),
    ],
    OpType.FENCEI: [
        Encoding(Opcode.MISC_MEM, Funct3.FENCEI),
    ],
    OpType.CSR_REG: [
        Encoding(Opcode.SYSTEM, Funct3.CSRRW),
        Encoding(Opcode.SYSTEM, Funct3.CSRRS),
        Encoding(Opcode.SYSTEM, Funct3.CSRRC),
    ],
    OpType.CSR_IMM: [
        Encoding(Opcode.SYSTEM, Funct3.CSRRWI),
        Encoding(Opcode.SYSTEM, Funct3.CSRRSI),
        Encoding(Opcode.SYSTEM, Funct3.CSRRCI),
    ],
    # M
    OpType.MUL: [
        Encoding(Opcode.OP, Funct3.MUL, Funct7.MULDIV),
        Encoding(Opcode.OP, Funct3.MULH, Funct7.MULDIV),
        Encoding(Opcode.OP, Funct3.MULHSU, Funct7.MULDIV),
        Encoding(Opcode.OP, Funct3.MULHU, Funct7.MULDIV),
    ],
    OpType.DIV_REM: [
        Encoding(Opcode.OP, Funct3.DIV, Funct7.MULDIV),
        Encoding(Opcode.OP, Funct3.DIVU, Funct7.MULDIV),
        Encoding(Opcode.OP, Funct3.REM, Funct7.MULDIV),
        Encoding(Opcode.OP, Funct3.REMU, Funct7.MULDIV),
    ],
    # supervisor mode
    OpType.SRET: [
        Encoding(Opcode.SYSTEM, Funct3.PRIV, funct12=Funct12.SRET, rd_zero=True, rs1_zero=True),
    ],
    OpType.SFENCEVMA: [
        Encoding(Opcode.SYSTEM, Funct3.PRIV, Funct7.SFENCEVMA, rd_zero=True, instr_type_override=InstrType.R),
    ],
}
