from amaranth import *

from transactron import TModule
from amaranth_types import ValueLike

from pipeblocks.params import *
from pipeblocks.arch import *

__all__ = ["InstrDecompress", "is_instr_compressed"]

# An instruction or an instruction with the legality signal
DecodedInstr = ValueLike | tuple[ValueLike, ValueLike]

_reserved: DecodedInstr = (IllegalInstr(), 0)


def is_instr_compressed(instr: Value) -> Value:
    return instr[0:2] != 0b11


class InstrDecompress(Elaboratable):
    """
    Expansion of a 16-bit RV32C instruction into its 32-bit equivalent.

    Reserved and unsupported encodings expand to an instruction which the
    decoder reports as illegal.

    Attributes
    ----------
    instr_in: Signal(16), in
        Compressed instruction.
    instr_out: Signal(32), out
        Expanded instruction.
    legal: Signal(1), out
        The compressed instruction is a legal one.
    """

    def __init__(self, gen_params: GenParams):
        self.gen_params = gen_params

        self.instr_in = Signal(16)

        self.instr_out = Signal(32)
        self.legal = Signal()

    def decompr_reg(self, rvc_reg: Value) -> Value:
        return Cat(rvc_reg, C(0b01, 2))

    def instr_mux(self, sel: Value, inputs: list[DecodedInstr]) -> tuple[ValueLike, ValueLike]:
        if 2 ** len(sel) != len(inputs):
            raise RuntimeError(
                f"Length of inputs ({len(inputs)}) is not equal to two to the power of length of sel ({len(sel)})"
            )

        instr = Array([instr[0] if isinstance(instr, tuple) else instr for instr in inputs])[sel]
        legal = Array([instr[1] if isinstance(instr, tuple) else 1 for instr in inputs])[sel]
        return (instr, legal)

    def _quadrant_0(self) -> list[DecodedInstr]:
        i = self.instr_in
        rs1 = self.decompr_reg(i[7:10])
        rs2 = self.decompr_reg(i[2:5])
        rd = self.decompr_reg(i[2:5])

        addi4spn_imm = Cat(C(0, 2), i[6], i[5], i[11:13], i[7:11], C(0, 2))
        lsw_imm = Cat(C(0, 2), i[6], i[10:13], i[5], C(0, 5))

        addi4spn = (
            ITypeInstr(opcode=Opcode.OP_IMM, rd=rd, funct3=Funct3.ADD, rs1=Registers.SP, imm=addi4spn_imm),
            addi4spn_imm.any(),
        )
        lw = ITypeInstr(opcode=Opcode.LOAD, rd=rd, funct3=Funct3.W, rs1=rs1, imm=lsw_imm)
        sw = STypeInstr(opcode=Opcode.STORE, imm=lsw_imm, funct3=Funct3.W, rs1=rs1, rs2=rs2)

        # floating point loads and stores are not supported
        return [addi4spn, _reserved, lw, _reserved, _reserved, _reserved, sw, _reserved]

    def _quadrant_1(self) -> list[DecodedInstr]:
        i = self.instr_in
        rd_rs1 = self.decompr_reg(i[7:10])
        rs2 = self.decompr_reg(i[2:5])
        rd = i[7:12]

        addi_imm = Cat(i[2:7], i[12].replicate(7))
        addi16sp_imm = Cat(C(0, 4), i[6], i[2], i[5], i[3:5], i[12].replicate(3))
        lui_imm = Cat(C(0, 12), i[2:7], i[12].replicate(15))
        j_imm = Cat(C(0, 1), i[3:6], i[11], i[2], i[7], i[6], i[9:11], i[8], i[12].replicate(10))
        b_imm = Cat(C(0, 1), i[3:5], i[10:12], i[2], i[5:7], i[12].replicate(5))
        shamt = Cat(i[2:7], i[12])

        addi = ITypeInstr(opcode=Opcode.OP_IMM, rd=rd, funct3=Funct3.ADD, rs1=rd, imm=addi_imm)
        addi16sp = (
            ITypeInstr(opcode=Opcode.OP_IMM, rd=Registers.SP, funct3=Funct3.ADD, rs1=Registers.SP, imm=addi16sp_imm),
            addi16sp_imm.any(),
        )
        li = ITypeInstr(opcode=Opcode.OP_IMM, rd=rd, funct3=Funct3.ADD, rs1=Registers.ZERO, imm=addi_imm)
        lui = (UTypeInstr(opcode=Opcode.LUI, rd=rd, imm=lui_imm), lui_imm.any())

        jal = JTypeInstr(opcode=Opcode.JAL, rd=Registers.RA, imm=j_imm)
        j = JTypeInstr(opcode=Opcode.JAL, rd=Registers.ZERO, imm=j_imm)

        beqz = BTypeInstr(opcode=Opcode.BRANCH, imm=b_imm, funct3=Funct3.BEQ, rs1=rd_rs1, rs2=Registers.ZERO)
        bnez = BTypeInstr(opcode=Opcode.BRANCH, imm=b_imm, funct3=Funct3.BNE, rs1=rd_rs1, rs2=Registers.ZERO)

        # shamt[5] must be clear on RV32
        srli = (
            RTypeInstr(
                opcode=Opcode.OP_IMM, rd=rd_rs1, funct3=Funct3.SR, rs1=rd_rs1, rs2=shamt[0:5], funct7=Funct7.SL
            ),
            ~shamt[5],
        )
        srai = (
            RTypeInstr(
                opcode=Opcode.OP_IMM, rd=rd_rs1, funct3=Funct3.SR, rs1=rd_rs1, rs2=shamt[0:5], funct7=Funct7.SA
            ),
            ~shamt[5],
        )
        andi = ITypeInstr(opcode=Opcode.OP_IMM, rd=rd_rs1, funct3=Funct3.AND, rs1=rd_rs1, imm=addi_imm)

        sub = RTypeInstr(opcode=Opcode.OP, rd=rd_rs1, funct3=Funct3.SUB, rs1=rd_rs1, rs2=rs2, funct7=Funct7.SUB)
        xor = RTypeInstr(opcode=Opcode.OP, rd=rd_rs1, funct3=Funct3.XOR, rs1=rd_rs1, rs2=rs2, funct7=Funct7.XOR)
        or_ = RTypeInstr(opcode=Opcode.OP, rd=rd_rs1, funct3=Funct3.OR, rs1=rd_rs1, rs2=rs2, funct7=Funct7.OR)
        and_ = RTypeInstr(opcode=Opcode.OP, rd=rd_rs1, funct3=Funct3.AND, rs1=rd_rs1, rs2=rs2, funct7=Funct7.AND)
        rtype_instr, rtype_legal = self.instr_mux(i[5:7], [sub, xor, or_, and_])
        # c.subw and c.addw are RV64 only
        rtype = (rtype_instr, rtype_legal & ~i[12])

        return [
            addi,
            jal,
            li,
            self.instr_mux(rd == Registers.SP, [lui, addi16sp]),
            self.instr_mux(i[10:12], [srli, srai, andi, rtype]),
            j,
            beqz,
            bnez,
        ]

    def _quadrant_2(self) -> list[DecodedInstr]:
        i = self.instr_in
        rd_rs1 = i[7:12]
        rs2 = i[2:7]

        shamt = Cat(i[2:7], i[12])
        lwsp_imm = Cat(C(0, 2), i[4:7], i[12], i[2:4], C(0, 4))
        swsp_imm = Cat(C(0, 2), i[9:13], i[7:9], C(0, 4))

        slli = (
            RTypeInstr(
                opcode=Opcode.OP_IMM, rd=rd_rs1, funct3=Funct3.SLL, rs1=rd_rs1, rs2=shamt[0:5], funct7=Funct7.SL
            ),
            ~shamt[5],
        )
        lwsp = (
            ITypeInstr(opcode=Opcode.LOAD, rd=rd_rs1, funct3=Funct3.W, rs1=Registers.SP, imm=lwsp_imm),
            rd_rs1.any(),
        )
        swsp = STypeInstr(opcode=Opcode.STORE, imm=swsp_imm, funct3=Funct3.W, rs1=Registers.SP, rs2=rs2)

        jr = (
            ITypeInstr(opcode=Opcode.JALR, rd=Registers.ZERO, funct3=Funct3.JALR, rs1=rd_rs1, imm=C(0, 12)),
            rd_rs1.any(),
        )
        jalr = ITypeInstr(opcode=Opcode.JALR, rd=Registers.RA, funct3=Funct3.JALR, rs1=rd_rs1, imm=C(0, 12))
        ebreak = EBreakInstr()

        mv = RTypeInstr(opcode=Opcode.OP, rd=rd_rs1, funct3=Funct3.ADD, rs1=Registers.ZERO, rs2=rs2, funct7=Funct7.ADD)
        add = RTypeInstr(opcode=Opcode.OP, rd=rd_rs1, funct3=Funct3.ADD, rs1=rd_rs1, rs2=rs2, funct7=Funct7.ADD)

        jr_mv = self.instr_mux(rs2.any(), [jr, mv])
        ebreak_jalr = self.instr_mux(rd_rs1.any(), [ebreak, jalr])
        ebreak_jalr_add = self.instr_mux(rs2.any(), [ebreak_jalr, add])

        return [
            slli,
            _reserved,
            lwsp,
            _reserved,
            self.instr_mux(i[12], [jr_mv, ebreak_jalr_add]),
            _reserved,
            swsp,
            _reserved,
        ]

    def elaborate(self, platform):
        m = TModule()

        funct3 = self.instr_in[13:16]
        quadrant = self.instr_in[0:2]

        quadrants: list[DecodedInstr] = [
            self.instr_mux(funct3, q) for q in [self._quadrant_0(), self._quadrant_1(), self._quadrant_2()]
        ]

        # quadrant 3 holds instructions longer than 16 bits
        quadrants.append(_reserved)

        instr, legal = self.instr_mux(quadrant, quadrants)

        m.d.comb += self.legal.eq(legal)
        m.d.comb += self.instr_out.eq(Mux(legal, instr, IllegalInstr()))

        return m
