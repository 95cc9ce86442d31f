import random

from parameterized import parameterized

from transactron.testing import TestCaseWithSimulator, TestbenchContext
from transactron.utils import signed_to_int

from pipeblocks.arch import Funct3, Funct7, OpType
from pipeblocks.func_blocks.fu.alu import AluFn, Alu
from pipeblocks.params import GenParams
from pipeblocks.params.configurations import test_core_config


def compute_result(i1: int, i2: int, fn: AluFn.Fn, xlen: int) -> int:
    mask = (1 << xlen) - 1
    shamt = i2 & (xlen - 1)

    match fn:
        case AluFn.Fn.ADD:
            res = i1 + i2
        case AluFn.Fn.SUB:
            res = i1 - i2
        case AluFn.Fn.XOR:
            res = i1 ^ i2
        case AluFn.Fn.OR:
            res = i1 | i2
        case AluFn.Fn.AND:
            res = i1 & i2
        case AluFn.Fn.SLT:
            res = signed_to_int(i1, xlen) < signed_to_int(i2, xlen)
        case AluFn.Fn.SLTU:
            res = i1 < i2
        case AluFn.Fn.SLL:
            res = i1 << shamt
        case AluFn.Fn.SRL:
            res = i1 >> shamt
        case AluFn.Fn.SRA:
            res = signed_to_int(i1, xlen) >> shamt
        case _:
            raise ValueError(fn)

    return int(res) & mask


class TestAlu(TestCaseWithSimulator):
    def setup_method(self):
        random.seed(42)
        self.gen_params = GenParams(test_core_config)
        self.alu = Alu(self.gen_params)

    @parameterized.expand([(fn.name, fn) for fn in AluFn.Fn])
    def test_fn(self, name, fn: AluFn.Fn):
        xlen = self.gen_params.isa.xlen
        edge = [0, 1, 2**31 - 1, 2**31, 2**32 - 1]
        cases = [(a, b) for a in edge for b in edge]
        cases += [(random.randrange(2**xlen), random.randrange(2**xlen)) for _ in range(50)]

        async def process(sim: TestbenchContext):
            sim.set(self.alu.fn, fn)
            for i1, i2 in cases:
                sim.set(self.alu.in1, i1)
                sim.set(self.alu.in2, i2)
                assert sim.get(self.alu.out) == compute_result(i1, i2, fn, xlen)
            await sim.tick()

        with self.run_simulation(self.alu) as sim:
            sim.add_testbench(process)


class TestAluDecoder(TestCaseWithSimulator):
    ops = {
        AluFn.Fn.ADD: (OpType.ARITHMETIC, Funct3.ADD, Funct7.ADD),
        AluFn.Fn.SUB: (OpType.ARITHMETIC, Funct3.ADD, Funct7.SUB),
        AluFn.Fn.SLT: (OpType.COMPARE, Funct3.SLT, 0),
        AluFn.Fn.SLTU: (OpType.COMPARE, Funct3.SLTU, 0),
        AluFn.Fn.XOR: (OpType.LOGIC, Funct3.XOR, 0),
        AluFn.Fn.OR: (OpType.LOGIC, Funct3.OR, 0),
        AluFn.Fn.AND: (OpType.LOGIC, Funct3.AND, 0),
        AluFn.Fn.SLL: (OpType.SHIFT, Funct3.SLL, Funct7.SL),
        AluFn.Fn.SRL: (OpType.SHIFT, Funct3.SR, Funct7.SL),
        AluFn.Fn.SRA: (OpType.SHIFT, Funct3.SR, Funct7.SA),
    }

    def test_decoder(self):
        self.gen_params = GenParams(test_core_config)
        alu_fn = AluFn()
        self.decoder = alu_fn.get_decoder(self.gen_params)

        async def process(sim: TestbenchContext):
            for fn, (op_type, funct3, funct7) in self.ops.items():
                sim.set(self.decoder.exec_fn, {"op_type": op_type, "funct3": funct3, "funct7": funct7})
                assert sim.get(self.decoder.decode_fn) == fn

            # not an ALU operation
            sim.set(self.decoder.exec_fn, {"op_type": OpType.BRANCH, "funct3": Funct3.BEQ, "funct7": 0})
            assert sim.get(self.decoder.decode_fn) == 0
            await sim.tick()

        with self.run_simulation(self.decoder) as sim:
            sim.add_testbench(process)

    def test_handles(self):
        assert AluFn().get_op_types() == {OpType.ARITHMETIC, OpType.COMPARE, OpType.LOGIC, OpType.SHIFT}
