import random

from parameterized import parameterized_class

from transactron.utils import signed_to_int

from pipeblocks.arch import Funct3, OpType
from pipeblocks.func_blocks.fu.mul_unit import MulFn, MulUnit, MulType
from pipeblocks.params import GenParams
from pipeblocks.params.configurations import test_core_config

from test.func_blocks.fu.functional_common import ExecFn, FunctionalUnitTestCase


def compute_result(fn: MulFn.Fn, i1: int, i2: int) -> int:
    s1, s2 = signed_to_int(i1, 32), signed_to_int(i2, 32)
    match fn:
        case MulFn.Fn.MUL:
            res = i1 * i2
        case MulFn.Fn.MULH:
            res = (s1 * s2) >> 32
        case MulFn.Fn.MULHU:
            res = (i1 * i2) >> 32
        case MulFn.Fn.MULHSU:
            res = (s1 * i2) >> 32
    return res & 0xFFFFFFFF


@parameterized_class(
    ("name", "mul_type"),
    [
        ("shift", MulType.SHIFT_MUL),
        ("direct", MulType.DIRECT_MUL),
    ],
)
class TestMulUnit(FunctionalUnitTestCase):
    mul_type: MulType

    ops = {
        MulFn.Fn.MUL: ExecFn(OpType.MUL, Funct3.MUL),
        MulFn.Fn.MULH: ExecFn(OpType.MUL, Funct3.MULH),
        MulFn.Fn.MULHU: ExecFn(OpType.MUL, Funct3.MULHU),
        MulFn.Fn.MULHSU: ExecFn(OpType.MUL, Funct3.MULHSU),
    }

    def test_random(self):
        random.seed(42)
        gen_params = GenParams(test_core_config.replace(mul_type=self.mul_type))
        unit = MulUnit(gen_params, self.mul_type)

        values = [0, 1, 2**31 - 1, 2**31, 2**32 - 1]
        operations = []
        for _ in range(60):
            fn = random.choice(list(self.ops))
            i1 = random.choice(values + [random.randrange(2**32)])
            i2 = random.choice(values + [random.randrange(2**32)])
            operations.append((fn, i1, i2))

        self.run_unit(
            unit,
            [(self.ops[fn], i1, i2) for fn, i1, i2 in operations],
            [compute_result(fn, i1, i2) for fn, i1, i2 in operations],
        )
