import random

from parameterized import parameterized_class

from transactron.utils import signed_to_int

from pipeblocks.arch import Funct3, OpType
from pipeblocks.func_blocks.fu.div_unit import DivFn, DivUnit
from pipeblocks.params import GenParams
from pipeblocks.params.configurations import test_core_config

from test.func_blocks.fu.functional_common import ExecFn, FunctionalUnitTestCase


def compute_result(fn: DivFn.Fn, i1: int, i2: int) -> int:
    s1, s2 = signed_to_int(i1, 32), signed_to_int(i2, 32)
    match fn:
        case DivFn.Fn.DIVU:
            res = i1 // i2 if i2 else 2**32 - 1
        case DivFn.Fn.REMU:
            res = i1 % i2 if i2 else i1
        case DivFn.Fn.DIV:
            if s2 == 0:
                res = -1
            else:
                # rounds towards zero
                res = abs(s1) // abs(s2)
                if (s1 < 0) != (s2 < 0):
                    res = -res
        case DivFn.Fn.REM:
            if s2 == 0:
                res = s1
            else:
                res = abs(s1) % abs(s2)
                if s1 < 0:
                    res = -res
    return res & 0xFFFFFFFF


@parameterized_class(
    ("name", "ipc"),
    [
        ("ipc1", 1),
        ("ipc3", 3),
        ("ipc4", 4),
    ],
)
class TestDivUnit(FunctionalUnitTestCase):
    ipc: int

    ops = {
        DivFn.Fn.DIV: ExecFn(OpType.DIV_REM, Funct3.DIV),
        DivFn.Fn.DIVU: ExecFn(OpType.DIV_REM, Funct3.DIVU),
        DivFn.Fn.REM: ExecFn(OpType.DIV_REM, Funct3.REM),
        DivFn.Fn.REMU: ExecFn(OpType.DIV_REM, Funct3.REMU),
    }

    def test_random(self):
        random.seed(42)
        gen_params = GenParams(test_core_config.replace(div_ipc=self.ipc))
        unit = DivUnit(gen_params, self.ipc)

        values = [0, 1, 3, 2**31 - 1, 2**31, 2**32 - 1]
        operations = []
        for fn in self.ops:
            # division by zero and signed overflow
            operations += [(fn, 7, 0), (fn, 2**31, 0), (fn, 2**31, 2**32 - 1)]
        for _ in range(40):
            fn = random.choice(list(self.ops))
            i1 = random.choice(values + [random.randrange(2**32)])
            i2 = random.choice(values + [random.randrange(2**32)])
            operations.append((fn, i1, i2))

        self.run_unit(
            unit,
            [(self.ops[fn], i1, i2) for fn, i1, i2 in operations],
            [compute_result(fn, i1, i2) for fn, i1, i2 in operations],
        )
