from typing import Optional

from amaranth import *

from transactron import TModule
from transactron.testing import TestCaseWithSimulator, TestbenchContext

from pipeblocks.arch import *
from pipeblocks.core_structs.rf import RegisterFile
from pipeblocks.frontend.decoder.decode_stage import DecodeStage
from pipeblocks.interface.types import FetchReason
from pipeblocks.params import *
from pipeblocks.params.configurations import test_core_config

from test.core_harness import addi, add, csrrs, system


class DecodeCircuit(Elaboratable):
    def __init__(self, gen_params: GenParams):
        self.rf = RegisterFile(gen_params=gen_params)
        self.stage = DecodeStage(gen_params, self.rf)

    def elaborate(self, platform):
        m = TModule()

        m.submodules.rf = self.rf
        m.submodules.stage = self.stage

        return m


class TestDecodeStage(TestCaseWithSimulator):
    def setup_method(self):
        self.gen_params = GenParams(test_core_config)
        self.m = DecodeCircuit(self.gen_params)
        self.stage = self.m.stage

    async def write_reg(self, sim: TestbenchContext, reg: int, value: int):
        sim.set(self.m.rf.write, {"en": 1, "reg_id": reg, "reg_val": value})
        sim.set(self.stage.rf_write, {"en": 1, "reg_id": reg, "reg_val": value})
        await sim.tick()
        sim.set(self.m.rf.write.en, 0)
        sim.set(self.stage.rf_write.en, 0)

    async def decode(
        self,
        sim: TestbenchContext,
        instr: int,
        *,
        pc: int = 0x1000,
        prv: PrivilegeLevel = PrivilegeLevel.MACHINE,
        fetch_exception: Optional[ExceptionCause] = None,
    ):
        sim.set(self.stage.status, {"prv": prv})
        sim.set(
            self.stage.fetched,
            {
                "pc": pc,
                "instr": instr,
                "reason": FetchReason.PREFETCH,
                "exception": {
                    "valid": fetch_exception is not None,
                    "cause": fetch_exception or ExceptionCause.INSTRUCTION_ADDRESS_MISALIGNED,
                    "value": pc,
                },
            },
        )
        sim.set(self.stage.in_valid, 1)
        sim.set(self.stage.out_ready, 1)
        assert sim.get(self.stage.in_ready)
        await sim.tick()
        sim.set(self.stage.in_valid, 0)
        sim.set(self.stage.out_ready, 0)
        assert sim.get(self.stage.out_valid)
        return sim.get(self.stage.out)

    def run(self, process):
        with self.run_simulation(self.m) as sim:
            sim.add_testbench(process)

    def test_operands(self):
        async def process(sim: TestbenchContext):
            await self.write_reg(sim, 2, 40)
            await self.write_reg(sim, 3, 2)

            out = await self.decode(sim, add(1, 2, 3), pc=0x1234)
            assert out.pc == 0x1234
            assert out.exec_fn.op_type == OpType.ARITHMETIC
            assert out.regs.rl_dst == 1 and out.regs.rl_dst_v
            assert out.regs.rl_s1 == 2 and out.regs.rl_s2 == 3
            assert out.s1_val == 40
            assert out.s2_val == 2
            assert not out.exception.valid
            assert not out.rvc

            # a commit to a source register while the instruction waits
            await self.write_reg(sim, 3, 5)
            out = sim.get(self.stage.out)
            assert out.s1_val == 40
            assert out.s2_val == 5

            # unused second operand reads register zero
            out = await self.decode(sim, addi(4, 2, -1))
            assert not out.regs.rl_s2_v
            assert out.regs.rl_s2 == 0
            assert out.s2_val == 0
            assert out.imm == 0xFFFFFFFF
            assert out.exec_fn.funct7 == 0

        self.run(process)

    def test_exceptions(self):
        async def process(sim: TestbenchContext):
            out = await self.decode(sim, IllegalInstr().encode())
            assert out.exception.valid
            assert out.exception.cause == ExceptionCause.ILLEGAL_INSTRUCTION
            assert out.exception.value == IllegalInstr().encode()
            assert not out.regs.rl_dst_v

            # illegal compressed instruction (c.lwsp x0) reports its own 16 bits
            out = await self.decode(sim, 0x12344002)
            assert out.rvc
            assert out.exception.cause == ExceptionCause.ILLEGAL_INSTRUCTION
            assert out.exception.value == 0x4002

            # fetch faults win over decoding problems
            out = await self.decode(
                sim, IllegalInstr().encode(), pc=0x2000, fetch_exception=ExceptionCause.INSTRUCTION_PAGE_FAULT
            )
            assert out.exception.cause == ExceptionCause.INSTRUCTION_PAGE_FAULT
            assert out.exception.value == 0x2000

            out = await self.decode(sim, system(Funct12.EBREAK), pc=0x3000)
            assert out.exception.cause == ExceptionCause.BREAKPOINT
            assert out.exception.value == 0x3000

            for prv, cause in [
                (PrivilegeLevel.USER, ExceptionCause.ENVIRONMENT_CALL_FROM_U),
                (PrivilegeLevel.SUPERVISOR, ExceptionCause.ENVIRONMENT_CALL_FROM_S),
                (PrivilegeLevel.MACHINE, ExceptionCause.ENVIRONMENT_CALL_FROM_M),
            ]:
                out = await self.decode(sim, system(Funct12.ECALL), prv=prv)
                assert out.exception.valid
                assert out.exception.cause == cause

        self.run(process)

    def test_privilege(self):
        async def process(sim: TestbenchContext):
            out = await self.decode(sim, system(Funct12.MRET), prv=PrivilegeLevel.USER)
            assert out.exception.cause == ExceptionCause.ILLEGAL_INSTRUCTION
            out = await self.decode(sim, system(Funct12.MRET), prv=PrivilegeLevel.MACHINE)
            assert not out.exception.valid
            assert out.exec_fn.op_type == OpType.MRET

            out = await self.decode(sim, system(Funct12.SRET), prv=PrivilegeLevel.USER)
            assert out.exception.valid
            out = await self.decode(sim, system(Funct12.SRET), prv=PrivilegeLevel.SUPERVISOR)
            assert not out.exception.valid

            out = await self.decode(sim, csrrs(1, CSRAddress.MSCRATCH, 0), prv=PrivilegeLevel.USER)
            assert out.exception.cause == ExceptionCause.ILLEGAL_INSTRUCTION
            out = await self.decode(sim, csrrs(1, CSRAddress.MSCRATCH, 0), prv=PrivilegeLevel.MACHINE)
            assert not out.exception.valid
            assert not out.csr_we
            assert out.csr == CSRAddress.MSCRATCH

            out = await self.decode(sim, csrrs(1, CSRAddress.MSCRATCH, 2), prv=PrivilegeLevel.MACHINE)
            assert out.csr_we

        self.run(process)

    def test_flush(self):
        async def process(sim: TestbenchContext):
            await self.decode(sim, addi(1, 0, 1))

            sim.set(self.stage.flush, 1)
            sim.set(self.stage.in_valid, 1)
            # the offered instruction is consumed and dropped
            assert sim.get(self.stage.in_ready)
            await sim.tick()
            sim.set(self.stage.flush, 0)
            sim.set(self.stage.in_valid, 0)

            assert not sim.get(self.stage.out_valid)

        self.run(process)
