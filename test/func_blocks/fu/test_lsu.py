import random
from typing import Optional

from transactron.testing import TestCaseWithSimulator, TestbenchContext

from pipeblocks.arch import ExceptionCause, Funct3, OpType
from pipeblocks.func_blocks.fu.lsu import LSUAdapter
from pipeblocks.params import GenParams
from pipeblocks.params.configurations import test_core_config

from test.core_harness import Memory


class TestLSUAdapter(TestCaseWithSimulator):
    def setup_method(self):
        random.seed(42)
        self.gen_params = GenParams(test_core_config)
        self.lsu = LSUAdapter(self.gen_params)

        self.memory = Memory()
        self.memory.write(0x100, 0x8899AABB)
        self.memory.write(0x104, 0x11223344)
        self.faults = {0x200}
        self.requests: list[int] = []

    async def dmem_process(self, sim: TestbenchContext):
        resp: Optional[dict] = None
        wait = 0
        while True:
            respond = resp is not None and wait == 0
            sim.set(self.lsu.resp_valid, respond)
            if respond:
                sim.set(self.lsu.resp, resp)
                resp = None
            elif resp is not None:
                wait -= 1

            ready = random.random() < 0.5
            sim.set(self.lsu.req_ready, ready)
            *_, req_valid, req = await sim.tick().sample(self.lsu.req_valid, self.lsu.req)
            if ready and req_valid:
                assert resp is None
                self.requests.append(req.addr)
                base = req.addr & ~0b11
                wait = random.randrange(3)
                if base in self.faults:
                    cause = ExceptionCause.STORE_ACCESS_FAULT if req.store else ExceptionCause.LOAD_ACCESS_FAULT
                    resp = {"data": 0, "error": 1, "cause": cause}
                    continue
                if req.store:
                    for i in range(4):
                        if req.mask & (1 << i):
                            self.memory.write(base + i, req.data >> (8 * i), 1)
                resp = {"data": self.memory.read(base), "error": 0, "cause": 0}

    async def access(
        self, sim: TestbenchContext, op_type: OpType, funct3: Funct3, addr: int, data: int = 0
    ) -> tuple[int, Optional[tuple[ExceptionCause, int]]]:
        sim.set(self.lsu.exec_fn, {"op_type": op_type, "funct3": funct3, "funct7": 0})
        sim.set(self.lsu.addr, addr)
        sim.set(self.lsu.data, data)
        sim.set(self.lsu.issue, 1)
        while True:
            *_, ready = await sim.tick().sample(self.lsu.ready)
            if ready:
                break
        sim.set(self.lsu.issue, 0)

        sim.set(self.lsu.accept, 1)
        while True:
            *_, done, result, exception = await sim.tick().sample(self.lsu.done, self.lsu.result, self.lsu.exception)
            if done:
                break
        sim.set(self.lsu.accept, 0)

        if exception.valid:
            return result, (exception.cause, exception.value)
        return result, None

    def test_accesses(self):
        async def process(sim: TestbenchContext):
            assert await self.access(sim, OpType.LOAD, Funct3.W, 0x100) == (0x8899AABB, None)
            assert await self.access(sim, OpType.LOAD, Funct3.B, 0x101) == (0xFFFFFFAA, None)
            assert await self.access(sim, OpType.LOAD, Funct3.BU, 0x103) == (0x88, None)
            assert await self.access(sim, OpType.LOAD, Funct3.H, 0x102) == (0xFFFF8899, None)
            assert await self.access(sim, OpType.LOAD, Funct3.HU, 0x104) == (0x3344, None)

            assert await self.access(sim, OpType.STORE, Funct3.B, 0x105, 0x1234) == (0, None)
            assert await self.access(sim, OpType.STORE, Funct3.H, 0x102, 0xCAFE) == (0, None)
            assert self.memory.read(0x104) == 0x11223444
            assert self.memory.read(0x100) == 0xCAFEAABB

            assert await self.access(sim, OpType.STORE, Funct3.W, 0x108, 0xDEADBEEF) == (0, None)
            assert await self.access(sim, OpType.LOAD, Funct3.W, 0x108) == (0xDEADBEEF, None)

        with self.run_simulation(self.lsu) as sim:
            sim.add_testbench(self.dmem_process, background=True)
            sim.add_testbench(process)

    def test_exceptions(self):
        async def process(sim: TestbenchContext):
            assert await self.access(sim, OpType.LOAD, Funct3.W, 0x102) == (
                0,
                (ExceptionCause.LOAD_ADDRESS_MISALIGNED, 0x102),
            )
            assert await self.access(sim, OpType.STORE, Funct3.H, 0x101, 1) == (
                0,
                (ExceptionCause.STORE_ADDRESS_MISALIGNED, 0x101),
            )
            # misaligned accesses never reach the memory
            assert self.requests == []

            assert await self.access(sim, OpType.LOAD, Funct3.BU, 0x203) == (
                0,
                (ExceptionCause.LOAD_ACCESS_FAULT, 0x203),
            )
            assert await self.access(sim, OpType.STORE, Funct3.W, 0x200, 5) == (
                0,
                (ExceptionCause.STORE_ACCESS_FAULT, 0x200),
            )
            assert self.memory.read(0x200) == 0

        with self.run_simulation(self.lsu) as sim:
            sim.add_testbench(self.dmem_process, background=True)
            sim.add_testbench(process)
