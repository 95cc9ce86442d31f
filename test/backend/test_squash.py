from transactron.testing import TestCaseWithSimulator, TestbenchContext

from pipeblocks.backend.squash import SquashControl
from pipeblocks.interface.types import FetchReason, PipelineState
from pipeblocks.params import GenParams
from pipeblocks.params.configurations import test_core_config


class TestSquashControl(TestCaseWithSimulator):
    def setup_method(self):
        self.gen_params = GenParams(test_core_config.replace(start_pc=0x1000))
        self.m = SquashControl(self.gen_params)

    def offer(self, sim: TestbenchContext, pc: int, reason: FetchReason) -> bool:
        sim.set(self.m.pc, pc)
        sim.set(self.m.reason, reason)
        return bool(sim.get(self.m.gate))

    async def issue(self, sim: TestbenchContext, pc: int, reason: FetchReason, npc: int, mispredict: bool = False):
        assert self.offer(sim, pc, reason)
        sim.set(self.m.issue, 1)
        sim.set(self.m.npc, npc)
        sim.set(self.m.mispredict, mispredict)
        await sim.tick()
        sim.set(self.m.issue, 0)
        sim.set(self.m.mispredict, 0)

    def test_reset_waits_for_redirect(self):
        async def process(sim: TestbenchContext):
            assert sim.get(self.m.state) == PipelineState.MISPREDICT_DRAIN
            assert sim.get(self.m.expected_pc) == 0x1000

            assert not self.offer(sim, 0x1000, FetchReason.PREFETCH)
            assert not self.offer(sim, 0x1000, FetchReason.PREDICT)
            assert self.offer(sim, 0x1000, FetchReason.MISPREDICT)
            assert self.offer(sim, 0x1000, FetchReason.FENCE_I)
            assert self.offer(sim, 0x1000, FetchReason.EXCEPTION)

            # dropped instructions leave the state unchanged
            await sim.tick()
            assert sim.get(self.m.state) == PipelineState.MISPREDICT_DRAIN

        with self.run_simulation(self.m) as sim:
            sim.add_testbench(process)

    def test_normal_follows_expected_pc(self):
        async def process(sim: TestbenchContext):
            await self.issue(sim, 0x1000, FetchReason.MISPREDICT, 0x1004)
            assert sim.get(self.m.state) == PipelineState.NORMAL
            assert sim.get(self.m.expected_pc) == 0x1004

            assert not self.offer(sim, 0x1008, FetchReason.PREFETCH)
            # the fetch reason does not matter in normal state
            assert self.offer(sim, 0x1004, FetchReason.PREDICT)
            assert self.offer(sim, 0x1004, FetchReason.PREFETCH)

            await self.issue(sim, 0x1004, FetchReason.PREFETCH, 0x2000)
            assert sim.get(self.m.state) == PipelineState.NORMAL
            assert sim.get(self.m.expected_pc) == 0x2000
            assert not self.offer(sim, 0x1008, FetchReason.PREFETCH)
            assert self.offer(sim, 0x2000, FetchReason.PREDICT)

        with self.run_simulation(self.m) as sim:
            sim.add_testbench(process)

    def test_mispredict(self):
        async def process(sim: TestbenchContext):
            await self.issue(sim, 0x1000, FetchReason.MISPREDICT, 0x1004)
            await self.issue(sim, 0x1004, FetchReason.PREFETCH, 0x1100, mispredict=True)

            assert sim.get(self.m.state) == PipelineState.MISPREDICT_DRAIN
            assert sim.get(self.m.expected_pc) == 0x1100

            # wrong-path instructions, even at the right address
            assert not self.offer(sim, 0x1008, FetchReason.PREFETCH)
            assert not self.offer(sim, 0x1100, FetchReason.PREDICT)
            await sim.tick()

            await self.issue(sim, 0x1100, FetchReason.MISPREDICT, 0x1104)
            assert sim.get(self.m.state) == PipelineState.NORMAL

        with self.run_simulation(self.m) as sim:
            sim.add_testbench(process)

    def test_trap(self):
        async def process(sim: TestbenchContext):
            await self.issue(sim, 0x1000, FetchReason.MISPREDICT, 0x1004)

            sim.set(self.m.trap, 1)
            sim.set(self.m.trap_vector, 0x8000)
            # the instruction behind a committing trap never issues
            assert not self.offer(sim, 0x1004, FetchReason.PREFETCH)
            await sim.tick()
            sim.set(self.m.trap, 0)

            assert sim.get(self.m.state) == PipelineState.EXCEPTION_DRAIN
            assert sim.get(self.m.expected_pc) == 0x8000

            assert not self.offer(sim, 0x1008, FetchReason.PREFETCH)
            # a misprediction redirect raised before the trap
            assert not self.offer(sim, 0x2000, FetchReason.MISPREDICT)
            assert self.offer(sim, 0x8000, FetchReason.EXCEPTION)

            await self.issue(sim, 0x8000, FetchReason.EXCEPTION, 0x8004)
            assert sim.get(self.m.state) == PipelineState.NORMAL
            assert sim.get(self.m.expected_pc) == 0x8004

        with self.run_simulation(self.m) as sim:
            sim.add_testbench(process)

    def test_redirect(self):
        async def process(sim: TestbenchContext):
            await self.issue(sim, 0x1000, FetchReason.MISPREDICT, 0x1004)

            sim.set(self.m.redirect, 1)
            sim.set(self.m.redirect_target, 0x1004)
            assert not self.offer(sim, 0x1004, FetchReason.PREFETCH)
            await sim.tick()
            sim.set(self.m.redirect, 0)

            assert sim.get(self.m.state) == PipelineState.MISPREDICT_DRAIN
            assert sim.get(self.m.expected_pc) == 0x1004
            assert not self.offer(sim, 0x1004, FetchReason.PREFETCH)
            assert self.offer(sim, 0x1004, FetchReason.FENCE_I)

        with self.run_simulation(self.m) as sim:
            sim.add_testbench(process)

    def test_trap_overrides_redirect(self):
        async def process(sim: TestbenchContext):
            sim.set(self.m.redirect, 1)
            sim.set(self.m.redirect_target, 0x1004)
            sim.set(self.m.trap, 1)
            sim.set(self.m.trap_vector, 0x8000)
            await sim.tick()

            assert sim.get(self.m.state) == PipelineState.EXCEPTION_DRAIN
            assert sim.get(self.m.expected_pc) == 0x8000

        with self.run_simulation(self.m) as sim:
            sim.add_testbench(process)
