import random

from amaranth.lib.data import StructLayout
from parameterized import parameterized_class

from transactron.testing import TestCaseWithSimulator, TestbenchContext

from pipeblocks.lib.pipeline import PipelineRegister


@parameterized_class(
    ("name", "valid_prob", "ready_prob", "flush_prob"),
    [
        ("full_throughput", 1.0, 1.0, 0.0),
        ("backpressure", 0.7, 0.4, 0.0),
        ("flushes", 0.7, 0.6, 0.1),
    ],
)
class TestPipelineRegister(TestCaseWithSimulator):
    valid_prob: float
    ready_prob: float
    flush_prob: float

    def setup_method(self):
        random.seed(42)
        self.layout = StructLayout({"payload": 16, "tag": 4})
        self.m = PipelineRegister(self.layout)
        self.cycles = 300

    def test_transfers(self):
        sent: list[int] = []
        received: list[int] = []
        dropped: list[int] = []

        async def process(sim: TestbenchContext):
            # reference model of the register
            valid = False
            stored = 0
            next_value = 0

            for _ in range(self.cycles):
                in_valid = random.random() < self.valid_prob
                out_ready = random.random() < self.ready_prob
                flush = random.random() < self.flush_prob

                sim.set(self.m.in_valid, in_valid)
                sim.set(self.m.in_data, {"payload": next_value, "tag": next_value % 16})
                sim.set(self.m.out_ready, out_ready)
                sim.set(self.m.flush, flush)

                assert sim.get(self.m.out_valid) == valid
                if valid:
                    out = sim.get(self.m.out_data)
                    assert out.payload == stored
                    assert out.tag == stored % 16

                in_ready = not valid or out_ready or flush
                assert sim.get(self.m.in_ready) == in_ready

                if valid and out_ready and not flush:
                    received.append(stored)
                elif valid and flush:
                    dropped.append(stored)

                if in_valid and in_ready:
                    sent.append(next_value)
                    if flush:
                        dropped.append(next_value)

                load = in_valid and in_ready and not flush
                if flush:
                    valid = False
                elif load:
                    valid = True
                    stored = next_value
                elif out_ready:
                    valid = False

                if in_valid and in_ready:
                    next_value += 1

                await sim.tick()

            if valid:
                dropped.append(stored)

        with self.run_simulation(self.m) as sim:
            sim.add_testbench(process)

        # nothing is duplicated or reordered
        assert received == sorted(received)
        assert sorted(received + dropped) == sent
        if self.flush_prob == 0:
            assert received == sent[: len(received)]
            assert len(dropped) <= 1
        if self.valid_prob == 1.0 and self.ready_prob == 1.0:
            assert len(received) == self.cycles - 1
