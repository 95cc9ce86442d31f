import random
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from amaranth.lib import data

from transactron.testing import TestCaseWithSimulator, TestbenchContext

from pipeblocks.arch import *
from pipeblocks.core import Core
from pipeblocks.interface.types import FetchReason, PipelineState
from pipeblocks.params import *
from pipeblocks.params.configurations import CoreConfiguration


def addi(rd: int, rs1: int, imm: int) -> int:
    return ITypeInstr(opcode=Opcode.OP_IMM, funct3=Funct3.ADD, rd=rd, rs1=rs1, imm=imm).encode()


def add(rd: int, rs1: int, rs2: int) -> int:
    return RTypeInstr(opcode=Opcode.OP, funct3=Funct3.ADD, funct7=Funct7.ADD, rd=rd, rs1=rs1, rs2=rs2).encode()


def sub(rd: int, rs1: int, rs2: int) -> int:
    return RTypeInstr(opcode=Opcode.OP, funct3=Funct3.SUB, funct7=Funct7.SUB, rd=rd, rs1=rs1, rs2=rs2).encode()


def mul(rd: int, rs1: int, rs2: int) -> int:
    return RTypeInstr(opcode=Opcode.OP, funct3=Funct3.MUL, funct7=Funct7.MULDIV, rd=rd, rs1=rs1, rs2=rs2).encode()


def div(rd: int, rs1: int, rs2: int) -> int:
    return RTypeInstr(opcode=Opcode.OP, funct3=Funct3.DIV, funct7=Funct7.MULDIV, rd=rd, rs1=rs1, rs2=rs2).encode()


def lui(rd: int, imm: int) -> int:
    return UTypeInstr(opcode=Opcode.LUI, rd=rd, imm=imm).encode()


def lw(rd: int, rs1: int, imm: int) -> int:
    return ITypeInstr(opcode=Opcode.LOAD, funct3=Funct3.W, rd=rd, rs1=rs1, imm=imm).encode()


def lbu(rd: int, rs1: int, imm: int) -> int:
    return ITypeInstr(opcode=Opcode.LOAD, funct3=Funct3.BU, rd=rd, rs1=rs1, imm=imm).encode()


def sw(rs2: int, rs1: int, imm: int) -> int:
    return STypeInstr(opcode=Opcode.STORE, funct3=Funct3.W, rs1=rs1, rs2=rs2, imm=imm).encode()


def sb(rs2: int, rs1: int, imm: int) -> int:
    return STypeInstr(opcode=Opcode.STORE, funct3=Funct3.B, rs1=rs1, rs2=rs2, imm=imm).encode()


def beq(rs1: int, rs2: int, imm: int) -> int:
    return BTypeInstr(opcode=Opcode.BRANCH, funct3=Funct3.BEQ, rs1=rs1, rs2=rs2, imm=imm).encode()


def bne(rs1: int, rs2: int, imm: int) -> int:
    return BTypeInstr(opcode=Opcode.BRANCH, funct3=Funct3.BNE, rs1=rs1, rs2=rs2, imm=imm).encode()


def jal(rd: int, imm: int) -> int:
    return JTypeInstr(opcode=Opcode.JAL, rd=rd, imm=imm).encode()


def jalr(rd: int, rs1: int, imm: int) -> int:
    return ITypeInstr(opcode=Opcode.JALR, funct3=Funct3.JALR, rd=rd, rs1=rs1, imm=imm).encode()


def csrrw(rd: int, csr: CSRAddress, rs1: int) -> int:
    return ITypeInstr(opcode=Opcode.SYSTEM, funct3=Funct3.CSRRW, rd=rd, rs1=rs1, imm=csr).encode()


def csrrs(rd: int, csr: CSRAddress, rs1: int) -> int:
    return ITypeInstr(opcode=Opcode.SYSTEM, funct3=Funct3.CSRRS, rd=rd, rs1=rs1, imm=csr).encode()


def csrrsi(rd: int, csr: CSRAddress, uimm: int) -> int:
    return ITypeInstr(opcode=Opcode.SYSTEM, funct3=Funct3.CSRRSI, rd=rd, rs1=uimm, imm=csr).encode()


def system(funct12: Funct12) -> int:
    return ITypeInstr(opcode=Opcode.SYSTEM, funct3=Funct3.PRIV, rd=0, rs1=0, imm=funct12).encode()


def fence_i() -> int:
    return ITypeInstr(opcode=Opcode.MISC_MEM, funct3=Funct3.FENCEI, rd=0, rs1=0, imm=0).encode()


def c_li(rd: int, imm: int) -> int:
    imm &= 0x3F
    return 0b010 << 13 | (imm >> 5) << 12 | rd << 7 | (imm & 0x1F) << 2 | 0b01


def c_addi(rd: int, imm: int) -> int:
    imm &= 0x3F
    return 0b000 << 13 | (imm >> 5) << 12 | rd << 7 | (imm & 0x1F) << 2 | 0b01


def c_beqz(rs1: int, imm: int) -> int:
    """`rs1` is one of x8-x15."""
    imm &= 0x1FF
    return (
        0b110 << 13
        | (imm >> 8 & 1) << 12
        | (imm >> 3 & 0b11) << 10
        | (rs1 - 8) << 7
        | (imm >> 6 & 0b11) << 5
        | (imm >> 1 & 0b11) << 3
        | (imm >> 5 & 1) << 2
        | 0b01
    )


def c_jal(imm: int) -> int:
    imm &= 0xFFF
    return (
        0b001 << 13
        | (imm >> 11 & 1) << 12
        | (imm >> 4 & 1) << 11
        | (imm >> 8 & 0b11) << 9
        | (imm >> 10 & 1) << 8
        | (imm >> 6 & 1) << 7
        | (imm >> 7 & 1) << 6
        | (imm >> 1 & 0b111) << 3
        | (imm >> 5 & 1) << 2
        | 0b01
    )


# jump to itself, keeps the core busy after a test program ends
LOOP = jal(0, 0)


class Memory:
    """Sparse little-endian byte memory, reads of unwritten bytes give zero."""

    def __init__(self):
        self.bytes: dict[int, int] = {}

    def write(self, addr: int, value: int, size: int = 4):
        for i in range(size):
            self.bytes[addr + i] = (value >> (8 * i)) & 0xFF

    def read(self, addr: int, size: int = 4) -> int:
        return sum(self.bytes.get(addr + i, 0) << (8 * i) for i in range(size))

    def place(self, addr: int, words: Iterable[int]):
        for i, word in enumerate(words):
            self.write(addr + 4 * i, word)

    def place_code(self, addr: int, instrs: Iterable[int]):
        """Places instructions back to back, compressed ones take two bytes."""
        for instr in instrs:
            size = 4 if instr & 0b11 == 0b11 else 2
            self.write(addr, instr, size)
            addr += size


@dataclass
class Commit:
    pc: int
    rd: int
    rd_we: bool
    value: int
    trap: bool = False
    interrupt: bool = False
    code: int = 0


class CoreTestCase(TestCaseWithSimulator):
    """
    Runs a core against instruction and data memory models and records
    committed instructions, fetch redirects and the squash control states
    the core goes through.

    Both memories answer a request after a random number of cycles, at
    least one, and the data memory randomly withholds `req_ready`.
    """

    mem_latency = 1
    data_ready_prob = 1.0

    def setup_core(
        self,
        config: CoreConfiguration,
        memory: Memory,
        *,
        fetch_faults: Iterable[int] = (),
        data_faults: Iterable[int] = (),
    ):
        self.gen_params = GenParams(config)
        self.core = Core(gen_params=self.gen_params)
        self.memory = memory
        self.fetch_faults = set(fetch_faults)
        self.data_faults = set(data_faults)
        self.commits: list[Commit] = []
        self.fetched: list[int] = []
        self.regs: list[int] = []
        self.redirects: list[tuple[int, FetchReason]] = []
        self.states: list[PipelineState] = []

    def fetch_response(self, addr: int) -> dict:
        self.fetched.append(addr)
        error = addr in self.fetch_faults
        return {
            "instr": 0 if error else self.memory.read(addr, 4),
            "addr": addr,
            "error": int(error),
            "cause": ExceptionCause.INSTRUCTION_PAGE_FAULT,
        }

    def data_access(self, req: "data.Const") -> dict:
        base = req.addr & ~0b11
        if base in self.data_faults:
            cause = ExceptionCause.STORE_ACCESS_FAULT if req.store else ExceptionCause.LOAD_ACCESS_FAULT
            return {"data": 0, "error": 1, "cause": cause}
        if req.store:
            for i in range(4):
                if req.mask & (1 << i):
                    self.memory.write(base + i, req.data >> (8 * i), 1)
            return {"data": 0, "error": 0, "cause": ExceptionCause.INSTRUCTION_ADDRESS_MISALIGNED}
        return {"data": self.memory.read(base, 4), "error": 0, "cause": ExceptionCause.INSTRUCTION_ADDRESS_MISALIGNED}

    async def imem_process(self, sim: TestbenchContext):
        port = self.core.imem
        sim.set(port.req_ready, 1)
        resp: Optional[dict] = None
        wait = 0
        while True:
            respond = resp is not None and wait == 0
            sim.set(port.resp_valid, respond)
            if respond:
                sim.set(port.resp, resp)
                resp = None
            elif resp is not None:
                wait -= 1

            *_, req_valid, addr = await sim.tick().sample(port.req_valid, port.req.addr)
            if req_valid:
                assert resp is None
                resp = self.fetch_response(addr)
                wait = random.randrange(self.mem_latency)

    async def dmem_process(self, sim: TestbenchContext):
        port = self.core.dmem
        resp: Optional[dict] = None
        wait = 0
        while True:
            respond = resp is not None and wait == 0
            sim.set(port.resp_valid, respond)
            if respond:
                sim.set(port.resp, resp)
                resp = None
            elif resp is not None:
                wait -= 1

            ready = random.random() < self.data_ready_prob
            sim.set(port.req_ready, ready)
            *_, req_valid, req = await sim.tick().sample(port.req_valid, port.req)
            if ready and req_valid:
                assert resp is None
                resp = self.data_access(req)
                wait = random.randrange(self.mem_latency)

    async def flush_process(self, sim: TestbenchContext):
        sim.set(self.core.flush.ready, 1)

    def commit_process(self, stop: Callable[[], bool]):
        async def process(sim: TestbenchContext):
            while not stop():
                *_, commit, redirect, state = await sim.tick().sample(
                    self.core.commit, self.core.fetch_redirect, self.core.squash.state
                )
                if redirect.valid:
                    self.redirects.append((redirect.target, FetchReason(redirect.reason)))
                if not self.states or self.states[-1] != state:
                    self.states.append(PipelineState(state))
                if commit.commit:
                    self.commits.append(
                        Commit(
                            pc=commit.pc,
                            rd=commit.rd,
                            rd_we=bool(commit.rd_we),
                            value=commit.value,
                            trap=bool(commit.trap.valid),
                            interrupt=bool(commit.trap.interrupt),
                            code=commit.trap.code,
                        )
                    )

            # the register write of the last commit happened at the sampled edge
            self.regs = [sim.get(self.core.RF.entries[k]) for k in range(self.gen_params.isa.reg_cnt)]

        return process

    def run_core(self, count: int, *extra_testbenches, max_cycles: int = 3000):
        self.run_core_until(lambda: len(self.commits) >= count, *extra_testbenches, max_cycles=max_cycles)

    def run_core_until(self, stop: Callable[[], bool], *extra_testbenches, max_cycles: int = 3000):
        with self.run_simulation(self.core, max_cycles=max_cycles) as sim:
            sim.add_testbench(self.imem_process, background=True)
            sim.add_testbench(self.dmem_process, background=True)
            sim.add_testbench(self.flush_process)
            for testbench in extra_testbenches:
                sim.add_testbench(testbench, background=True)
            sim.add_testbench(self.commit_process(stop))

    def committed_pcs(self) -> list[int]:
        return [commit.pc for commit in self.commits]
