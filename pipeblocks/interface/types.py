from amaranth import *
from amaranth.lib.enum import unique, IntEnum

from amaranth_types import ValueLike

__all__ = ["FetchReason", "PipelineState", "FuSelect"]


@unique
class FetchReason(IntEnum, shape=4):
    """
    Reason of an instruction fetch, attached to every fetch request and
    carried with the fetched instruction.

    The lowest bit distinguishes architectural redirects from the default,
    speculative reasons (sequential prefetch and predicted jumps), so it is
    sufficient to check it to know if an instruction is the first one
    fetched from a redirect target.
    """

    PREFETCH = 0b0000  # Sequential fetch
    PREDICT = 0b0010  # Target of a jump predicted taken
    MISPREDICT = 0b0001  # Next PC computed by the execute stage differed from the predicted one
    PROT_CHANGED = 0b0011  # Privilege or memory protection changed
    SATP_CHANGED = 0b0101  # Address translation changed
    FENCE_I = 0b0111  # Instruction memory fence
    EXCEPTION = 0b1001  # Trap vector

    @staticmethod
    def is_redirect(val: ValueLike) -> Value:
        return Value.cast(val)[0]


@unique
class PipelineState(IntEnum, shape=2):
    """
    Issue state of the execute pipeline.
    """

    NORMAL = 0  # Only the instruction at the expected PC may issue
    MISPREDICT_DRAIN = 1  # Waiting for the first instruction from a redirect target
    EXCEPTION_DRAIN = 2  # Waiting for the first instruction from the trap vector


@unique
class FuSelect(IntEnum, shape=3):
    """
    Unit whose completion execute-2 waits for before committing an instruction.
    """

    ALU = 0  # Result computed by execute-1, completes immediately
    MEM = 1
    MUL = 2
    DIV = 3
    CSR = 4
    WFI = 5  # Completes when an interrupt is pending
    FLUSH = 6  # Completes when the maintenance notification is acknowledged
    TRAP = 7  # Commits as a trap, completes immediately
