from enum import IntFlag
from typing import Sequence, Type

from amaranth import *

from pipeblocks.params import GenParams
from pipeblocks.arch.optypes import OpType
from pipeblocks.interface.layouts import CommonLayoutFields

__all__ = ["Decoder", "DecoderManager"]


class Decoder(Elaboratable):
    """
    Maps the `exec_fn` of a decoded instruction to a one-hot function of a unit.

    Each entry of `ops` is `(fn, op_type, funct3, funct7)`, where `funct3` and
    `funct7` may be left out when the function doesn't depend on them. The
    operation type is compared only when the entries have more than one.

    Attributes
    ----------
    exec_fn: Signal(exec_fn_layout), in
    decode_fn: Signal(decode_fn), out
        Bit of the matching entry is set, all zeros for an unknown function.
    """

    def __init__(self, gen_params: GenParams, decode_fn: Type[IntFlag], ops: Sequence[tuple], check_optype: bool):
        self.exec_fn = Signal(gen_params.get(CommonLayoutFields).exec_fn_layout)
        self.decode_fn = Signal(decode_fn)
        self.ops = ops
        self.check_optype = check_optype

    def matches(self, op: tuple) -> Value:
        fn, op_type, *functs = op
        cond = C(1)
        if self.check_optype:
            cond &= self.exec_fn.op_type == op_type
        for field, value in zip(("funct3", "funct7"), functs):
            cond &= getattr(self.exec_fn, field) == value
        return cond

    def elaborate(self, platform):
        m = Module()

        for op in self.ops:
            m.d.comb += self.decode_fn[op[0].bit_length() - 1].eq(self.matches(op))

        return m


class DecoderManager:
    """Instruction set of a functional unit."""

    Fn: Type[IntFlag]

    def get_instructions(self) -> Sequence[tuple]:
        """Entries in the `Decoder` format, `(fn, op_type, funct3, funct7)`."""
        raise NotImplementedError

    def get_op_types(self) -> set[OpType]:
        return {instr[1] for instr in self.get_instructions()}

    def handles(self, op_type: Value) -> Value:
        """One when an instruction of operation type `op_type` goes to this unit."""
        result = C(0)
        for t in self.get_op_types():
            result = result | (op_type == t)
        return result

    def get_decoder(self, gen_params: GenParams) -> Decoder:
        return Decoder(gen_params, self.Fn, self.get_instructions(), check_optype=len(self.get_op_types()) > 1)

    def get_function(self) -> Signal:
        return Signal(self.Fn)
