from amaranth import *
from amaranth.lib.enum import Enum

from typing import Optional

from pipeblocks.params import GenParams
from transactron import TModule
from amaranth_types import ValueLike


class CSRRegister:
    """CSR Register
    Storage of a single CSR with read-only bits.

    Instruction writes change only the bits not listed in `ro_bits`. Other
    hardware (trap entry, counters) writes `value` directly.

    Attributes
    ----------
    csr_number: Optional[int]
        Address of this CSR Register. `None` for registers accessible only through other CSRs.
    value: Signal
        Current register value.
    """

    def __init__(
        self,
        csr_number: Optional[int],
        gen_params: GenParams,
        *,
        width: Optional[int] = None,
        ro_bits: int = 0,
        init: int | Enum = 0,
        name: Optional[str] = None,
    ):
        """
        Parameters
        ----------
        csr_number: Optional[int]
            Address of this CSR Register.
        gen_params: GenParams
            Core generation parameters.
        width: Optional[int]
            Width of CSR register. Defaults to `xlen`.
        ro_bits: int
            Bit mask of read-only bits in register.
            Writes from instructions to those bits are ignored.
        init: int | Enum
            Reset value of CSR.
        name: Optional[str]
            Name of the storage signal.
        """
        self.gen_params = gen_params
        self.csr_number = csr_number
        self.width = width if width is not None else gen_params.isa.xlen
        self.ro_bits = ro_bits

        self.value = Signal(self.width, init=init, name=name)

    def fu_read(self) -> Value:
        return self.value

    def fu_write(self, m: TModule, data: ValueLike):
        data = Value.cast(data)[: self.width]
        if self.ro_bits == 0:
            m.d.sync += self.value.eq(data)
        else:
            ro = C(self.ro_bits, self.width)
            m.d.sync += self.value.eq((data & ~ro) | (self.value & ro))
