from __future__ import annotations

from pipeblocks.arch.isa import ISA, Extension, gen_isa_string
from transactron.utils import DependentCache

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .configurations import CoreConfiguration

__all__ = ["GenParams"]


class GenParams(DependentCache):
    def __init__(self, cfg: CoreConfiguration):
        super().__init__()

        if cfg.xlen != 32:
            raise ValueError(f"Unsupported XLEN {cfg.xlen}")
        if cfg.supervisor_mode and not cfg.user_mode:
            raise ValueError("Supervisor mode requires user mode")
        if cfg.div_ipc < 1:
            raise ValueError("Divider must compute at least one quotient bit per cycle")

        extensions = Extension.I | Extension.ZICSR | Extension.ZIFENCEI | Extension.XINTMACHINEMODE
        if cfg.mul_div:
            extensions |= Extension.M
        if cfg.compressed:
            extensions |= Extension.C
        if cfg.supervisor_mode:
            extensions |= Extension.XINTSUPERVISOR

        self.isa_str = gen_isa_string(extensions, cfg.xlen)
        self.isa = ISA(self.isa_str)

        self.min_instr_width_bytes = 2 if cfg.compressed else 4

        if cfg.start_pc % self.min_instr_width_bytes:
            raise ValueError(f"Start address 0x{cfg.start_pc:x} is not aligned to an instruction boundary")
        if cfg.mtvec_reset % 4:
            raise ValueError(f"Trap vector 0x{cfg.mtvec_reset:x} is not aligned to four bytes")

        self.start_pc = cfg.start_pc
        self.mtvec_reset = cfg.mtvec_reset

        self.mul_type = cfg.mul_type
        self.div_ipc = cfg.div_ipc

        self.user_mode = cfg.user_mode
        self.supervisor_mode = cfg.supervisor_mode

        self.mvendorid = cfg.mvendorid
        self.marchid = cfg.marchid
        self.mimpid = cfg.mimpid
        self.mhartid = cfg.mhartid

        self.extra_verification = cfg.extra_verification
