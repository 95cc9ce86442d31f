from amaranth import *
from transactron import TModule
from pipeblocks.interface.layouts import RFLayouts
from pipeblocks.params import GenParams
from transactron.lib import logging

__all__ = ["RegisterFile"]

log = logging.HardwareLogger("core_structs.rf")


class RegisterFile(Elaboratable):
    """
    Architectural integer register file.

    Reads are combinational and see the value written in the same cycle.
    Register zero always reads as zero and is never written.

    Attributes
    ----------
    read_ids: list[Signal], in
        Register numbers for each read port.
    read_vals: list[Signal], out
        Read values for each read port.
    write: Signal(RFLayouts.rf_write), in
        The single write port.
    entries: Array
        Register contents.
    """

    def __init__(self, *, gen_params: GenParams, read_ports: int = 2):
        self.gen_params = gen_params

        layouts = gen_params.get(RFLayouts)
        xlen = gen_params.isa.xlen
        reg_cnt = gen_params.isa.reg_cnt

        self.entries = Array(Signal(xlen, name=f"x{k}") for k in range(reg_cnt))

        self.read_ids = [Signal(gen_params.isa.reg_cnt_log, name=f"read_id{k}") for k in range(read_ports)]
        self.read_vals = [Signal(xlen, name=f"read_val{k}") for k in range(read_ports)]
        self.write = Signal(layouts.rf_write)

    def elaborate(self, platform):
        m = TModule()

        for reg_id, reg_val in zip(self.read_ids, self.read_vals):
            forward = self.write.en & (self.write.reg_id == reg_id)
            with m.If(reg_id == 0):
                m.d.comb += reg_val.eq(0)
            with m.Elif(forward):
                m.d.comb += reg_val.eq(self.write.reg_val)
            with m.Else():
                m.d.comb += reg_val.eq(self.entries[reg_id])

        with m.If(self.write.en & (self.write.reg_id != 0)):
            m.d.sync += self.entries[self.write.reg_id].eq(self.write.reg_val)

        if self.gen_params.extra_verification:
            log.error(m, self.write.en & (self.write.reg_id == 0), "Write of 0x{:08x} to x0", self.write.reg_val)

        return m
