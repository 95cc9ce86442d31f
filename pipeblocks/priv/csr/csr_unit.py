from functools import reduce
from operator import or_

from amaranth import *
from amaranth.lib.data import View

from transactron import TModule
from transactron.lib import logging
from amaranth_types import ValueLike

from pipeblocks.params import GenParams
from pipeblocks.arch import (
    CSRAddress,
    Extension,
    Funct3,
    InterruptCauseNumber,
    MstatusFieldOffsets,
    PrivilegeLevel,
    TrapVectorMode,
)
from pipeblocks.interface.layouts import CommonLayoutFields, CSRUnitLayouts
from pipeblocks.priv.csr.csr_register import CSRRegister

__all__ = ["CSRUnit", "implemented_csrs", "csr_access_illegal"]


log = logging.HardwareLogger("priv.csr")


def implemented_csrs(gen_params: GenParams) -> list[CSRAddress]:
    """Addresses of the CSRs present in a core generated with `gen_params`."""
    csrs = [
        CSRAddress.CYCLE,
        CSRAddress.CYCLEH,
        CSRAddress.INSTRET,
        CSRAddress.INSTRETH,
        CSRAddress.MVENDORID,
        CSRAddress.MARCHID,
        CSRAddress.MIMPID,
        CSRAddress.MHARTID,
        CSRAddress.MSTATUS,
        CSRAddress.MISA,
        CSRAddress.MIE,
        CSRAddress.MTVEC,
        CSRAddress.MSCRATCH,
        CSRAddress.MEPC,
        CSRAddress.MCAUSE,
        CSRAddress.MTVAL,
        CSRAddress.MIP,
        CSRAddress.MCYCLE,
        CSRAddress.MCYCLEH,
        CSRAddress.MINSTRET,
        CSRAddress.MINSTRETH,
    ]
    if gen_params.supervisor_mode:
        csrs += [
            CSRAddress.SSTATUS,
            CSRAddress.SIE,
            CSRAddress.STVEC,
            CSRAddress.SSCRATCH,
            CSRAddress.SEPC,
            CSRAddress.SCAUSE,
            CSRAddress.STVAL,
            CSRAddress.SIP,
            CSRAddress.SATP,
        ]
    return csrs


def csr_access_illegal(gen_params: GenParams, addr: Value, we: ValueLike, status: View) -> Value:
    """Checks if a CSR instruction must raise an illegal instruction exception.

    Parameters
    ----------
    gen_params: GenParams
        Core generation parameters.
    addr: Value
        Accessed CSR address.
    we: ValueLike
        The instruction writes the CSR.
    status: View
        Decoder status, as in `DecodeLayouts.status`.
    """
    implemented = reduce(or_, [addr == csr for csr in implemented_csrs(gen_params)])
    # addr[8:10] is the lowest privilege level allowed to access the CSR, addr[10:12] == 0b11 marks read-only CSRs
    privilege_too_low = addr[8:10] > Value.cast(status.prv)
    read_only_write = Value.cast(we) & (addr[10:12] == 0b11)
    trapped_satp = (
        (addr == CSRAddress.SATP) & status.tvm & (status.prv == PrivilegeLevel.SUPERVISOR)
        if gen_params.supervisor_mode
        else C(0)
    )
    return ~implemented | privilege_too_low | read_only_write | trapped_satp


class CSRUnit(Elaboratable):
    """
    Machine and supervisor level control and status registers, trap entry
    and return, and interrupt arbitration. All traps are taken in M-mode.

    Attributes
    ----------
    access: Signal(CSRUnitLayouts.access), in
        CSR instruction access. The old value of `access.addr` is read combinationally.
    read_value: Signal(xlen), out
        Value of the CSR selected by `access.addr`.
    write: Signal(1), in
        Commit the CSR instruction write described by `access`.
    prot_changed: Signal(1), out
        The write changes privilege or memory protection state.
    satp_changed: Signal(1), out
        The write changes address translation state.
    trap: Signal(CSRUnitLayouts.trap), in
        Committed trap. Entry into the trap handler happens when `trap.valid` is set.
    trap_vector: Signal(xlen), out
        Trap handler address for `trap`.
    mret: Signal(1), in
    sret: Signal(1), in
        Committed trap return instructions.
    mepc: Signal(xlen), out
    sepc: Signal(xlen), out
        Return addresses of `MRET` and `SRET`.
    retire: Signal(1), in
        An instruction retired without a trap.
    msip: Signal(1), in
    mtip: Signal(1), in
    meip: Signal(1), in
        Machine interrupt lines.
    irq_pending: Signal(1), out
        An interrupt must be taken.
    irq_cause: Signal(5), out
        Cause code of the highest priority pending interrupt.
    wfi_wake: Signal(1), out
        An enabled interrupt is pending, regardless of global interrupt enable.
    fetch_ctx: Signal(mem_ctx_layout), out
    data_ctx: Signal(mem_ctx_layout), out
        Memory access contexts of instruction fetches and loads and stores.
    status: Signal(DecodeLayouts.status), out
        State used by the decoder for privilege checks.
    """

    def __init__(self, gen_params: GenParams):
        self.gen_params = gen_params
        fields = gen_params.get(CommonLayoutFields)
        layouts = gen_params.get(CSRUnitLayouts)
        xlen = gen_params.isa.xlen

        self.access = Signal(layouts.access)
        self.read_value = Signal(xlen)
        self.write = Signal()
        self.prot_changed = Signal()
        self.satp_changed = Signal()

        self.trap = Signal(layouts.trap)
        self.trap_vector = Signal(xlen)

        self.mret = Signal()
        self.sret = Signal()
        self.mepc = Signal(xlen)
        self.sepc = Signal(xlen)

        self.retire = Signal()

        self.msip = Signal()
        self.mtip = Signal()
        self.meip = Signal()
        self.irq_pending = Signal()
        self.irq_cause = Signal(5)
        self.wfi_wake = Signal()

        self.fetch_ctx = Signal(fields.mem_ctx_layout)
        self.data_ctx = Signal(fields.mem_ctx_layout)
        self.status = Signal(layouts.status)

        # Architectural state
        self.prv = Signal(PrivilegeLevel, init=PrivilegeLevel.MACHINE)

        self.mstatus_mie = Signal()
        self.mstatus_mpie = Signal()
        self.mstatus_mpp = Signal(PrivilegeLevel, init=PrivilegeLevel.MACHINE)
        self.mstatus_mprv = Signal()
        self.mstatus_tw = Signal()
        self.mstatus_sie = Signal()
        self.mstatus_spie = Signal()
        self.mstatus_spp = Signal()
        self.mstatus_sum = Signal()
        self.mstatus_mxr = Signal()
        self.mstatus_tvm = Signal()
        self.mstatus_tsr = Signal()

        epc_ro = 0b1 if Extension.C in gen_params.isa.extensions else 0b11

        self.mie = CSRRegister(CSRAddress.MIE, gen_params, ro_bits=~self._interrupt_mask() & (2**xlen - 1))
        self.mtvec = CSRRegister(CSRAddress.MTVEC, gen_params, ro_bits=0b10, init=gen_params.mtvec_reset)
        self.mscratch = CSRRegister(CSRAddress.MSCRATCH, gen_params)
        self.mepc_reg = CSRRegister(CSRAddress.MEPC, gen_params, ro_bits=epc_ro)
        self.mcause = CSRRegister(CSRAddress.MCAUSE, gen_params)
        self.mtval = CSRRegister(CSRAddress.MTVAL, gen_params)
        # SSIP, STIP and SEIP; the machine level bits come from the interrupt lines
        self.mip_s = CSRRegister(None, gen_params, ro_bits=~self._supervisor_interrupt_mask() & (2**xlen - 1))

        self.mcycle = Signal(2 * xlen)
        self.minstret = Signal(2 * xlen)

        self.stvec = CSRRegister(CSRAddress.STVEC, gen_params, ro_bits=0b10)
        self.sscratch = CSRRegister(CSRAddress.SSCRATCH, gen_params)
        self.sepc_reg = CSRRegister(CSRAddress.SEPC, gen_params, ro_bits=epc_ro)
        self.scause = CSRRegister(CSRAddress.SCAUSE, gen_params)
        self.stval = CSRRegister(CSRAddress.STVAL, gen_params)
        self.satp = CSRRegister(CSRAddress.SATP, gen_params)

    def _supervisor_interrupt_mask(self) -> int:
        if not self.gen_params.supervisor_mode:
            return 0
        return (
            (1 << InterruptCauseNumber.SSI) | (1 << InterruptCauseNumber.STI) | (1 << InterruptCauseNumber.SEI)
        )

    def _interrupt_mask(self) -> int:
        machine = (1 << InterruptCauseNumber.MSI) | (1 << InterruptCauseNumber.MTI) | (1 << InterruptCauseNumber.MEI)
        return machine | self._supervisor_interrupt_mask()

    def _misa_value(self) -> int:
        extensions = self.gen_params.isa.extensions
        letters = ["I"]
        if Extension.M in extensions:
            letters.append("M")
        if Extension.C in extensions:
            letters.append("C")
        if self.gen_params.user_mode:
            letters.append("U")
        if self.gen_params.supervisor_mode:
            letters.append("S")
        mxl = 1  # XLEN = 32
        return reduce(or_, (1 << (ord(letter) - ord("A")) for letter in letters)) | (
            mxl << (self.gen_params.isa.xlen - 2)
        )

    def _mstatus_fields(self) -> list[tuple[int, Value]]:
        fields: list[tuple[int, Value]] = [
            (MstatusFieldOffsets.MIE, self.mstatus_mie),
            (MstatusFieldOffsets.MPIE, self.mstatus_mpie),
            (MstatusFieldOffsets.MPP, Value.cast(self.mstatus_mpp)),
        ]
        if self.gen_params.user_mode:
            fields += [
                (MstatusFieldOffsets.MPRV, self.mstatus_mprv),
                (MstatusFieldOffsets.TW, self.mstatus_tw),
            ]
        if self.gen_params.supervisor_mode:
            fields += [
                (MstatusFieldOffsets.TVM, self.mstatus_tvm),
                (MstatusFieldOffsets.TSR, self.mstatus_tsr),
            ] + self._sstatus_fields()
        return fields

    def _sstatus_fields(self) -> list[tuple[int, Value]]:
        return [
            (MstatusFieldOffsets.SIE, self.mstatus_sie),
            (MstatusFieldOffsets.SPIE, self.mstatus_spie),
            (MstatusFieldOffsets.SPP, self.mstatus_spp),
            (MstatusFieldOffsets.SUM, self.mstatus_sum),
            (MstatusFieldOffsets.MXR, self.mstatus_mxr),
        ]

    def _pack(self, m: TModule, fields: list[tuple[int, Value]]) -> Signal:
        value = Signal(self.gen_params.isa.xlen)
        for offset, field in fields:
            m.d.comb += value[offset : offset + len(field)].eq(field)
        return value

    def _legal_privilege(self, prv: Value) -> Value:
        legal = prv == PrivilegeLevel.MACHINE
        if self.gen_params.user_mode:
            legal |= prv == PrivilegeLevel.USER
        if self.gen_params.supervisor_mode:
            legal |= prv == PrivilegeLevel.SUPERVISOR
        return legal

    def _write_mstatus(self, m: TModule, data: Value):
        m.d.sync += self.mstatus_mie.eq(data[MstatusFieldOffsets.MIE])
        m.d.sync += self.mstatus_mpie.eq(data[MstatusFieldOffsets.MPIE])
        mpp = data[MstatusFieldOffsets.MPP : MstatusFieldOffsets.MPP + 2]
        with m.If(self._legal_privilege(mpp)):
            m.d.sync += self.mstatus_mpp.eq(mpp)
        if self.gen_params.user_mode:
            m.d.sync += self.mstatus_mprv.eq(data[MstatusFieldOffsets.MPRV])
            m.d.sync += self.mstatus_tw.eq(data[MstatusFieldOffsets.TW])
        if self.gen_params.supervisor_mode:
            m.d.sync += self.mstatus_tvm.eq(data[MstatusFieldOffsets.TVM])
            m.d.sync += self.mstatus_tsr.eq(data[MstatusFieldOffsets.TSR])
            self._write_sstatus(m, data)

    def _write_sstatus(self, m: TModule, data: Value):
        for offset, field in self._sstatus_fields():
            m.d.sync += field.eq(data[offset])

    def elaborate(self, platform):
        m = TModule()

        xlen = self.gen_params.isa.xlen
        supervisor = self.gen_params.supervisor_mode

        mstatus = self._pack(m, self._mstatus_fields())
        sstatus = self._pack(m, self._sstatus_fields()) if supervisor else C(0, xlen)

        mip = Signal(xlen)
        m.d.comb += mip.eq(self.mip_s.value)
        m.d.comb += mip[InterruptCauseNumber.MSI].eq(self.msip)
        m.d.comb += mip[InterruptCauseNumber.MTI].eq(self.mtip)
        m.d.comb += mip[InterruptCauseNumber.MEI].eq(self.meip)

        s_mask = C(self._supervisor_interrupt_mask(), xlen)

        # CSR instruction access

        reads: dict[CSRAddress, Value] = {
            CSRAddress.CYCLE: self.mcycle[:xlen],
            CSRAddress.CYCLEH: self.mcycle[xlen:],
            CSRAddress.INSTRET: self.minstret[:xlen],
            CSRAddress.INSTRETH: self.minstret[xlen:],
            CSRAddress.MVENDORID: C(self.gen_params.mvendorid, xlen),
            CSRAddress.MARCHID: C(self.gen_params.marchid, xlen),
            CSRAddress.MIMPID: C(self.gen_params.mimpid, xlen),
            CSRAddress.MHARTID: C(self.gen_params.mhartid, xlen),
            CSRAddress.MSTATUS: mstatus,
            CSRAddress.MISA: C(self._misa_value(), xlen),
            CSRAddress.MIE: self.mie.fu_read(),
            CSRAddress.MTVEC: self.mtvec.fu_read(),
            CSRAddress.MSCRATCH: self.mscratch.fu_read(),
            CSRAddress.MEPC: self.mepc_reg.fu_read(),
            CSRAddress.MCAUSE: self.mcause.fu_read(),
            CSRAddress.MTVAL: self.mtval.fu_read(),
            CSRAddress.MIP: mip,
            CSRAddress.MCYCLE: self.mcycle[:xlen],
            CSRAddress.MCYCLEH: self.mcycle[xlen:],
            CSRAddress.MINSTRET: self.minstret[:xlen],
            CSRAddress.MINSTRETH: self.minstret[xlen:],
        }
        if supervisor:
            reads |= {
                CSRAddress.SSTATUS: sstatus,
                CSRAddress.SIE: self.mie.fu_read() & s_mask,
                CSRAddress.STVEC: self.stvec.fu_read(),
                CSRAddress.SSCRATCH: self.sscratch.fu_read(),
                CSRAddress.SEPC: self.sepc_reg.fu_read(),
                CSRAddress.SCAUSE: self.scause.fu_read(),
                CSRAddress.STVAL: self.stval.fu_read(),
                CSRAddress.SIP: mip & s_mask,
                CSRAddress.SATP: self.satp.fu_read(),
            }

        with m.Switch(self.access.addr):
            for addr, value in reads.items():
                with m.Case(addr):
                    m.d.comb += self.read_value.eq(value)

        new_value = Signal(xlen)
        with m.Switch(self.access.funct3):
            with m.Case(Funct3.CSRRW, Funct3.CSRRWI):
                m.d.comb += new_value.eq(self.access.src)
            with m.Case(Funct3.CSRRS, Funct3.CSRRSI):
                m.d.comb += new_value.eq(self.read_value | self.access.src)
            with m.Case(Funct3.CSRRC, Funct3.CSRRCI):
                m.d.comb += new_value.eq(self.read_value & ~self.access.src)

        m.d.comb += self.prot_changed.eq(
            (self.access.addr == CSRAddress.MSTATUS) | ((self.access.addr == CSRAddress.SSTATUS) if supervisor else 0)
        )
        m.d.comb += self.satp_changed.eq((self.access.addr == CSRAddress.SATP) if supervisor else 0)

        # Counters, overridden by instruction writes below
        m.d.sync += self.mcycle.eq(self.mcycle + 1)
        with m.If(self.retire):
            m.d.sync += self.minstret.eq(self.minstret + 1)

        with m.If(self.write & self.access.we):
            log.debug(m, 1, "write csr=0x{:03x} value=0x{:08x}", self.access.addr, new_value)
            with m.Switch(self.access.addr):
                with m.Case(CSRAddress.MSTATUS):
                    self._write_mstatus(m, new_value)
                with m.Case(CSRAddress.MIE):
                    self.mie.fu_write(m, new_value)
                with m.Case(CSRAddress.MIP):
                    self.mip_s.fu_write(m, new_value)
                with m.Case(CSRAddress.MCYCLE):
                    m.d.sync += self.mcycle.eq(Cat(new_value, self.mcycle[xlen:]))
                with m.Case(CSRAddress.MCYCLEH):
                    m.d.sync += self.mcycle.eq(Cat(self.mcycle[:xlen], new_value))
                with m.Case(CSRAddress.MINSTRET):
                    m.d.sync += self.minstret.eq(Cat(new_value, self.minstret[xlen:]))
                with m.Case(CSRAddress.MINSTRETH):
                    m.d.sync += self.minstret.eq(Cat(self.minstret[:xlen], new_value))
                for reg in [self.mtvec, self.mscratch, self.mepc_reg, self.mcause, self.mtval]:
                    with m.Case(reg.csr_number):
                        reg.fu_write(m, new_value)
                if supervisor:
                    with m.Case(CSRAddress.SSTATUS):
                        self._write_sstatus(m, new_value)
                    with m.Case(CSRAddress.SIE):
                        m.d.sync += self.mie.value.eq((self.mie.value & ~s_mask) | (new_value & s_mask))
                    with m.Case(CSRAddress.SIP):
                        ssip = 1 << InterruptCauseNumber.SSI
                        m.d.sync += self.mip_s.value.eq((self.mip_s.value & ~ssip) | (new_value & ssip))
                    for reg in [self.stvec, self.sscratch, self.sepc_reg, self.scause, self.stval, self.satp]:
                        with m.Case(reg.csr_number):
                            reg.fu_write(m, new_value)

        # Trap entry and return

        vectored = self.mtvec.value[0:2] == TrapVectorMode.VECTORED
        base = Cat(C(0, 2), self.mtvec.value[2:])
        m.d.comb += self.trap_vector.eq(base + Mux(self.trap.interrupt & vectored, self.trap.code << 2, 0))

        m.d.comb += self.mepc.eq(self.mepc_reg.value)
        m.d.comb += self.sepc.eq(self.sepc_reg.value)

        with m.If(self.trap.valid):
            log.info(
                m,
                1,
                "trap pc=0x{:08x} interrupt={} code={} value=0x{:08x} vector=0x{:08x}",
                self.trap.pc,
                self.trap.interrupt,
                self.trap.code,
                self.trap.value,
                self.trap_vector,
            )
            m.d.sync += [
                self.mepc_reg.value.eq(self.trap.pc),
                self.mcause.value.eq(Cat(self.trap.code, C(0, xlen - 6), self.trap.interrupt)),
                self.mtval.value.eq(self.trap.value),
                self.mstatus_mpie.eq(self.mstatus_mie),
                self.mstatus_mie.eq(0),
                self.mstatus_mpp.eq(self.prv),
                self.prv.eq(PrivilegeLevel.MACHINE),
            ]
        with m.Elif(self.mret):
            log.info(m, 1, "mret to 0x{:08x} prv={}", self.mepc, self.mstatus_mpp)
            m.d.sync += [
                self.prv.eq(self.mstatus_mpp),
                self.mstatus_mie.eq(self.mstatus_mpie),
                self.mstatus_mpie.eq(1),
                self.mstatus_mpp.eq(PrivilegeLevel.USER if self.gen_params.user_mode else PrivilegeLevel.MACHINE),
            ]
            with m.If(self.mstatus_mpp != PrivilegeLevel.MACHINE):
                m.d.sync += self.mstatus_mprv.eq(0)
        if supervisor:
            with m.Elif(self.sret):
                log.info(m, 1, "sret to 0x{:08x} spp={}", self.sepc, self.mstatus_spp)
                m.d.sync += [
                    self.prv.eq(Mux(self.mstatus_spp, PrivilegeLevel.SUPERVISOR, PrivilegeLevel.USER)),
                    self.mstatus_sie.eq(self.mstatus_spie),
                    self.mstatus_spie.eq(1),
                    self.mstatus_spp.eq(0),
                    self.mstatus_mprv.eq(0),
                ]

        # Interrupts

        pending = Signal(xlen)
        m.d.comb += pending.eq(mip & self.mie.value)
        m.d.comb += self.wfi_wake.eq(pending.any())
        m.d.comb += self.irq_pending.eq(pending.any() & ((self.prv != PrivilegeLevel.MACHINE) | self.mstatus_mie))

        priority = [
            InterruptCauseNumber.MEI,
            InterruptCauseNumber.MSI,
            InterruptCauseNumber.MTI,
            InterruptCauseNumber.SEI,
            InterruptCauseNumber.SSI,
            InterruptCauseNumber.STI,
        ]
        # lowest priority first, so the highest priority assignment wins
        for cause in reversed(priority):
            with m.If(pending[cause]):
                m.d.comb += self.irq_cause.eq(cause)

        # Contexts

        m.d.comb += [
            self.fetch_ctx.prv.eq(self.prv),
            self.fetch_ctx.sum.eq(self.mstatus_sum),
            self.fetch_ctx.mxr.eq(self.mstatus_mxr),
            self.fetch_ctx.satp.eq(self.satp.value),
            self.data_ctx.prv.eq(Mux(self.mstatus_mprv, self.mstatus_mpp, self.prv)),
            self.data_ctx.sum.eq(self.mstatus_sum),
            self.data_ctx.mxr.eq(self.mstatus_mxr),
            self.data_ctx.satp.eq(self.satp.value),
            self.status.prv.eq(self.prv),
            self.status.tvm.eq(self.mstatus_tvm),
            self.status.tsr.eq(self.mstatus_tsr),
            self.status.tw.eq(self.mstatus_tw),
        ]

        return m
