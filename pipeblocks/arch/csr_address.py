from amaranth.lib.enum import IntEnum, unique

__all__ = ["CSRAddress", "MstatusFieldOffsets"]


@unique
class CSRAddress(IntEnum, shape=12):
    # Unprivileged Counter/Timers
    CYCLE = 0xC00  # Cycle counter for RDCYCLE instruction
    INSTRET = 0xC02  # Instructions-retired counter for RDINSTRET instruction
    CYCLEH = 0xC80  # Upper 32 bits of `cycle`, RV32 only
    INSTRETH = 0xC82  # Upper 32 bits of `instret`, RV32 only

    # Supervisor Trap Setup
    SSTATUS = 0x100  # Supervisor status register
    SIE = 0x104  # Supervisor interrupt-enable register
    STVEC = 0x105  # Supervisor trap handler base address

    # Supervisor Trap Handling
    SSCRATCH = 0x140  # Scratch register for supervisor trap handlers
    SEPC = 0x141  # Supervisor exception program counter
    SCAUSE = 0x142  # Supervisor trap cause
    STVAL = 0x143  # Supervisor bad address or instruction
    SIP = 0x144  # Supervisor interrupt pending

    # Supervisor Protection and Translation
    SATP = 0x180  # Supervisor address translation and protection

    # Machine Information Registers
    MVENDORID = 0xF11  # Vendor ID
    MARCHID = 0xF12  # Architecture ID
    MIMPID = 0xF13  # Implementation ID
    MHARTID = 0xF14  # Hardware thread ID

    # Machine Trap Setup
    MSTATUS = 0x300  # Machine status register
    MISA = 0x301  # ISA and extension
    MIE = 0x304  # Machine interrupt-enable register
    MTVEC = 0x305  # Machine trap-handler base address

    # Machine Trap Handling
    MSCRATCH = 0x340  # Scratch register for machine trap handlers
    MEPC = 0x341  # Machine exception program counter
    MCAUSE = 0x342  # Machine trap cause
    MTVAL = 0x343  # Machine bad address or instruction
    MIP = 0x344  # Machine interrupt pending

    # Machine Counter/Timers
    MCYCLE = 0xB00  # Machine cycle counter
    MINSTRET = 0xB02  # Machine instructions-retired counter
    MCYCLEH = 0xB80  # Upper 32 bits of `mcycle`, RV32 only
    MINSTRETH = 0xB82  # Upper 32 bits of `minstret`, RV32 only


@unique
class MstatusFieldOffsets(IntEnum):
    SIE = 1  # Supervisor Interrupt Enable
    MIE = 3  # Machine Interrupt Enable
    SPIE = 5  # Supervisor Previous Interrupt Enable
    MPIE = 7  # Machine Previous Interrupt Enable
    SPP = 8  # Supervisor Previous Privilege
    MPP = 11  # Machine Previous Privilege
    MPRV = 17  # Modify Privilege
    SUM = 18  # Supervisor User Memory Access
    MXR = 19  # Make Executable Readable
    TVM = 20  # Trap Virtual Memory
    TW = 21  # Timeout Wait
    TSR = 22  # Trap SRET
