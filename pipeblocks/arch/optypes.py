from amaranth.lib.enum import unique, IntEnum, auto

from .isa import Extension, extension_implications

__all__ = [
    "OpType",
    "optypes_by_extensions",
    "optypes_required_by_extensions",
]


@unique
class OpType(IntEnum):
    """
    Enum of operation types. Do not confuse with Opcode.
    """

    UNKNOWN = auto()  # needs to be first
    ARITHMETIC = auto()
    COMPARE = auto()
    LOGIC = auto()
    SHIFT = auto()
    AUIPC = auto()
    JAL = auto()
    JALR = auto()
    BRANCH = auto()
    LOAD = auto()
    STORE = auto()
    FENCE = auto()
    ECALL = auto()
    EBREAK = auto()
    MRET = auto()
    WFI = auto()
    FENCEI = auto()
    CSR_REG = auto()
    CSR_IMM = auto()
    MUL = auto()
    DIV_REM = auto()
    SRET = auto()
    SFENCEVMA = auto()


#
# Operation types grouped by extensions
# Note that this list provides 1:1 mappings and extension implications (like M->Zmmul) need to be resolved externally.
#

optypes_by_extensions = {
    Extension.I: [
        OpType.ARITHMETIC,
        OpType.COMPARE,
        OpType.LOGIC,
        OpType.SHIFT,
        OpType.AUIPC,
        OpType.JAL,
        OpType.JALR,
        OpType.BRANCH,
        OpType.LOAD,
        OpType.STORE,
        OpType.FENCE,
        OpType.ECALL,
        OpType.EBREAK,
    ],
    Extension.ZIFENCEI: [
        OpType.FENCEI,
    ],
    Extension.ZICSR: [
        OpType.CSR_REG,
        OpType.CSR_IMM,
    ],
    Extension.ZMMUL: [
        OpType.MUL,
    ],
    Extension.M: [
        OpType.DIV_REM,
    ],
    Extension.XINTMACHINEMODE: [
        OpType.MRET,
        OpType.WFI,
    ],
    Extension.XINTSUPERVISOR: [
        OpType.SRET,
        OpType.SFENCEVMA,
    ],
}


def optypes_required_by_extensions(extensions: Extension, resolve_implications=True) -> set[OpType]:
    optypes = set()

    if resolve_implications:
        for ext, imply in extension_implications.items():
            if ext in extensions:
                extensions |= imply

    for ext in Extension:
        if ext in extensions:
            if ext in optypes_by_extensions:
                optypes = optypes.union(optypes_by_extensions[ext])
            elif ext not in (Extension.E, Extension.C):
                raise Exception(f"Core does not support {ext!r} extension")

    return optypes
