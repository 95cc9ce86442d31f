import dataclasses
from dataclasses import dataclass
from enum import IntEnum

from typing import Self

__all__ = [
    "MulType",
    "CoreConfiguration",
    "basic_core_config",
    "tiny_core_config",
    "full_core_config",
    "test_core_config",
]


class MulType(IntEnum):
    """
    Enum of different multiplication units types
    """

    #: The cheapest multiplication unit in terms of resources, it uses Russian Peasants Algorithm.
    SHIFT_MUL = 0
    #: Single cycle multiplication, left to the synthesis tool to map onto DSP blocks.
    DIRECT_MUL = 1


@dataclass(kw_only=True)
class _CoreConfigurationDataClass:
    """
    Core configuration parameters.

    Parameters
    ----------
    xlen: int
        Bit width of Core. Only 32 is supported.
    compressed: bool
        Enables 16-bit Compressed Instructions extension.
    mul_div: bool
        Enables Integer Multiplication and Division extension.
    mul_type: MulType
        Implementation of the unsigned multiplier used by the multiplication unit.
    div_ipc: int
        Number of quotient bits computed by the divider in a single cycle.
    user_mode: bool
        Enable User Mode.
    supervisor_mode: bool
        Enable Supervisor Mode. Requires User Mode.
    start_pc: int
        Initial Program Counter value.
    mtvec_reset: int
        Reset value of the machine trap-vector base address.
    mvendorid: int
        The value of the MVENDORID CSR.
    marchid: int
        The value of the MARCHID CSR.
    mimpid: int
        The value of the MIMPID CSR.
    mhartid: int
        The value of the MHARTID CSR.
    extra_verification: bool
        Enables generation of additional hardware checks (asserts via logging system). Defaults to True.
    """

    xlen: int = 32

    compressed: bool = False
    mul_div: bool = True
    mul_type: MulType = MulType.SHIFT_MUL
    div_ipc: int = 2

    user_mode: bool = True
    supervisor_mode: bool = False

    start_pc: int = 0
    mtvec_reset: int = 0

    mvendorid: int = 0
    marchid: int = 0
    mimpid: int = 0
    mhartid: int = 0

    extra_verification: bool = True


class CoreConfiguration(_CoreConfigurationDataClass):
    def replace(self, **kwargs) -> Self:
        return dataclasses.replace(self, **kwargs)


# Default core configuration
basic_core_config = CoreConfiguration()

# Minimal core configuration
tiny_core_config = CoreConfiguration(mul_div=False, user_mode=False)

# Core configuration with all supported components
full_core_config = CoreConfiguration(
    compressed=True,
    mul_type=MulType.DIRECT_MUL,
    div_ipc=4,
    supervisor_mode=True,
)

# Core configuration used in internal testbenches
test_core_config = CoreConfiguration(compressed=True, supervisor_mode=True, mtvec_reset=0x8000)
