from .instr_decoder import *  # noqa: F401
from .rvc import *  # noqa: F401
