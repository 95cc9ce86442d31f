from .genparams import *  # noqa: F401
from .instr import *  # noqa: F401
