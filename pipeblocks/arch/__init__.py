from .isa_consts import *  # noqa: F401
from .isa import *  # noqa: F401
from .optypes import *  # noqa: F401
from .csr_address import *  # noqa: F401
