from amaranth.lib.wiring import Signature, In, Out

from pipeblocks.params import GenParams
from pipeblocks.interface.layouts import FetchLayouts, LSULayouts

__all__ = ["InstrMemSignature", "DataMemSignature", "FlushSignature", "InterruptSignature"]


class InstrMemSignature(Signature):
    """Instruction memory port, seen from the core.

    A request is accepted in a cycle with both `req_valid` and `req_ready`
    set. Responses come back in request order, at least one cycle after the
    request is accepted.
    """

    def __init__(self, gen_params: GenParams):
        layouts = gen_params.get(FetchLayouts)
        super().__init__(
            {
                "req_valid": Out(1),
                "req_ready": In(1),
                "req": Out(layouts.request),
                "resp_valid": In(1),
                "resp": In(layouts.response),
            }
        )


class DataMemSignature(Signature):
    """Data memory port, seen from the core. Same handshake as `InstrMemSignature`."""

    def __init__(self, gen_params: GenParams):
        layouts = gen_params.get(LSULayouts)
        super().__init__(
            {
                "req_valid": Out(1),
                "req_ready": In(1),
                "req": Out(layouts.request),
                "resp_valid": In(1),
                "resp": In(layouts.response),
            }
        )


class FlushSignature(Signature):
    """Cache and TLB maintenance notification. The flush is finished in the
    cycle in which both `valid` and `ready` are set."""

    def __init__(self):
        super().__init__({"valid": Out(1), "ready": In(1)})


class InterruptSignature(Signature):
    """Machine level interrupt lines."""

    def __init__(self):
        super().__init__({"msip": In(1), "mtip": In(1), "meip": In(1)})
