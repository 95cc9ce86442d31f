from amaranth import *

from transactron import TModule
from transactron.lib.logging import HardwareLogger
from amaranth_types import ModuleLike

from pipeblocks.params import GenParams
from pipeblocks.arch import Funct3, ExceptionCause, OpType
from pipeblocks.interface.layouts import CommonLayoutFields, LSULayouts

__all__ = ["LSUAdapter"]


class LSUAdapter(Elaboratable):
    """
    Memory access adapter used by execute-2. It serializes loads and stores:
    a single request is sent to the data memory, and the unit waits for its
    response before it can take a new one.

    Misaligned accesses do not reach the memory, they finish immediately with
    an address-misaligned exception. Faults reported by the memory side are
    returned as exceptions with the cause given by the memory and the accessed
    address as the value.

    Attributes
    ----------
    exec_fn: Signal(exec_fn_layout), in
        Decoded operation, sampled on `issue`.
    addr: Signal(xlen), in
        Effective address.
    data: Signal(xlen), in
        Store data.
    ctx: Signal(mem_ctx_layout), in
        Privilege and translation context of the access.
    issue: Signal(1), in
    ready: Signal(1), out
    done: Signal(1), out
        `result` and `exception` are valid. Stays set until `accept`.
    accept: Signal(1), in
    result: Signal(xlen), out
        Loaded value, extended according to the access size.
    exception: Signal(exception_layout), out
    req_valid: Signal(1), out
    req_ready: Signal(1), in
    req: Signal(LSULayouts.request), out
    resp_valid: Signal(1), in
    resp: Signal(LSULayouts.response), in
        Data memory port. A response is expected at least one cycle after
        the request is accepted.
    """

    def __init__(self, gen_params: GenParams) -> None:
        """
        Parameters
        ----------
        gen_params : GenParams
            Parameters to be used during processor generation.
        """
        self.gen_params = gen_params
        fields = gen_params.get(CommonLayoutFields)
        layouts = gen_params.get(LSULayouts)
        xlen = gen_params.isa.xlen

        self.exec_fn = Signal(fields.exec_fn_layout)
        self.addr = Signal(xlen)
        self.data = Signal(xlen)
        self.ctx = Signal(fields.mem_ctx_layout)
        self.issue = Signal()
        self.ready = Signal()
        self.done = Signal()
        self.accept = Signal()
        self.result = Signal(xlen)
        self.exception = Signal(fields.exception_layout)

        self.req_valid = Signal()
        self.req_ready = Signal()
        self.req = Signal(layouts.request)
        self.resp_valid = Signal()
        self.resp = Signal(layouts.response)

        self.log = HardwareLogger("func_blocks.fu.lsu")

    def prepare_bytes_mask(self, m: ModuleLike, funct3: Value, addr: Value) -> Signal:
        mask_len = self.gen_params.isa.xlen // 8
        mask = Signal(mask_len)
        with m.Switch(funct3):
            with m.Case(Funct3.B, Funct3.BU):
                m.d.comb += mask.eq(0x1 << addr[0:2])
            with m.Case(Funct3.H, Funct3.HU):
                m.d.comb += mask.eq(0x3 << (addr[1] << 1))
            with m.Case(Funct3.W):
                m.d.comb += mask.eq(0xF)
        return mask

    def postprocess_load_data(self, m: ModuleLike, funct3: Value, raw_data: Value, addr: Value):
        data = Signal.like(raw_data)
        with m.Switch(funct3):
            with m.Case(Funct3.B, Funct3.BU):
                tmp = Signal(8)
                m.d.comb += tmp.eq((raw_data >> (addr[0:2] << 3)) & 0xFF)
                with m.If(funct3 == Funct3.B):
                    m.d.comb += data.eq(tmp.as_signed())
                with m.Else():
                    m.d.comb += data.eq(tmp)
            with m.Case(Funct3.H, Funct3.HU):
                tmp = Signal(16)
                m.d.comb += tmp.eq((raw_data >> (addr[1] << 4)) & 0xFFFF)
                with m.If(funct3 == Funct3.H):
                    m.d.comb += data.eq(tmp.as_signed())
                with m.Else():
                    m.d.comb += data.eq(tmp)
            with m.Default():
                m.d.comb += data.eq(raw_data)
        return data

    def prepare_data_to_save(self, m: ModuleLike, funct3: Value, raw_data: Value, addr: Value):
        data = Signal.like(raw_data)
        with m.Switch(funct3):
            with m.Case(Funct3.B):
                m.d.comb += data.eq(raw_data[0:8] << (addr[0:2] << 3))
            with m.Case(Funct3.H):
                m.d.comb += data.eq(raw_data[0:16] << (addr[1] << 4))
            with m.Default():
                m.d.comb += data.eq(raw_data)
        return data

    def check_align(self, m: TModule, funct3: Value, addr: Value):
        aligned = Signal()
        with m.Switch(funct3):
            with m.Case(Funct3.W):
                m.d.comb += aligned.eq(addr[0:2] == 0)
            with m.Case(Funct3.H, Funct3.HU):
                m.d.comb += aligned.eq(addr[0] == 0)
            with m.Default():
                m.d.comb += aligned.eq(1)
        return aligned

    def elaborate(self, platform):
        m = TModule()

        fields = self.gen_params.get(CommonLayoutFields)

        funct3 = self.exec_fn.funct3
        store = Signal()
        m.d.comb += store.eq(self.exec_fn.op_type == OpType.STORE)

        aligned = self.check_align(m, funct3, self.addr)
        bytes_mask = self.prepare_bytes_mask(m, funct3, self.addr)
        bus_data = self.prepare_data_to_save(m, funct3, self.data, self.addr)

        request = Signal.like(self.req)
        saved_funct3 = Signal(Funct3)
        load_data = self.postprocess_load_data(m, saved_funct3, self.resp.data, request.addr)

        result = Signal.like(self.result)
        exception = Signal(fields.exception_layout)

        m.d.comb += [
            self.req.eq(request),
            self.result.eq(result),
            self.exception.eq(exception),
        ]

        with m.FSM():
            with m.State("idle"):
                m.d.comb += self.ready.eq(1)
                with m.If(self.issue):
                    self.log.debug(
                        m,
                        1,
                        "issue addr=0x{:08x} data=0x{:08x} funct3={} store={} aligned={}",
                        self.addr,
                        self.data,
                        funct3,
                        store,
                        aligned,
                    )
                    m.d.sync += [
                        request.store.eq(store),
                        request.addr.eq(self.addr),
                        request.size.eq(Value.cast(funct3)[0:2]),
                        request.signed.eq(~Value.cast(funct3)[2]),
                        request.data.eq(bus_data),
                        request.mask.eq(bytes_mask),
                        request.ctx.eq(self.ctx),
                        saved_funct3.eq(funct3),
                        result.eq(0),
                        exception.eq(0),
                    ]
                    with m.If(aligned):
                        m.next = "request"
                    with m.Else():
                        m.d.sync += exception.valid.eq(1)
                        m.d.sync += exception.cause.eq(
                            Mux(store, ExceptionCause.STORE_ADDRESS_MISALIGNED, ExceptionCause.LOAD_ADDRESS_MISALIGNED)
                        )
                        m.d.sync += exception.value.eq(self.addr)
                        m.next = "done"

            with m.State("request"):
                m.d.comb += self.req_valid.eq(1)
                with m.If(self.req_ready):
                    m.next = "response"

            with m.State("response"):
                with m.If(self.resp_valid):
                    self.log.debug(
                        m, 1, "response data=0x{:08x} error={} cause={}", self.resp.data, self.resp.error, self.resp.cause
                    )
                    with m.If(self.resp.error):
                        m.d.sync += exception.valid.eq(1)
                        m.d.sync += exception.cause.eq(self.resp.cause)
                        m.d.sync += exception.value.eq(request.addr)
                    with m.Elif(~request.store):
                        m.d.sync += result.eq(load_data)
                    m.next = "done"

            with m.State("done"):
                m.d.comb += self.done.eq(1)
                with m.If(self.accept):
                    m.next = "idle"

        return m
