from amaranth import *

from transactron import TModule
from transactron.lib import logging

from pipeblocks.params import GenParams
from pipeblocks.interface.layouts import CommonLayoutFields, FetchLayouts
from pipeblocks.interface.types import FetchReason
from pipeblocks.frontend.predictor import StaticPredictor

__all__ = ["FetchUnit"]

log = logging.HardwareLogger("frontend.fetch")


class FetchUnit(Elaboratable):
    """
    Program counter sequencing and instruction memory requests.

    At most one request is outstanding. The next address is known when the
    response arrives: it is the predicted target for jumps predicted taken,
    and the following instruction otherwise. A response which can't be passed
    to decode is kept in a single entry skid buffer, and a new request is only
    made when the buffer is guaranteed to be free for its response.

    A redirect wins over sequential fetching. It discards the buffered and the
    outstanding responses, and is kept until a request to its target is
    accepted. The request to the target is made from the cycle after the
    redirect, when `ctx` already reflects the commit which caused it. After a
    response with a fetch fault no further sequential requests are made until
    the next redirect.

    The context sent with a request is sampled when the request is first
    offered and held until it is accepted.

    The unit comes out of reset with a redirect to `start_pc` armed, so the
    first request is made in the first cycle.

    Attributes
    ----------
    redirect: Signal(FetchLayouts.redirect), in
        Resume fetching from `redirect.target` when `redirect.valid` is set.
    ctx: Signal(mem_ctx_layout), in
        Privilege and translation context, sent with each request.
    out_valid: Signal(1), out
    out_ready: Signal(1), in
    out: Signal(FetchLayouts.fetched), out
        Fetched instruction.
    req_valid: Signal(1), out
    req_ready: Signal(1), in
    req: Signal(FetchLayouts.request), out
    resp_valid: Signal(1), in
    resp: Signal(FetchLayouts.response), in
        Instruction memory port.
    """

    def __init__(self, gen_params: GenParams) -> None:
        """
        Parameters
        ----------
        gen_params: GenParams
            Core generation parameters.
        """
        self.gen_params = gen_params

        layouts = gen_params.get(FetchLayouts)
        fields = gen_params.get(CommonLayoutFields)

        self.redirect = Signal(layouts.redirect)
        self.ctx = Signal(fields.mem_ctx_layout)

        self.out_valid = Signal()
        self.out_ready = Signal()
        self.out = Signal(layouts.fetched)

        self.req_valid = Signal()
        self.req_ready = Signal()
        self.req = Signal(layouts.request)
        self.resp_valid = Signal()
        self.resp = Signal(layouts.response)

    def elaborate(self, platform):
        m = TModule()

        layouts = self.gen_params.get(FetchLayouts)
        xlen = self.gen_params.isa.xlen

        m.submodules.predictor = predictor = StaticPredictor(self.gen_params)

        # Address of the next sequential request
        pc = Signal(xlen)
        pc_reason = Signal(FetchReason)
        stopped = Signal()

        pending = Signal(
            layouts.redirect,
            init={"valid": 1, "target": self.gen_params.start_pc, "reason": FetchReason.MISPREDICT},
        )

        outstanding = Signal()
        stale = Signal()
        outstanding_reason = Signal(FetchReason)

        skid_valid = Signal()
        skid = Signal(layouts.fetched, reset_less=True)

        redirect = self.redirect.valid

        resp_arrive = Signal()
        resp_live = Signal()
        m.d.comb += resp_arrive.eq(self.resp_valid & outstanding)
        m.d.comb += resp_live.eq(resp_arrive & ~stale & ~redirect)

        # Response processing

        live = Signal(layouts.fetched)
        m.d.comb += [
            predictor.instr.eq(self.resp.instr),
            predictor.pc.eq(self.resp.addr),
            live.pc.eq(self.resp.addr),
            live.instr.eq(self.resp.instr),
            live.reason.eq(outstanding_reason),
            live.exception.valid.eq(self.resp.error),
            live.exception.cause.eq(self.resp.cause),
            live.exception.value.eq(self.resp.addr),
            live.prediction.taken.eq(predictor.taken & ~self.resp.error),
            live.prediction.target.eq(predictor.target),
        ]

        next_pc = Signal(xlen)
        next_reason = Signal(FetchReason)
        with m.If(live.prediction.taken):
            m.d.comb += next_pc.eq(predictor.target)
            m.d.comb += next_reason.eq(FetchReason.PREDICT)
        with m.Else():
            m.d.comb += next_pc.eq(self.resp.addr + Mux(predictor.rvc, 2, 4))
            m.d.comb += next_reason.eq(FetchReason.PREFETCH)

        with m.If(resp_live):
            m.d.sync += [
                pc.eq(next_pc),
                pc_reason.eq(next_reason),
                stopped.eq(self.resp.error),
            ]
            log.debug(
                m,
                1,
                "response pc=0x{:08x} instr=0x{:08x} error={} predicted={}",
                self.resp.addr,
                self.resp.instr,
                self.resp.error,
                live.prediction.taken,
            )

        # Output and skid buffer

        m.d.comb += self.out_valid.eq(~redirect & (skid_valid | resp_live))
        m.d.comb += self.out.eq(Mux(skid_valid, skid, live))

        skid_next_valid = Signal()
        with m.If(redirect):
            m.d.comb += skid_next_valid.eq(0)
        with m.Elif(skid_valid):
            m.d.comb += skid_next_valid.eq(~self.out_ready)
        with m.Else():
            m.d.comb += skid_next_valid.eq(resp_live & ~self.out_ready)

        m.d.sync += skid_valid.eq(skid_next_valid)
        with m.If(~skid_valid & resp_live & ~self.out_ready):
            m.d.sync += skid.eq(live)

        # Requests

        with m.If(pending.valid):
            m.d.comb += self.req.addr.eq(pending.target)
            m.d.comb += self.req.reason.eq(pending.reason)
        with m.Elif(resp_live):
            m.d.comb += self.req.addr.eq(next_pc)
            m.d.comb += self.req.reason.eq(next_reason)
        with m.Else():
            m.d.comb += self.req.addr.eq(pc)
            m.d.comb += self.req.reason.eq(pc_reason)

        # context of a request waiting for `req_ready`
        offered = Signal()
        offered_ctx = Signal(self.gen_params.get(CommonLayoutFields).mem_ctx_layout)
        m.d.comb += self.req.ctx.eq(Mux(offered, offered_ctx, self.ctx))

        sequential_stop = Mux(resp_live, self.resp.error, stopped)
        m.d.comb += self.req_valid.eq(
            ~redirect & (~outstanding | resp_arrive) & ~skid_next_valid & (pending.valid | ~sequential_stop)
        )

        req_fire = Signal()
        m.d.comb += req_fire.eq(self.req_valid & self.req_ready)

        m.d.sync += offered.eq(self.req_valid & ~self.req_ready)
        m.d.sync += offered_ctx.eq(self.req.ctx)

        with m.If(resp_arrive):
            m.d.sync += outstanding.eq(0)
        with m.If(req_fire):
            m.d.sync += [
                outstanding.eq(1),
                stale.eq(0),
                outstanding_reason.eq(self.req.reason),
                pending.valid.eq(0),
            ]
            log.debug(m, 1, "request addr=0x{:08x} reason={}", self.req.addr, self.req.reason)

        with m.If(redirect):
            log.info(m, 1, "redirect to 0x{:08x} reason={}", self.redirect.target, self.redirect.reason)
            m.d.sync += stopped.eq(0)
            m.d.sync += pending.eq(self.redirect)
            with m.If(outstanding & ~resp_arrive):
                m.d.sync += stale.eq(1)

        if self.gen_params.extra_verification:
            log.assertion(m, ~(self.resp_valid & ~outstanding), "Instruction response without a request")
            log.assertion(m, ~(resp_arrive & ~stale & skid_valid), "Instruction response with a full skid buffer")

        return m
