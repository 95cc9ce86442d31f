from amaranth.lib.data import StructLayout

from pipeblocks.params import GenParams
from pipeblocks.arch import *
from pipeblocks.interface.types import FetchReason
from transactron.utils import LayoutListField
from transactron.utils.transactron_helpers import make_layout

__all__ = [
    "CommonLayoutFields",
    "FetchLayouts",
    "DecodeLayouts",
    "ExecuteLayouts",
    "RFLayouts",
    "LSULayouts",
    "CSRUnitLayouts",
]


class CommonLayoutFields:
    """Commonly used layout fields."""

    def __init__(self, gen_params: GenParams):
        xlen = gen_params.isa.xlen

        self.op_type: LayoutListField = ("op_type", OpType)
        """Decoded operation type."""

        self.funct3: LayoutListField = ("funct3", Funct3)
        """RISC V funct3 value."""

        self.funct7: LayoutListField = ("funct7", Funct7)
        """RISC V funct7 value."""

        self.rl_s1: LayoutListField = ("rl_s1", gen_params.isa.reg_cnt_log)
        """Logical register number of first source operand."""

        self.rl_s2: LayoutListField = ("rl_s2", gen_params.isa.reg_cnt_log)
        """Logical register number of second source operand."""

        self.rl_dst: LayoutListField = ("rl_dst", gen_params.isa.reg_cnt_log)
        """Logical register number of destination operand."""

        self.imm: LayoutListField = ("imm", xlen)
        """Immediate value."""

        self.csr: LayoutListField = ("csr", gen_params.isa.csr_alen)
        """CSR number."""

        self.pc: LayoutListField = ("pc", xlen)
        """Program counter value."""

        self.s1_val: LayoutListField = ("s1_val", xlen)
        """Value of first source operand."""

        self.s2_val: LayoutListField = ("s2_val", xlen)
        """Value of second source operand."""

        self.addr: LayoutListField = ("addr", xlen)
        """Memory address."""

        self.data: LayoutListField = ("data", xlen)
        """Piece of data."""

        self.instr: LayoutListField = ("instr", gen_params.isa.ilen)
        """RISC V instruction."""

        self.reason: LayoutListField = ("reason", FetchReason)
        """Reason of an instruction fetch."""

        self.target: LayoutListField = ("target", xlen)
        """Target address of a control transfer."""

        self.valid: LayoutListField = ("valid", 1)
        """The record holds meaningful data."""

        self.cause: LayoutListField = ("cause", ExceptionCause)
        """Exception cause."""

        self.error: LayoutListField = ("error", 1)
        """Request ended with an error."""

        self.rvc: LayoutListField = ("rvc", 1)
        """Instruction is a compressed (two-byte) one."""

        self.prv: LayoutListField = ("prv", PrivilegeLevel)
        """Privilege level."""

        self.exec_fn_layout = make_layout(self.op_type, self.funct3, self.funct7)
        """Decoded instruction, in layout form."""

        self.exec_fn: LayoutListField = ("exec_fn", self.exec_fn_layout)
        """Decoded instruction."""

        self.exception_layout = make_layout(self.valid, self.cause, ("value", xlen))
        """Exception carried with an instruction: validity, cause and the faulting value."""

        self.exception: LayoutListField = ("exception", self.exception_layout)
        """Exception raised for this instruction."""

        self.prediction_layout = make_layout(("taken", 1), self.target)
        """Outcome of a static branch prediction."""

        self.prediction: LayoutListField = ("prediction", self.prediction_layout)
        """Branch prediction attached to a fetched instruction."""

        self.mem_ctx_layout = make_layout(self.prv, ("sum", 1), ("mxr", 1), ("satp", xlen))
        """Privilege, permission and translation state used by a memory access."""

        self.mem_ctx: LayoutListField = ("ctx", self.mem_ctx_layout)
        """Memory access context, sampled when the request is made."""


class FetchLayouts:
    """Layouts used in the fetch unit."""

    def __init__(self, gen_params: GenParams):
        fields = gen_params.get(CommonLayoutFields)

        self.request = make_layout(fields.addr, fields.reason, fields.mem_ctx)
        """Instruction memory request."""

        self.response = make_layout(fields.instr, fields.addr, fields.error, fields.cause)
        """Instruction memory response. `instr` holds 32 bits starting at `addr`."""

        self.redirect = make_layout(fields.valid, fields.target, fields.reason)
        """Request to resume fetching from a new address."""

        self.fetched = make_layout(fields.pc, fields.instr, fields.reason, fields.exception, fields.prediction)
        """Fetched instruction passed to decode."""


class DecodeLayouts:
    """Layouts used in the decode stage."""

    def __init__(self, gen_params: GenParams):
        fields = gen_params.get(CommonLayoutFields)

        self.regs = make_layout(
            fields.rl_dst, ("rl_dst_v", 1), fields.rl_s1, ("rl_s1_v", 1), fields.rl_s2, ("rl_s2_v", 1)
        )
        """Logical register numbers with validity flags."""

        self.status = make_layout(fields.prv, ("tvm", 1), ("tsr", 1), ("tw", 1))
        """Architectural state the decoder depends on."""

        self.decoded = make_layout(
            fields.pc,
            fields.reason,
            fields.rvc,
            fields.prediction,
            fields.exec_fn,
            ("regs", self.regs),
            fields.imm,
            fields.csr,
            ("csr_we", 1),
            fields.exception,
            fields.s1_val,
            fields.s2_val,
        )
        """Decoded instruction with source operand values read from the register file."""


class ExecuteLayouts:
    """Layouts used in the execute stages."""

    def __init__(self, gen_params: GenParams):
        fields = gen_params.get(CommonLayoutFields)
        decode = gen_params.get(DecodeLayouts)
        xlen = gen_params.isa.xlen

        self.ex1_result = make_layout(
            fields.pc,
            fields.exec_fn,
            ("regs", decode.regs),
            fields.csr,
            ("csr_we", 1),
            fields.exception,
            ("result", xlen),
            ("secondary", xlen),
            ("npc", xlen),
            ("result_valid", 1),
        )
        """Result of execute-1: primary result (or first operand), secondary value (store data,
        second operand or CSR source), computed next PC and whether the primary result is final."""

        self.trap = make_layout(fields.valid, ("interrupt", 1), ("code", 5), ("value", xlen), fields.pc)
        """Trap assembled in execute-2."""

        self.outcome = make_layout(
            ("commit", 1),
            fields.pc,
            ("rd", gen_params.isa.reg_cnt_log),
            ("rd_we", 1),
            ("value", xlen),
            ("trap", self.trap),
            ("redirect", gen_params.get(FetchLayouts).redirect),
        )
        """Execute-2 outcome, the only source of register file writes and of redirects."""

        self.bypass = make_layout(fields.valid, ("rd", gen_params.isa.reg_cnt_log), ("ready", 1), ("value", xlen))
        """In-flight result offered to the bypass network."""


class RFLayouts:
    """Layouts used in the register file."""

    def __init__(self, gen_params: GenParams):
        fields = gen_params.get(CommonLayoutFields)

        self.rf_write = make_layout(("en", 1), ("reg_id", gen_params.isa.reg_cnt_log), ("reg_val", gen_params.isa.xlen))
        """Single register write port."""

        self.rf_read = make_layout(fields.rl_s1, fields.rl_s2)


class LSULayouts:
    """Layouts used in the data memory interface."""

    def __init__(self, gen_params: GenParams):
        fields = gen_params.get(CommonLayoutFields)
        xlen = gen_params.isa.xlen

        self.request = make_layout(
            ("store", 1),
            fields.addr,
            ("size", 2),
            ("signed", 1),
            fields.data,
            ("mask", xlen // 8),
            fields.mem_ctx,
        )
        """Data memory request. Store data is aligned to its byte lanes, `mask` selects the written bytes."""

        self.response = make_layout(fields.data, fields.error, fields.cause)
        """Data memory response. `data` is the whole bus word containing the accessed bytes."""


class CSRUnitLayouts:
    """Layouts used in the CSR unit."""

    def __init__(self, gen_params: GenParams):
        execute = gen_params.get(ExecuteLayouts)

        self.trap = execute.trap

        self.access = make_layout(
            ("addr", gen_params.isa.csr_alen), ("funct3", Funct3), ("src", gen_params.isa.xlen), ("we", 1)
        )
        """CSR instruction access: address, operation and source operand."""

        self.status: StructLayout = gen_params.get(DecodeLayouts).status
