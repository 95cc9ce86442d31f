from dataclasses import dataclass

import pytest
from parameterized import parameterized

from pipeblocks.arch.isa import Extension
from pipeblocks.params.genparams import GenParams
from pipeblocks.params.configurations import *


class TestConfigurationsISAString:
    @dataclass
    class ISAStrTest:
        core_config: CoreConfiguration
        gp_str: str
        reg_cnt: int

    TEST_CASES = [
        ISAStrTest(basic_core_config, "rv32imzicsr_zifencei_xintmachinemode", 32),
        ISAStrTest(tiny_core_config, "rv32izicsr_zifencei_xintmachinemode", 32),
        ISAStrTest(full_core_config, "rv32imczicsr_zifencei_xintmachinemode_xintsupervisor", 32),
        ISAStrTest(test_core_config, "rv32imczicsr_zifencei_xintmachinemode_xintsupervisor", 32),
    ]

    def test_isa_str_gp(self):
        for test in self.TEST_CASES:
            gp = GenParams(test.core_config)
            assert gp.isa_str == test.gp_str
            assert gp.isa.reg_cnt == test.reg_cnt

    def test_extensions(self):
        basic = GenParams(basic_core_config).isa.extensions
        assert Extension.M in basic
        assert Extension.ZMMUL in basic
        assert Extension.C not in basic

        tiny = GenParams(tiny_core_config).isa.extensions
        assert Extension.M not in tiny
        assert Extension.ZMMUL not in tiny
        assert Extension.XINTSUPERVISOR not in tiny

        full = GenParams(full_core_config).isa.extensions
        assert Extension.C in full
        assert Extension.XINTSUPERVISOR in full

    def test_instruction_width(self):
        assert GenParams(basic_core_config).min_instr_width_bytes == 4
        assert GenParams(full_core_config).min_instr_width_bytes == 2


class TestConfigurationsInvalid:
    @parameterized.expand(
        [
            ("xlen", basic_core_config.replace(xlen=64)),
            ("supervisor_without_user", tiny_core_config.replace(supervisor_mode=True)),
            ("div_ipc", basic_core_config.replace(div_ipc=0)),
            ("start_pc", basic_core_config.replace(start_pc=0x1002)),
            ("mtvec_reset", full_core_config.replace(mtvec_reset=0x8002)),
        ]
    )
    def test_rejected(self, name, config):
        with pytest.raises(ValueError):
            GenParams(config)

    def test_halfword_start_with_compressed(self):
        gp = GenParams(full_core_config.replace(start_pc=0x1002))
        assert gp.start_pc == 0x1002
