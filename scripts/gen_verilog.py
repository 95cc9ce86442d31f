#!/usr/bin/env python3

import os
import sys
import argparse

from amaranth import *


if __name__ == "__main__":
    parent = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    sys.path.insert(0, parent)

from pipeblocks.params.genparams import GenParams
from pipeblocks.core import Core
from transactron import TransactronContextComponent
from transactron.utils import DependencyManager, DependencyContext
from transactron.utils.gen import generate_verilog

from pipeblocks.params.configurations import *

str_to_coreconfig: dict[str, CoreConfiguration] = {
    "basic": basic_core_config,
    "tiny": tiny_core_config,
    "full": full_core_config,
}


def gen_verilog(core_config: CoreConfiguration, output_path: str):
    with DependencyContext(DependencyManager()):
        gp = GenParams(core_config)
        core = Core(gen_params=gp)

        top = TransactronContextComponent(core, dependency_manager=DependencyContext.get())

        # use known working yosys version shipped with amaranth by default
        if "AMARANTH_USE_YOSYS" not in os.environ:
            os.environ["AMARANTH_USE_YOSYS"] = "builtin"

        verilog_text, gen_info = generate_verilog(top)

        gen_info.encode(f"{output_path}.json")
        with open(output_path, "w") as f:
            f.write(verilog_text)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enables verbose output. Default: %(default)s",
    )

    parser.add_argument(
        "-c",
        "--config",
        action="store",
        default="basic",
        help="Select core configuration. "
        + f"Available configurations: {', '.join(list(str_to_coreconfig.keys()))}. Default: %(default)s",
    )

    parser.add_argument(
        "--no-verification",
        action="store_true",
        help="Leave out hardware assertions. Default: %(default)s",
    )

    parser.add_argument("--reset-pc", action="store", default="0x0", help="Set core reset address")
    parser.add_argument("--mtvec", action="store", default="0x0", help="Set reset value of the trap vector")

    parser.add_argument(
        "-o", "--output", action="store", default="core.v", help="Output file path. Default: %(default)s"
    )

    args = parser.parse_args()

    os.environ["AMARANTH_verbose"] = "true" if args.verbose else "false"

    if args.config not in str_to_coreconfig:
        raise KeyError(f"Unknown config '{args.config}'")

    config = str_to_coreconfig[args.config]
    if args.no_verification:
        config = config.replace(extra_verification=False)

    assert args.reset_pc[:2] == "0x", "Expected hex number as --reset-pc"
    assert args.mtvec[:2] == "0x", "Expected hex number as --mtvec"
    config = config.replace(start_pc=int(args.reset_pc[2:], base=16), mtvec_reset=int(args.mtvec[2:], base=16))

    gen_verilog(config, args.output)


if __name__ == "__main__":
    main()
