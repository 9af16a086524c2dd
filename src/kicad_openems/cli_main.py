"""kicad-openems CLI: generate openEMS scripts from a board job file.

Commands:
    generate: Load a job file (board + directives) and write the model, mesh
        and driver scripts for a scenario.
    version: Print the package version.

Scenarios:
    antenna: antenna_simulation_scripts.m + load_pcb_model.m + load_pcb_mesh.m
    two-port: two_port_sparam.m + load_pcb_model.m + load_pcb_mesh.m
    model: load_pcb_model.m + load_pcb_mesh.m only
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from . import __version__
from .generator import OpenEMSModelGenerator, apply_job_spec
from .spec import load_job_spec

logger = logging.getLogger(__name__)

SCENARIOS = ("antenna", "two-port", "model")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the kicad-openems CLI.

    Returns:
        ArgumentParser with all subcommands configured.
    """
    parser = argparse.ArgumentParser(
        prog="kicad-openems",
        description="Generate openEMS model, mesh and simulation scripts from a PCB job file",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v, -vv)")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Generate scripts for a job file")
    generate.add_argument("job", help="Job file (.yaml/.yml or .json)")
    generate.add_argument("--out-dir", default=".", help="Directory the scripts are written to")
    generate.add_argument("--scenario", choices=SCENARIOS, default="antenna", help="Which driver script to write")

    sub.add_parser("version", help="Print version")
    return parser


def _cmd_version(args: argparse.Namespace) -> int:
    print(f"kicad-openems {__version__}")
    return 0


def _write_scenario(generator: OpenEMSModelGenerator, scenario: str, out_dir: Path) -> list[Path]:
    if scenario == "antenna":
        return generator.gen_antenna_simulation_scripts(out_dir)
    if scenario == "two-port":
        return generator.gen_two_port_sparam_scripts(out_dir)
    return [generator.gen_model(out_dir), generator.gen_mesh(out_dir)]


def _cmd_generate(args: argparse.Namespace) -> int:
    job_path = Path(args.job).resolve()
    logger.info("Loading job %s", job_path)
    job = load_job_spec(job_path)
    generator = apply_job_spec(job)

    out_dir = Path(args.out_dir).resolve()
    written = _write_scenario(generator, args.scenario, out_dir)
    for path in written:
        print(path)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the kicad-openems CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv).

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.WARNING
    if args.verbose >= 1:
        log_level = logging.INFO
    if args.verbose >= 2:
        log_level = logging.DEBUG
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    try:
        if args.command == "version":
            return _cmd_version(args)
        elif args.command == "generate":
            return _cmd_generate(args)
        else:
            parser.error(f"Unknown command: {args.command}")
            return 2
    except Exception as e:
        logger.error("Error: %s", e)
        if args.verbose >= 2:
            import traceback

            traceback.print_exc()
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
