"""Command-line interface for robot-swarm.

Runs Robot Framework suites on every configured device in parallel, one
suite at a time, then merges all device results into a single report.

Usage:
    # Run every .robot file of a directory
    robot-swarm -d tests/mobile -t "Nightly regression"

    # Run one suite file, report formatted for CI
    robot-swarm -f tests/mobile/login.robot --jenkins

    # Re-clone the engine library checkout first
    robot-swarm -d tests/mobile --forceupdate

Exit codes:
    0   Run completed (possibly with failing tests or devices)
    15  No device configuration found
    21  No valid suite directory or file given
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

from robot_swarm.aggregator import Aggregator
from robot_swarm.config import DEFAULT_TEST_NAME, DEFAULT_WORKSPACE, RunnerConfig, load_runner_config
from robot_swarm.devices import load_devices
from robot_swarm.discovery import discover_suites
from robot_swarm.errors import AggregationError, ConfigurationError, InvalidTargetError
from robot_swarm.models import ProgressRecord, RunSummary, SequenceResult
from robot_swarm.sequencer import SuiteSequencer
from robot_swarm.suite_runner import ParallelSuiteRunner
from robot_swarm.supervisor import UnitSupervisor
from robot_swarm.workspace import Workspace, append_log, refresh_engine_checkout

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NO_DEVICES = 15
EXIT_BAD_TARGET = 21

SUMMARY_NAME = "summary.json"
BANNER = "=" * 64


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def print_progress(record: ProgressRecord) -> None:
    """Print the banner shown after each completed suite."""
    print(BANNER)
    print(f"Suite : {record.display_name} completed")
    print(f"Total : {record} suite(s) completed")
    print(BANNER)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="robot-swarm",
        description="Robot Framework parallel test runner for Appium devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "-d", "--directory", type=Path,
        help="Directory containing .robot files (searched recursively)"
    )
    target.add_argument(
        "-f", "--file", type=Path,
        help="Path to one .robot file"
    )
    parser.add_argument(
        "-t", "--testname",
        help=f"Final test name shown in report/log (default: {DEFAULT_TEST_NAME})"
    )
    parser.add_argument(
        "-j", "--jenkins", action="store_true",
        help="Format the report for a CI server instead of local use"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Show process output and debug logging"
    )
    parser.add_argument(
        "--force", "--forceupdate", dest="force_update", action="store_true",
        help="Delete the engine checkout and clone it again"
    )
    parser.add_argument(
        "-w", "--workspace", type=Path,
        help=f"Runner workspace holding devices_conf (default: ./{DEFAULT_WORKSPACE})"
    )
    parser.add_argument(
        "-c", "--config", type=Path,
        help="Runner configuration YAML file"
    )
    return parser


def show_usage(parser: argparse.ArgumentParser) -> None:
    """Print usage after a bad invocation."""
    print("-" * 55)
    print("Robot Framework parallel test runner for mobile devices.")
    print()
    parser.print_help()
    print("-" * 55)


def build_config(args: argparse.Namespace) -> RunnerConfig:
    """Combine the optional config file with command-line flags.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the config file is malformed.
    """
    config = load_runner_config(args.config) if args.config else RunnerConfig()
    overrides: dict[str, object] = {
        "target": args.directory if args.directory is not None else args.file,
        "verbose": args.verbose,
        "ci_mode": args.jenkins,
        "force_update": args.force_update,
    }
    if args.testname:
        overrides["test_name"] = args.testname
    if args.workspace is not None:
        overrides["workspace"] = args.workspace
    return dataclasses.replace(config, **overrides)


def _write_summary(workspace: Workspace, summary: RunSummary) -> Path:
    path = workspace.output / SUMMARY_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(summary.model_dump_json(indent=2) + "\n", encoding="utf-8")
    return path


async def run(config: RunnerConfig) -> int:
    """Run every suite on every device and aggregate the results.

    Args:
        config: Complete runner configuration with a target.

    Returns:
        Process exit code.
    """
    if config.target is None:
        raise InvalidTargetError("No target given")

    workspace = Workspace(config.workspace)
    workspace.prepare()

    engine_path = await refresh_engine_checkout(
        workspace, config.engine, force=config.force_update, verbose=config.verbose
    )

    try:
        devices = load_devices(workspace.devices_conf)
    except ConfigurationError as exc:
        print(f"Invalid device configuration: {exc}")
        return EXIT_NO_DEVICES

    if not devices:
        print(
            "You have to put some device configuration files into "
            f"{workspace.devices_conf}.\nPlease read the documentation."
        )
        return EXIT_NO_DEVICES

    supervisor = UnitSupervisor(config, workspace)
    await supervisor.kill_stale()

    try:
        await supervisor.start(devices)
        ready = supervisor.ready_devices
        suites = discover_suites(config.target)
        logger.info("Found %d suite(s) in %s", len(suites), config.target)

        if ready:
            supervisor.mark_running()
            runner = ParallelSuiteRunner(config, workspace, engine_path)
            sequencer = SuiteSequencer(runner, workspace.log_file, on_progress=print_progress)
            sequence = await sequencer.run_all(ready, suites)
        else:
            sequence = SequenceResult(total=len(suites), error="No execution unit became ready")
            logger.error(sequence.error)
            append_log(workspace.log_file, "Error on test execution :", sequence.error)

        report_dir: Path | None = None
        if sequence.executed:
            try:
                result = await Aggregator(config, workspace).aggregate(
                    ready, sequence.executed, config.ci_mode, sequence.missing
                )
                report_dir = result.output_dir
                logger.info("Report written to %s", report_dir)
            except AggregationError as exc:
                logger.error("Aggregation failed: %s", exc)
                append_log(workspace.log_file, "Error on report generation :", str(exc))
        else:
            logger.warning("No suite completed, no report generated")

        summary = RunSummary.from_sequence(
            test_name=config.test_name,
            devices=[d.tag for d in ready],
            unavailable=[d.tag for d in supervisor.unavailable_devices],
            sequence=sequence,
            report_dir=report_dir,
        )
        _write_summary(workspace, summary)
    finally:
        supervisor.stop()

    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    target = args.directory if args.directory is not None else args.file
    if target is None:
        show_usage(parser)
        return EXIT_BAD_TARGET
    if (args.directory is not None and not args.directory.is_dir()) or (
        args.file is not None and not args.file.is_file()
    ):
        print(f"Target not found: {target}")
        show_usage(parser)
        return EXIT_BAD_TARGET

    setup_logging(args.verbose)

    try:
        config = build_config(args)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))

    return asyncio.run(run(config))


if __name__ == "__main__":
    sys.exit(main())
