from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from .apirunner import ApiRunner, BenchmarkSummary
from .charts import render_latency_chart
from .client import CloudStackClient
from .collector import outcomes_dataframe
from .config import (
    ADMIN_PROFILE,
    DEFAULT_CONFIG_PATH,
    ConfigError,
    RunOptions,
    Settings,
    load_settings,
)
from .pool import DEFAULT_WORKERS, Outcome
from .provision import Provisioner
from .report import REPORT_FORMATS, generate_report

LOGGER = logging.getLogger("csbench")

DEFAULT_LOG_FILE = "csmetrics.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

BLUE = "\033[1;34m"
RESET = "\033[0m"
RULE = "-" * 80


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="csbench",
        description="Provision CloudStack fixtures at scale and benchmark its APIs",
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("CSBENCH_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to the YAML settings file",
    )
    parser.add_argument("--dbprofile", type=int, default=0, help="DB profile number")
    parser.add_argument("--create", action="store_true", help="Create resources")
    parser.add_argument("--benchmark", action="store_true", help="Benchmark list APIs")
    parser.add_argument("--teardown", action="store_true", help="Tear down all subdomains")
    parser.add_argument("--domain", action="store_true", help="Create domains")
    parser.add_argument("--limits", action="store_true", help="Update account limits to -1")
    parser.add_argument("--network", action="store_true", help="Create shared networks")
    parser.add_argument("--vm", action="store_true", help="Deploy VMs")
    parser.add_argument("--volume", action="store_true", help="Attach volumes to VMs")
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help="Number of workers to use while creating resources",
    )
    parser.add_argument(
        "--format",
        default="table",
        help="Format of the report (csv, tsv, table)",
    )
    parser.add_argument("--output", default=None, help="Path to the report output file")
    parser.add_argument("--chart", default=None, help="Path to a PNG latency chart of the create run")
    parser.add_argument(
        "--log-file",
        default=os.environ.get("CSBENCH_LOG_FILE", DEFAULT_LOG_FILE),
        help="Log file, appended to on every run",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("CSBENCH_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> RunOptions:
    if not (args.create or args.benchmark or args.teardown):
        raise ConfigError("Please provide one of the following options: --create, --benchmark, --teardown")

    options = RunOptions(
        create=args.create,
        benchmark=args.benchmark,
        teardown=args.teardown,
        domain=args.domain,
        limits=args.limits,
        network=args.network,
        vm=args.vm,
        volume=args.volume,
        workers=args.workers,
        report_format=args.format,
        output_file=args.output,
        chart_path=args.chart,
        dbprofile=args.dbprofile,
    )

    if options.create and not any(options.resource_flags):
        raise ConfigError(
            "Please provide one of the following options with --create: --domain, --limits, --network, --vm, --volume"
        )
    if options.report_format not in REPORT_FORMATS:
        raise ConfigError("Invalid format. Please provide one of the following: " + ", ".join(REPORT_FORMATS))
    if options.dbprofile < 0:
        raise ConfigError("Invalid DB profile number. Please provide a positive integer.")
    if options.workers < 1:
        raise ConfigError("Invalid number of workers. Please provide a positive integer.")
    return options


def check_settings(settings: Settings, options: RunOptions) -> None:
    if (options.create or options.teardown) and ADMIN_PROFILE not in settings.profiles:
        raise ConfigError(f"--create and --teardown require an '{ADMIN_PROFILE}' profile")


def setup_logging(level: str, log_file: str | Path) -> logging.Logger:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("csbench")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler(sys.stdout)
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    for handler in (stream_handler, file_handler):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def admin_client(settings: Settings) -> CloudStackClient:
    return CloudStackClient.from_profile(
        settings.url,
        settings.profile(ADMIN_PROFILE),
        timeout=settings.timeout,
        async_timeout=settings.async_timeout,
    )


def create_resources(settings: Settings, options: RunOptions) -> dict[str, list[Outcome]]:
    client = admin_client(settings)
    try:
        return Provisioner(client, settings, workers=options.workers).run(options)
    finally:
        client.close()


def write_raw_outcomes(results: dict[str, list[Outcome]], output_file: str) -> Path | None:
    output = Path(output_file)
    raw_path = output.with_name(f"{output.stem}.raw.csv")
    try:
        outcomes_dataframe(results).to_csv(raw_path, index=False)
    except OSError as exc:
        LOGGER.error("Error creating file %s: %s", raw_path, exc)
        return None
    LOGGER.info("Raw outcomes written to %s", raw_path)
    return raw_path


def run_benchmark(settings: Settings, options: RunOptions) -> BenchmarkSummary:
    LOGGER.info("Started benchmarking the CloudStack environment [%s]", settings.url)
    _print_configuration(settings)

    runner = ApiRunner(settings, workers=options.workers, dbprofile=options.dbprofile)
    for index, (name, profile) in enumerate(settings.profiles.items(), start=1):
        LOGGER.info("Using profile %d.%s for benchmarking", index, name)
        print(f"\n{BLUE}{'=' * 60}{RESET}")
        print(f"                    Profile: [{name}]")
        print(f"{BLUE}{'=' * 60}{RESET}")

        client = CloudStackClient.from_profile(
            settings.url,
            profile,
            timeout=settings.timeout,
            async_timeout=settings.async_timeout,
        )
        try:
            results = runner.run_profile(name, client)
        finally:
            client.close()
        generate_report(results, options.report_format)

    _print_summary(runner)
    LOGGER.info("Done with benchmarking the CloudStack environment [%s]", settings.url)
    return runner.summary


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        options = build_options(args)
        settings = load_settings(args.config)
        check_settings(settings, options)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    setup_logging(args.log_level, args.log_file)

    try:
        if options.create:
            results = create_resources(settings, options)
            generate_report(results, options.report_format, options.output_file)
            if options.output_file:
                write_raw_outcomes(results, options.output_file)
            if options.chart_path:
                render_latency_chart(results, Path(options.chart_path))

        if options.benchmark:
            run_benchmark(settings, options)

        if options.teardown:
            client = admin_client(settings)
            try:
                Provisioner(client, settings, workers=options.workers).teardown()
            finally:
                client.close()
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return 130

    return 0


def _print_configuration(settings: Settings) -> None:
    print(
        f"\n\n{BLUE}Benchmarking the CloudStack environment [{settings.url}] "
        f"with the following configuration{RESET}\n"
    )
    print(f"Management server : {settings.host}")
    print(f"Roles : {','.join(settings.profiles)}")
    print(f"Iterations : {settings.iterations}")
    print(f"Page : {settings.page}")
    print(f"PageSize : {settings.pagesize}\n")

    LOGGER.info("Found %d profiles in the configuration", len(settings.profiles))
    LOGGER.info("Management server : %s", settings.host)


def _print_summary(runner: ApiRunner) -> None:
    summary = runner.summary
    print(f"\n\n\nLog file : {_log_file_name()}")
    print(f"Reports directory per API : {runner.report_dir}/")
    print(f"Number of APIs : {summary.apis}")
    print(f"Successful APIs : {summary.successful_apis}")
    print(f"Failed APIs : {summary.failed_apis}")
    print(f"Time in seconds per API: {summary.average_time_s:.2f} (avg)")
    print(f"\n\n{BLUE}{RULE}{RESET}")
    print("                            Done with benchmarking")
    print(f"{BLUE}{RULE}{RESET}\n")


def _log_file_name() -> str:
    for handler in LOGGER.handlers:
        if isinstance(handler, logging.FileHandler):
            return handler.baseFilename
    return DEFAULT_LOG_FILE


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
