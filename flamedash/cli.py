"""Command line entry point: pick a trace source, then open the dashboard."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from . import APP_NAME, __version__
from .app import App
from .errors import SamplerError, TraceFileError
from .sampler import SamplerBridge, SamplerConfig
from .sources import PySpyDumpSource, ThreadSampler, TraceSource, run_script_thread

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="flamedash",
        description="Interactive flame graph dashboard for folded trace files and live Python processes.",
    )
    p.add_argument("--version", action="version", version=f"{APP_NAME} {__version__}")

    p.add_argument("target", nargs="?", help="folded stack trace file, or the script to run with --script")
    p.add_argument("script_args", nargs=argparse.REMAINDER, help="arguments passed to the script")
    p.add_argument("--pid", type=int, help="sample a running Python process through py-spy")
    p.add_argument("--script", action="store_true", help="run TARGET in-process as __main__ and sample it")

    live = p.add_argument_group("live sampling")
    live.add_argument("-r", "--rate", type=int, default=None,
                      help=f"samples per second (default: 100, or {PySpyDumpSource.DEFAULT_RATE} with --pid)")
    live.add_argument("-d", "--duration", type=float, default=None, help="stop after this many seconds")
    live.add_argument("-i", "--idle", action="store_true", help="include idle threads")
    live.add_argument("-g", "--gil", action="store_true", help="only sample the thread holding the GIL")
    live.add_argument("-t", "--threads", action="store_true", help="add a frame naming each thread")
    live.add_argument("--nolineno", action="store_true", help="aggregate by function rather than by line")
    live.add_argument("-s", "--subprocesses", action="store_true", help="add frames naming the process chain")

    p.add_argument("--debug", action="store_true", help="verbose logging and a timing status bar")
    p.add_argument("--log-file", default=None, help="write logs here instead of stderr")
    return p


def configure_logging(debug: bool, log_file: Optional[str]) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        filename=log_file,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def sampler_config(args: argparse.Namespace) -> SamplerConfig:
    rate = args.rate
    if rate is None:
        rate = PySpyDumpSource.DEFAULT_RATE if args.pid is not None else SamplerConfig.sampling_rate
    if rate <= 0:
        raise ValueError("--rate must be positive")
    if args.duration is not None and args.duration <= 0:
        raise ValueError("--duration must be positive")
    return SamplerConfig(
        sampling_rate=rate,
        duration=args.duration,
        include_idle=args.idle,
        gil_only=args.gil,
        include_thread_ids=args.threads,
        show_line_numbers=not args.nolineno,
        subprocesses=args.subprocesses,
    )


def build_source(args: argparse.Namespace, config: SamplerConfig) -> TraceSource:
    if args.pid is not None:
        return PySpyDumpSource(args.pid, config.sampling_rate, subprocesses=config.subprocesses)
    thread = run_script_thread(args.target, args.script_args)
    source = ThreadSampler(config.sampling_rate, target=thread, subprocesses=config.subprocesses)
    thread.start()
    return source


def build_app(args: argparse.Namespace) -> App:
    if args.pid is None and not args.script:
        return App.from_file(args.target, debug=args.debug)
    config = sampler_config(args)
    bridge = SamplerBridge(build_source(args, config), config)
    bridge.start()
    return App.from_bridge(bridge, debug=args.debug)


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.pid is not None and (args.target or args.script):
        parser.error("--pid cannot be combined with a file or --script")
    if args.pid is None and not args.target:
        parser.error("give a trace file, --pid PID or --script SCRIPT")
    if args.script_args and not args.script:
        parser.error("extra arguments are only accepted with --script")


def main(argv: Optional[List[str]] = None) -> None:
    parser = create_parser()
    args = parser.parse_args(argv)
    validate_args(parser, args)
    configure_logging(args.debug, args.log_file)
    logger.debug("Arguments: %s", vars(args))

    try:
        app = build_app(args)
    except TraceFileError as e:
        print(f"{APP_NAME}: {e}", file=sys.stderr)
        sys.exit(1)
    except (SamplerError, ValueError) as e:
        parser.error(str(e))

    # Qt is only needed once there is something to show
    from .widgets import run_dashboard

    try:
        code = run_dashboard(app)
    finally:
        app.quit()
    sys.exit(code)


if __name__ == "__main__":
    main()
