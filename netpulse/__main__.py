"""NetPulse command line entry point.

    python -m netpulse run                      start the scheduled core
    python -m netpulse score --probe home-1     score a probe's last hour
    python -m netpulse patterns                 list recurring degradation windows
"""

import argparse
import asyncio
import json
import signal
import sys
from datetime import timedelta

from .config import get_config
from .metrics import utcnow
from .runtime import NetPulseRuntime
from .scoring.profiles import DEFAULT_PROFILE, PROFILES
from .scoring.service import score_probe
from .utils.logging import get_logger, setup_logging

logger = get_logger("netpulse.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="netpulse", description="Network quality baselining and alerting core")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the scheduled jobs until interrupted")

    score = sub.add_parser("score", help="Compute a live quality score for one probe")
    score.add_argument("--probe", required=True, help="Probe identifier")
    score.add_argument("--profile", default=DEFAULT_PROFILE, choices=sorted(PROFILES))
    score.add_argument("--minutes", type=int, default=60, help="Averaging window in minutes")

    sub.add_parser("patterns", help="Run pattern recognition once and print the results")
    return parser


async def _run(runtime: NetPulseRuntime) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops
            pass

    await runtime.start()
    try:
        await stop_event.wait()
    finally:
        await runtime.stop()


async def _score(runtime: NetPulseRuntime, probe: str, profile: str, minutes: int) -> int:
    end = utcnow()
    try:
        await runtime.prepare()
        result = await score_probe(runtime.store, probe, profile, start=end - timedelta(minutes=minutes), end=end)
    finally:
        await runtime.stop()
    if result is None:
        print(f"No measurements for probe {probe} in the last {minutes} minutes", file=sys.stderr)
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def _patterns(runtime: NetPulseRuntime) -> int:
    try:
        await runtime.prepare()
        patterns = await runtime.run_pattern_detection()
    finally:
        await runtime.stop()
    print(json.dumps([p.to_dict() for p in patterns], indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logging(
        debug=config.debug,
        log_dir=config.log_dir,
        log_max_bytes=config.log_max_bytes,
        log_backup_count=config.log_backup_count,
    )
    runtime = NetPulseRuntime(config)

    if args.command == "run":
        asyncio.run(_run(runtime))
        return 0
    if args.command == "score":
        return asyncio.run(_score(runtime, args.probe, args.profile, args.minutes))
    return asyncio.run(_patterns(runtime))


if __name__ == "__main__":
    sys.exit(main())
