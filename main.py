#!/usr/bin/env python3
"""
Security-operations core: CLI entry point.

Usage examples
--------------
# Offline walkthrough: brute force → block → escalation → expiry sweep,
# using in-memory backends and a virtual clock (no network, no firewall)
python main.py --demo

# Look up reputation for addresses with the sources enabled in .env
python main.py --check 203.0.113.66 198.51.100.7

# Verbose logging
python main.py --demo --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List

from mocks.adapters import RecordingBackend, RecordingChannel, StaticSource, verdict
from secops.core import SecurityOperations
from secops.errors import ConfigError
from secops.models.blocking import BlockRule, Severity
from secops.utils.clock import ManualClock
from secops.utils.config import load_config
from secops.utils.logger import configure_logging, get_logger
from secops.utils.scheduler import ManualScheduler

logger = get_logger(__name__)

DEMO_ATTACKER = "203.0.113.66"
DEMO_SCANNER = "198.51.100.7"
DEMO_OFFICE = "192.0.2.10"


# ---------------------------------------------------------------------------
# Demo
# ---------------------------------------------------------------------------


async def run_demo() -> Dict[str, Any]:
    """Drive the whole core against in-memory adapters and virtual time."""
    clock = ManualClock()
    scheduler = ManualScheduler(clock)
    cfg = load_config(
        rules=[
            BlockRule(
                id="auth-brute-force",
                name="Authentication brute force",
                threshold=5,
                window_seconds=60,
                ban_duration_seconds=300,
                severity=Severity.HIGH,
            )
        ],
        whitelist=[DEMO_OFFICE],
        max_alerts_per_minute=10,
    )
    backend = RecordingBackend("demo-firewall")
    channel = RecordingChannel("demo-console")
    source = StaticSource("demo-intel", verdicts={DEMO_ATTACKER: verdict(DEMO_ATTACKER, "demo-intel", True)})

    ops = SecurityOperations.from_config(
        cfg, clock=clock, scheduler=scheduler, backends=[backend], sources=[source], channels=[channel]
    )
    timeline: List[Dict[str, Any]] = []
    ops.signals.subscribe(
        None,
        lambda signal, payload: timeline.append({"at": clock.now().isoformat(), "signal": signal.value}),
    )
    ops.start()

    # Office address is whitelisted: never blocked
    for _ in range(10):
        await ops.blocker.report_infraction(DEMO_OFFICE, "auth-brute-force")

    # Attacker: five failed logins in ten seconds → temporary block
    for _ in range(5):
        await ops.blocker.report_infraction(DEMO_ATTACKER, "auth-brute-force", {"username": "admin"})
        clock.advance(2)

    # Attacker keeps going while blocked → escalation to permanent
    await ops.blocker.report_infraction(DEMO_ATTACKER, "auth-brute-force")

    # Scanner trips the rule once and is left alone afterwards
    for _ in range(5):
        await ops.blocker.report_infraction(DEMO_SCANNER, "auth-brute-force")

    clock.advance(301)
    await scheduler.run_due()

    summary = {
        "blocked": [e.model_dump(mode="json") for e in ops.blocker.get_blocked_subjects()],
        "blocker_metrics": ops.blocker.get_metrics().model_dump(),
        "dispatcher_metrics": ops.dispatcher.get_metrics().model_dump(),
        "alerts_delivered": [a.title for a in channel.delivered],
        "enforcement_calls": backend.calls,
        "signals": timeline,
    }
    await ops.shutdown()
    return summary


# ---------------------------------------------------------------------------
# Live reputation check
# ---------------------------------------------------------------------------


async def run_check(subjects: List[str]) -> List[Dict[str, Any]]:
    cfg = load_config()
    ops = SecurityOperations.from_config(cfg)
    if not any(s.enabled for s in ops.reputation.sources):
        logger.warning("no_reputation_sources_enabled", hint="set SECOPS_ABUSEIPDB_ENABLED or SECOPS_VIRUSTOTAL_ENABLED")
    try:
        results = await asyncio.gather(*(ops.reputation.check_reputation(s) for s in subjects))
    finally:
        await ops.shutdown()
    return [r.model_dump(mode="json") for r in results]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secops",
        description=(
            "Auto-blocking, reputation enrichment and alert dispatch for "
            "security operations."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--demo",
        action="store_true",
        help="Run an offline scenario with in-memory adapters and a virtual clock",
    )
    mode.add_argument(
        "--check",
        nargs="+",
        metavar="IP",
        help="Check reputation for one or more IP addresses",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging verbosity (default: WARNING)",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        default="",
        help="Optional file to write log output to",
    )
    return parser


def main() -> int:
    args = build_parser().parse_args()
    configure_logging(log_level=args.log_level, log_file=args.log_file or None)

    try:
        if args.demo:
            output: Any = asyncio.run(run_demo())
        else:
            output = asyncio.run(run_check(args.check))
    except ConfigError as exc:
        logger.error("configuration_error", error=str(exc))
        return 1

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
