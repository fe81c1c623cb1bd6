"""Command line interface for running and inspecting the lead agent."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from .config import AgentSettings, ConfigurationError, load_settings
from .export import export_evaluations, export_history
from .factory import build_components, build_store
from .logstore import ContactHistory, LogStore, render_blocks
from .messaging import Command, EventType, Message
from .models import SuspensionState
from .parsing import format_value_range
from .registry import LeadRegistry
from .storage import STATISTICS_KEY, SUSPENSION_KEY, StorageError

LOGGER = logging.getLogger(__name__)


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="Qualify marketplace leads and contact the good ones")
    parser.add_argument(
        "--config",
        required=True,
        help="Path to the agent configuration file (YAML or JSON)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Start the agent and keep contacting qualified leads")
    run.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds instead of running until interrupted",
    )
    run.add_argument("--no-heartbeat", action="store_true", help="Disable the coordinator heartbeat")

    scan = commands.add_parser("scan", help="Evaluate the current leads without contacting anyone")
    scan.add_argument("--export", dest="export_path", default=None, help="Write the evaluations to CSV or XLSX")

    commands.add_parser("status", help="Show persisted suspension, statistics and registry state")

    logs = commands.add_parser("logs", help="Print stored cycle summaries")
    logs.add_argument("--details", action="store_true", help="Print per-lead detail blocks instead")

    export = commands.add_parser("export", help="Export the contact history to CSV or XLSX")
    export.add_argument("output", help="Destination file")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        settings = load_settings(args.config)
        handler = _COMMANDS[args.command]
        return handler(args, settings)
    except (ConfigurationError, StorageError) as exc:
        logging.error("%s", exc)
        return 1


# ---------------------------------------------------------------------------
def _run(args: argparse.Namespace, settings: AgentSettings) -> int:
    components = build_components(settings)
    coordinator = components.build_coordinator()
    finished = threading.Event()

    def report(message: Message) -> None:
        if message.kind is EventType.LEAD_CONTACTED:
            LOGGER.info("Contacted %s", message.payload.get("lead_id"))
        elif message.kind is EventType.SCRAPING_ERROR:
            LOGGER.warning("Scraping error: %s", message.payload.get("error"))
        elif message.kind is EventType.SUSPENDED:
            LOGGER.warning("Suspended until %s", message.payload.get("resume_at_epoch_ms"))

    coordinator.events.subscribe(report)
    coordinator.start(heartbeat=not args.no_heartbeat)
    try:
        response = coordinator.request(Command.START_AGENT)
        if not response.success:
            logging.error("Agent did not start: %s", response.error)
            return 1
        logging.info("Agent running; press Ctrl+C to stop")
        finished.wait(args.duration)
    except KeyboardInterrupt:
        logging.info("Interrupted; stopping agent")
    finally:
        if coordinator.endpoint.running:
            coordinator.request(Command.STOP_AGENT)
        coordinator.close()
        components.close()
    return 0


def _scan(args: argparse.Namespace, settings: AgentSettings) -> int:
    components = build_components(settings)
    try:
        if not components.launcher.open_surface():
            logging.error("Could not open the portal")
            return 1
        scheduler = components.build_scheduler()
        evaluations = scheduler.preview()
    finally:
        components.close()

    currency = settings.rules.currency_symbol if settings.rules else "₹"
    for evaluation in evaluations:
        lead = evaluation.lead
        status = "PASS" if evaluation.passed else "REJECT"
        value = format_value_range(lead.probable_value, currency) or "-"
        print(f"{status:6} {lead.display_name()} | {lead.location} | {value} | {evaluation.verdict.reason}")
    passed = sum(1 for evaluation in evaluations if evaluation.passed)
    print(f"{len(evaluations)} leads, {passed} qualified")

    if args.export_path:
        destination = export_evaluations(evaluations, args.export_path, currency_symbol=currency)
        logging.info("Evaluations written to %s", Path(destination).resolve())
    return 0


def _status(args: argparse.Namespace, settings: AgentSettings) -> int:
    store = build_store(settings.storage_path)
    suspension = SuspensionState.from_dict(store.get(SUSPENSION_KEY))
    history = ContactHistory(store, max_entries=settings.logs.max_contact_history)
    payload: Dict[str, Any] = {
        "suspension": suspension.to_dict() if suspension else None,
        "statistics": store.get(STATISTICS_KEY, {}),
        "skipped_leads": LeadRegistry(store).skipped_count,
        "contacted_leads": len(history.entries()),
        "rules_configured": settings.rules is not None,
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def _logs(args: argparse.Namespace, settings: AgentSettings) -> int:
    log_store = LogStore(build_store(settings.storage_path))
    blocks = log_store.lead_logs() if args.details else log_store.summaries()
    if not blocks:
        print("No logs recorded yet.")
        return 0
    print(render_blocks(blocks))
    return 0


def _export(args: argparse.Namespace, settings: AgentSettings) -> int:
    history = ContactHistory(build_store(settings.storage_path), max_entries=settings.logs.max_contact_history)
    destination = export_history(history.entries(), args.output)
    logging.info("Contact history written to %s", Path(destination).resolve())
    return 0


_COMMANDS = {
    "run": _run,
    "scan": _scan,
    "status": _status,
    "logs": _logs,
    "export": _export,
}


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
