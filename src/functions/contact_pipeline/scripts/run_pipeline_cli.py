"""CLI entry point for the contact enrichment pipeline.

Usage:
    python run_pipeline_cli.py start --owner <profile-id>
    python run_pipeline_cli.py resume --owner <profile-id>
    python run_pipeline_cli.py step [--owner <profile-id>]
    python run_pipeline_cli.py status --owner <profile-id>
    python run_pipeline_cli.py enable --owner <profile-id>
    python run_pipeline_cli.py reset --owner <profile-id>

While ``start``/``resume`` run, Ctrl+C requests a stop and SIGUSR1 toggles pause.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Dict, List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[4]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.contact_pipeline.core.contracts import PipelineControlError, Stage
from src.functions.contact_pipeline.core.factory import (
    PipelineServices,
    build_services,
    build_step_driver,
    get_controller,
)
from src.functions.contact_pipeline.core.orchestration.config_loader import build_settings
from src.functions.contact_pipeline.core.orchestration.controller import PipelineController

LOG = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the contact enrichment pipeline.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--output",
        choices=("text", "json"),
        default="text",
        help="Output format for results (default: text)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("start", "Start a fresh client-driven run, discarding any checkpoint"),
        ("resume", "Resume the saved client-driven run"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--owner", help="Owner profile id (defaults to PIPELINE_OWNER_ID)")
        sub.add_argument("--dry-run", action="store_true", help="Skip database writes")
        sub.add_argument("--batch-size", type=int, help="Contacts per client batch")
        sub.add_argument(
            "--include-embedding",
            action="store_true",
            help="Also generate embeddings for each batch",
        )
        sub.add_argument("--failures-file", type=Path, help="Write per-contact failures to this JSON file")

    step = subparsers.add_parser("step", help="Run one scheduled invocation")
    step.add_argument("--owner", help="Restrict the invocation to one owner")
    step.add_argument("--dry-run", action="store_true", help="Skip database writes")

    for name, help_text in (
        ("status", "Show checkpoint and pipeline job status"),
        ("enable", "Create or enable the owner's scheduled pipeline job"),
        ("reset", "Clear a failed pipeline job so scheduling resumes"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--owner", help="Owner profile id (defaults to PIPELINE_OWNER_ID)")

    return parser.parse_args(argv)


def _pipeline_overrides(args: argparse.Namespace) -> Dict[str, object]:
    overrides: Dict[str, object] = {}
    if getattr(args, "dry_run", False):
        overrides["dry_run"] = True
    if getattr(args, "batch_size", None):
        overrides["client_batch_size"] = args.batch_size
    if getattr(args, "include_embedding", False):
        overrides["client_stages"] = [Stage.ENRICHMENT, Stage.EXTRACTION, Stage.EMBEDDING]
    return overrides


async def _drive_controller(controller: PipelineController, command: str):
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, controller.stop)
    if hasattr(signal, "SIGUSR1"):
        loop.add_signal_handler(signal.SIGUSR1, controller.pause_resume)
    controller.subscribe(
        lambda progress: LOG.info(
            "Batch %d/%d: %d/%d contacts",
            progress.current_batch,
            progress.total_batches,
            progress.processed,
            progress.total,
        )
    )
    try:
        if command == "start":
            return await controller.start()
        return await controller.resume()
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        if hasattr(signal, "SIGUSR1"):
            loop.remove_signal_handler(signal.SIGUSR1)


def _require_owner(services: PipelineServices) -> str:
    owner_id = services.settings.owner_id
    if not owner_id:
        raise ConfigurationError("An owner id is required (--owner or PIPELINE_OWNER_ID)")
    return owner_id


def run(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_env()
    setup_logging(level="DEBUG" if args.verbose else None)

    try:
        settings = build_settings(
            {"pipeline": _pipeline_overrides(args)},
            owner_id=getattr(args, "owner", None),
        )
        services = build_services(settings)
    except (ConfigurationError, ValueError) as exc:
        LOG.error("Configuration error: %s", exc)
        return 1

    try:
        output = _dispatch(args, services)
    except ConfigurationError as exc:
        LOG.error("%s", exc)
        return 1
    except PipelineControlError as exc:
        LOG.error("%s", exc)
        return 2

    if args.output == "json":
        json.dump(output, sys.stdout, indent=2, default=str)
        sys.stdout.write("\n")
    else:
        _print_summary(args.command, output)

    return 0 if not output.get("errors") else 2


def _dispatch(args: argparse.Namespace, services: PipelineServices) -> Dict[str, object]:
    if args.command in ("start", "resume"):
        owner_id = _require_owner(services)
        controller = get_controller(services, owner_id)
        summary = asyncio.run(_drive_controller(controller, args.command))
        output = summary.to_dict()
        output["usage"] = services.ai_client.get_usage_stats()
        output["failures"] = services.failure_tracker.get_summary()
        if args.failures_file:
            services.failure_tracker.save(args.failures_file)
        return output

    if args.command == "step":
        driver = build_step_driver(services)
        output = asyncio.run(driver.run_invocation(services.settings.owner_id))
        output["usage"] = services.ai_client.get_usage_stats()
        return output

    owner_id = _require_owner(services)
    if args.command == "enable":
        job = services.job_store.enable(owner_id)
        return {"job": job.to_dict()}
    if args.command == "reset":
        job = services.job_store.reset(owner_id)
        return {"job": job.to_dict() if job else None}

    controller = get_controller(services, owner_id)
    job = services.job_store.get(owner_id)
    return {
        "checkpoint": controller.snapshot().to_dict(),
        "job": job.to_dict() if job else None,
    }


def _print_summary(command: str, output: Dict[str, object]) -> None:
    if command in ("start", "resume"):
        LOG.info(
            "Pipeline %s: %s of %s contacts processed",
            "stopped early" if output.get("stopped_early") else "complete",
            output.get("processed"),
            output.get("total"),
        )
        for stage, counters in (output.get("stages") or {}).items():
            LOG.info(
                "  %s: %s succeeded, %s failed, %s skipped",
                stage,
                counters.get("succeeded"),
                counters.get("failed"),
                counters.get("skipped"),
            )
        return
    if command == "step":
        for entry in output.get("results") or []:
            LOG.info(
                "[%s] %s -> %s (%s)",
                entry.get("owner_id"),
                entry.get("stage"),
                entry.get("next_stage"),
                entry.get("error") or entry.get("skipped_reason") or entry.get("status"),
            )
        for entry in output.get("errors") or []:
            LOG.warning("[%s] %s - %s", entry.get("owner_id"), entry.get("stage"), entry.get("message"))
        return
    LOG.info("%s", json.dumps(output, indent=2, default=str))


if __name__ == "__main__":  # pragma: no cover - manual execution entry
    sys.exit(run())
