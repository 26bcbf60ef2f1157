"""Cloud Function entry point for scheduled contact pipeline steps."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

import flask
import functions_framework

# Ensure project root is available on import path
project_root = Path(__file__).parent.parent.parent.parent.parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.contact_pipeline.core.factory import build_services, build_step_driver
from src.functions.contact_pipeline.core.orchestration.config_loader import build_settings

load_env()
setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


def pipeline_batch_handler(request: flask.Request) -> flask.Response:
    """Run one scheduled invocation of the contact pipeline.

    A bearer token scopes the run to that user's pipeline job; without one
    every enabled, non-failed job is stepped.
    """

    if request.method == "OPTIONS":
        return _cors_response({}, status=204)

    if request.method != "POST":
        return _error_response("Method not allowed. Use POST.", status=405)

    payload = request.get_json(silent=True) or {}
    logger.info("Received pipeline invocation with payload keys: %s", list(payload.keys()))

    overrides = {
        "pipeline": {
            "dry_run": payload.get("dry_run"),
            "page_size": payload.get("page_size"),
            "max_execution_seconds": payload.get("max_execution_seconds"),
        }
    }

    try:
        settings = build_settings(overrides)
        services = build_services(settings)
    except ConfigurationError as exc:
        logger.error("Missing configuration: %s", exc)
        return _error_response(f"Configuration error: {exc}", status=500)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to build pipeline configuration")
        return _error_response(f"Configuration error: {exc}", status=500)

    owner_id = _resolve_owner(services.supabase, request.headers.get("Authorization"))
    driver = build_step_driver(services)

    try:
        body = _run_async(driver.run_invocation(owner_id))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Pipeline invocation failed")
        return _cors_response({"success": False, "error": str(exc)}, status=500)

    body["usage"] = services.ai_client.get_usage_stats()
    body["failures"] = services.failure_tracker.get_summary()
    logger.info(
        "Pipeline invocation finished: jobs=%s errors=%s",
        body.get("processed"),
        len(body.get("errors", [])),
    )
    return _cors_response(body)


def health_check_handler(request: flask.Request) -> flask.Response:
    """Health check endpoint returning module status."""

    return _cors_response({"status": "healthy", "module": "contact_pipeline"})


def _resolve_owner(client: Any, authorization: Optional[str]) -> Optional[str]:
    """Return the user id behind a bearer token, or None for scheduled calls."""
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization[len("bearer ") :].strip()
    if not token:
        return None
    try:
        response = client.auth.get_user(token)
    except Exception as exc:  # noqa: BLE001 - unauthenticated calls fall back to all jobs
        logger.warning("Could not resolve user from bearer token: %s", exc)
        return None
    user = getattr(response, "user", None)
    return getattr(user, "id", None)


def _run_async(coro):
    """Run an async coroutine in a new or existing event loop."""
    try:
        return asyncio.run(coro)
    except RuntimeError as exc:
        if "event loop" in str(exc).lower():
            loop = asyncio.new_event_loop()
            try:
                asyncio.set_event_loop(loop)
                return loop.run_until_complete(coro)
            finally:
                loop.close()
        raise


def _cors_response(body: dict[str, Any] | Iterable[Any], status: int = 200) -> flask.Response:
    response = flask.make_response(json.dumps(body, ensure_ascii=False, default=str), status)
    headers = response.headers
    headers["Content-Type"] = "application/json"
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
    headers["Access-Control-Allow-Headers"] = "authorization,x-client-info,apikey,content-type"
    return response


def _error_response(message: str, status: int) -> flask.Response:
    return _cors_response({"status": "error", "message": message}, status=status)


@functions_framework.http
def run_pipeline_batch(request: flask.Request):
    return pipeline_batch_handler(request)


@functions_framework.http
def health_check(request: flask.Request):
    return health_check_handler(request)
