"""Deployment wrapper for the contact pipeline Cloud Function."""

from __future__ import annotations

import sys
from pathlib import Path

import flask
import functions_framework

project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.functions.contact_pipeline.functions.main import (
    health_check_handler,
    pipeline_batch_handler,
)


@functions_framework.http
def run_pipeline_batch(request: flask.Request) -> flask.Response:
    return pipeline_batch_handler(request)


@functions_framework.http
def health_check(request: flask.Request) -> flask.Response:
    return health_check_handler(request)
