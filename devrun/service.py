from __future__ import annotations

import json
import os
from typing import Any

import yaml
from pydantic import ValidationError

from .api_models import ServiceDescriptor
from .errors import ContextError

SERVICE_FILES = ("serverless.yml", "serverless.yaml", "serverless.json")


def find_service_file(service_path: str) -> str | None:
    for name in SERVICE_FILES:
        candidate = os.path.join(service_path, name)
        if os.path.isfile(candidate):
            return candidate
    return None


def _read(path: str) -> Any:
    with open(path, "rt", encoding="utf-8") as f:
        if path.endswith(".json"):
            return json.load(f)
        return yaml.safe_load(f)


def load_service(service_path: str | None) -> ServiceDescriptor:
    """Read the service file found in `service_path`.

    Only the keys the orchestrator needs are read (service name, provider
    defaults, functions with their handlers and events). Raises ContextError
    when `service_path` is not a service root or the file is unusable.
    """
    if not service_path or not os.path.isdir(service_path):
        raise ContextError("This command can only run inside a service")

    root = os.path.abspath(service_path)
    path = find_service_file(root)
    if path is None:
        raise ContextError("This command can only run inside a service")

    try:
        raw = _read(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ContextError(f"Could not read {os.path.basename(path)}: {e}") from e
    if not isinstance(raw, dict):
        raise ContextError(f"{os.path.basename(path)} must contain a mapping")

    try:
        return ServiceDescriptor.model_validate({**raw, "servicePath": root})
    except ValidationError as e:
        raise ContextError(f"Invalid service definition in {os.path.basename(path)}: {e}") from e
