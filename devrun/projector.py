from __future__ import annotations

import os
from typing import Any, Iterator

from .api_models import (
    DEFAULT_MEMORY_SIZE,
    DEFAULT_RUNTIME,
    DEFAULT_TIMEOUT_S,
    FunctionDefinition,
    FunctionDeploymentConfig,
    FunctionEntry,
    FunctionProvider,
    GatewayConfiguration,
    ServiceDescriptor,
    Subscription,
)
from .settings import Settings, settings as default_settings


def function_id(service: str, function_name: str) -> str:
    return f"{service}-{function_name}"


def split_handler(handler: str) -> tuple[str, str]:
    """`src/handler.hello` -> (`src/handler`, `hello`)."""
    module, sep, name = handler.rpartition(".")
    if not sep or not module or not name:
        raise ValueError(f"Invalid handler '{handler}'. Expected '<module>.<function>'.")
    return module, name


def project_function(
    descriptor: ServiceDescriptor, function_name: str, fn: FunctionDefinition
) -> FunctionDeploymentConfig:
    provider = descriptor.provider
    module, handler_name = split_handler(fn.handler)

    labels = dict(provider.labels)
    labels.update(fn.labels or {})
    environment = dict(provider.environment)
    environment.update(fn.environment or {})

    return FunctionDeploymentConfig(
        function_id=function_id(descriptor.service, function_name),
        handler_path=os.path.join(descriptor.service_path, module),
        handler_name=handler_name,
        runtime=fn.runtime or provider.runtime or DEFAULT_RUNTIME,
        memory_size=fn.memory_size or provider.memory_size or DEFAULT_MEMORY_SIZE,
        timeout=fn.timeout or provider.timeout or DEFAULT_TIMEOUT_S,
        labels=labels,
        environment=environment,
    )


def project_deployment(descriptor: ServiceDescriptor) -> list[FunctionDeploymentConfig]:
    """One merged deployment config per function, in descriptor order."""
    return [project_function(descriptor, name, fn) for name, fn in descriptor.functions.items()]


def _normalize_path(path: str) -> str:
    path = path.strip()
    return path if path.startswith("/") else f"/{path}"


def _parse_http(cfg: Any) -> tuple[str, str]:
    """Accepts `{path, method}`, `"GET /foo"` or `"/foo"`; returns (method, path)."""
    if isinstance(cfg, dict):
        path = cfg.get("path")
        method = cfg.get("method") or "GET"
    elif isinstance(cfg, str):
        parts = cfg.split()
        if len(parts) == 2:
            method, path = parts
        elif len(parts) == 1:
            method, path = "GET", parts[0]
        else:
            path, method = None, "GET"
    else:
        path, method = None, "GET"
    if not path:
        raise ValueError(f"http event needs a path, got {cfg!r}")
    return str(method).upper(), _normalize_path(str(path))


def iter_events(events: list[Any]) -> Iterator[tuple[str, Any]]:
    """Yield (event type, event config) for each trigger of a function."""
    for ev in events:
        if isinstance(ev, str):
            yield ev, None
        elif isinstance(ev, dict) and len(ev) == 1:
            (name, cfg), = ev.items()
            yield str(name), cfg
        else:
            raise ValueError(f"Unsupported event definition: {ev!r}")


def invoke_url(
    emulator_url: str, service: str, function_name: str, settings: Settings = default_settings
) -> str:
    return f"{emulator_url.rstrip('/')}{settings.emulator_invoke_path}/{service}/{function_name}"


def project_registration(
    descriptor: ServiceDescriptor, emulator_url: str, settings: Settings = default_settings
) -> GatewayConfiguration:
    """Gateway functions and subscriptions for every function and trigger.

    Function ids must be unique, as must HTTP paths and event names across
    all subscriptions; a collision raises ValueError instead of being
    silently merged.
    """
    functions: list[FunctionEntry] = []
    subscriptions: list[Subscription] = []
    seen_functions: set[str] = set()
    seen_subscriptions: set[tuple[str, ...]] = set()

    for name, fn in descriptor.functions.items():
        fid = function_id(descriptor.service, name)
        if fid in seen_functions:
            raise ValueError(f"Duplicate function id '{fid}'")
        seen_functions.add(fid)
        functions.append(
            FunctionEntry(
                function_id=fid,
                provider=FunctionProvider(type="http", url=invoke_url(emulator_url, descriptor.service, name, settings)),
            )
        )

        for event, cfg in iter_events(fn.events):
            if event == "http":
                method, path = _parse_http(cfg)
                sub = Subscription(event="http", function_id=fid, method=method, path=path)
            else:
                sub = Subscription(event=event, function_id=fid)
            if sub.key in seen_subscriptions:
                raise ValueError(f"Duplicate subscription {sub.key} for function '{name}'")
            seen_subscriptions.add(sub.key)
            subscriptions.append(sub)

    return GatewayConfiguration(functions=functions, subscriptions=subscriptions)
