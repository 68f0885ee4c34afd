# SPDX-License-Identifier: Apache-2.0
"""Configuration loader for the storefront front end and role services."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml


@dataclass(slots=True)
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    identity_header: str = "X-Authenticated-User"
    login_path: str = "/login"


@dataclass(slots=True)
class RoleBinding:
    role: str
    host: str
    port: int
    timeout_s: float = 2.0


@dataclass(slots=True)
class ServiceConfig:
    role: str
    type: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class StorefrontConfig:
    version: int
    web: WebConfig
    bindings: Dict[str, RoleBinding]
    services: Dict[str, ServiceConfig]
    metrics_port: int = 9108

    def local_services(self) -> Dict[str, ServiceConfig]:
        """Services run in-process: everything not reached through a binding."""
        return {role: svc for role, svc in self.services.items() if role not in self.bindings}


def _parse_web(data: Dict[str, Any]) -> WebConfig:
    return WebConfig(
        host=data.get("host", "0.0.0.0"),
        port=int(data.get("port", 3000)),
        identity_header=data.get("identity_header", "X-Authenticated-User"),
        login_path=data.get("login_path", "/login"),
    )


def _parse_bindings(items: Dict[str, Any]) -> Dict[str, RoleBinding]:
    bindings: Dict[str, RoleBinding] = {}
    for role, payload in items.items():
        if not isinstance(payload, dict) or "port" not in payload:
            raise ValueError(f"binding '{role}' must be a mapping with a port")
        bindings[role] = RoleBinding(
            role=role,
            host=payload.get("host", "127.0.0.1"),
            port=int(payload["port"]),
            timeout_s=float(payload.get("timeout_s", 2.0)),
        )
    return bindings


def _parse_services(items: Dict[str, Any]) -> Dict[str, ServiceConfig]:
    services: Dict[str, ServiceConfig] = {}
    for role, payload in items.items():
        payload = payload or {}
        if not isinstance(payload, dict):
            raise ValueError(f"service '{role}' must be a mapping")
        options = {k: v for k, v in payload.items() if k != "type"}
        services[role] = ServiceConfig(role=role, type=payload.get("type", role), options=options)
    return services


def parse_config(raw: Dict[str, Any]) -> StorefrontConfig:
    return StorefrontConfig(
        version=int(raw.get("version", 1)),
        web=_parse_web(raw.get("web", {}) or {}),
        bindings=_parse_bindings(raw.get("bindings", {}) or {}),
        services=_parse_services(raw.get("services", {}) or {}),
        metrics_port=int(raw.get("metrics_port", 9108)),
    )


def load_config(path: str | Path) -> StorefrontConfig:
    return parse_config(yaml.safe_load(Path(path).read_text()) or {})
