"""Load and check ALB-backed Ingress manifests.

Every public hostname must be served over HTTPS only, through the ``alb``
ingress class, with a certificate and an explicit target-group health check.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

PathLike = Union[str, Path]

ALB_PREFIX = "alb.ingress.kubernetes.io/"
INGRESS_CLASS = "alb"
HTTPS_PORT = 443
STATUS_CODE_RE = re.compile(r"^\d{3}(-\d{3})?$")


@dataclass
class IngressRoute:
    """One host rule of an Ingress, with the ALB settings that apply to it."""

    name: str
    namespace: str
    host: str
    path: str
    path_type: str
    service: str
    service_port: int | None
    ingress_class: str = ""
    scheme: str = ""
    certificate_arn: str = ""
    listen_ports: List[Dict[str, int]] = field(default_factory=list)
    healthcheck_path: str = ""
    healthcheck_port: str = ""
    success_codes: List[str] = field(default_factory=list)
    source: str = ""

    @property
    def is_https_only(self) -> bool:
        if not self.listen_ports:
            return False
        return all(
            list(p.keys()) == ["HTTPS"] and p["HTTPS"] == HTTPS_PORT
            for p in self.listen_ports
        )


def _parse_listen_ports(value: str | None) -> List[Dict[str, int]]:
    if not value:
        return []
    try:
        ports = json.loads(value)
    except json.JSONDecodeError:
        return []
    if not isinstance(ports, list):
        return []
    return [p for p in ports if isinstance(p, dict)]


def routes_from_manifest(doc: Dict[str, Any], source: str = "") -> List[IngressRoute]:
    """Build one IngressRoute per host/path of an Ingress document.

    Non-Ingress documents yield nothing.
    """
    if not isinstance(doc, dict) or doc.get("kind") != "Ingress":
        return []

    metadata = doc.get("metadata") or {}
    annotations = metadata.get("annotations") or {}
    spec = doc.get("spec") or {}

    def annotation(key: str) -> str:
        return str(annotations.get(ALB_PREFIX + key, "")).strip()

    codes = annotation("success-codes")

    routes = []
    for rule in spec.get("rules") or []:
        for p in (rule.get("http") or {}).get("paths") or []:
            service = ((p.get("backend") or {}).get("service")) or {}
            port = (service.get("port") or {}).get("number")
            routes.append(
                IngressRoute(
                    name=metadata.get("name", "?"),
                    namespace=metadata.get("namespace", "default"),
                    host=rule.get("host", ""),
                    path=p.get("path", "/"),
                    path_type=p.get("pathType", ""),
                    service=service.get("name", ""),
                    service_port=int(port) if port is not None else None,
                    ingress_class=spec.get("ingressClassName", ""),
                    scheme=annotation("scheme"),
                    certificate_arn=annotation("certificate-arn"),
                    listen_ports=_parse_listen_ports(annotation("listen-ports")),
                    healthcheck_path=annotation("healthcheck-path"),
                    healthcheck_port=annotation("healthcheck-port"),
                    success_codes=[c.strip() for c in codes.split(",") if c.strip()],
                    source=source,
                )
            )
    return routes


def load_ingress_routes(path: PathLike) -> List[IngressRoute]:
    """Read every Ingress route from a (multi-document) YAML file."""
    path = Path(path)
    with open(path) as f:
        docs = list(yaml.safe_load_all(f))

    routes = []
    for doc in docs:
        routes.extend(routes_from_manifest(doc, source=str(path)))
    return routes


def check_ingress(route: IngressRoute) -> List[str]:
    """Return problems with a route; an empty list means it is acceptable."""
    label = f"Ingress/{route.name} ({route.host or 'no host'})"
    problems = []

    if route.ingress_class != INGRESS_CLASS:
        problems.append(f"{label}: ingressClassName must be '{INGRESS_CLASS}'")
    if not route.host:
        problems.append(f"{label}: rule has no host")
    if not route.path_type:
        problems.append(f"{label}: path '{route.path}' missing pathType")
    if not route.service or route.service_port is None:
        problems.append(f"{label}: backend service name and port are required")
    if not route.is_https_only:
        problems.append(f"{label}: listen-ports must be HTTPS {HTTPS_PORT} only")
    if not route.certificate_arn:
        problems.append(f"{label}: no certificate-arn for HTTPS listener")
    if not route.healthcheck_path:
        problems.append(f"{label}: no healthcheck-path")
    if not route.success_codes:
        problems.append(f"{label}: no success-codes")
    elif not all(STATUS_CODE_RE.match(c) for c in route.success_codes):
        problems.append(f"{label}: success-codes must be HTTP status codes or ranges")

    return problems
