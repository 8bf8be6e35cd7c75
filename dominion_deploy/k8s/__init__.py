"""Kubernetes manifest checks."""

from .ingress import IngressRoute, check_ingress, load_ingress_routes, routes_from_manifest

__all__ = [
    "IngressRoute",
    "check_ingress",
    "load_ingress_routes",
    "routes_from_manifest",
]
