"""
Request construction for the OpenWhisk activations API.
"""

from __future__ import annotations

from typing import Any, Dict

from core.config import PollerConfig
from core.models import RequestSpec

ACTIVATIONS_PATH = "/api/v1/namespaces/{namespace}/activations"
FILTERED = "[FILTERED]"


def activations_url(host: str, namespace: str) -> str:
    """Activations endpoint for *namespace*; bare hosts are reached over HTTPS."""
    base = host if "://" in host else f"https://{host}"
    return base.rstrip("/") + ACTIVATIONS_PATH.format(namespace=namespace)


def construct_request(config: PollerConfig, since: int) -> RequestSpec:
    """Build the activations query for everything that ended after *since*.

    ``limit: 0`` asks the platform for every matching record instead of
    one page.
    """
    return RequestSpec(
        method="get",
        url=activations_url(config.host, config.namespace),
        options={
            "auth": {"user": config.principal, "pass": config.secret},
            "query": {"docs": True, "limit": 0, "skip": 0, "since": since},
        },
    )


def structure_request(request: RequestSpec) -> Dict[str, Any]:
    """Flatten a request into one mapping with string keys, for logging and indexing."""
    structured: Dict[str, Any] = {str(k): v for k, v in request.options.items()}

    auth = structured.get("auth")
    if isinstance(auth, dict) and "pass" in auth:
        structured["auth"] = {**auth, "pass": FILTERED}

    structured["method"] = str(request.method)
    structured["url"] = request.url
    return structured
