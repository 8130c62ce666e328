"""
UCP capability documents served under ``/.well-known``.

Bodies are canonical (sorted keys, compact separators) so the SHA-256 ETag
only changes when the content does.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

from merchforge.config import UCP_CAPABILITIES_PATH, UCP_PRODUCTS_PATH
from merchforge.models.product import UcpCapabilities

UCP_CONTEXT = {
    "@vocab": "https://schema.org/",
    "ucp": "https://example.com/ucp#",
}


def load_ucp_capabilities(path: Path = UCP_CAPABILITIES_PATH) -> UcpCapabilities:
    """Read and validate the capability declaration.

    Raises ``pydantic.ValidationError`` when a field has the wrong shape.
    """
    return UcpCapabilities.model_validate_json(path.read_text(encoding="utf-8"))


def load_ucp_products(path: Path = UCP_PRODUCTS_PATH) -> str:
    """The products document exactly as it is on disk."""
    return path.read_text(encoding="utf-8")


def stable_stringify(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def build_ucp_jsonld(capabilities: UcpCapabilities | None = None) -> dict[str, Any]:
    """schema.org ``Organization`` view of the capability declaration."""
    data = capabilities or load_ucp_capabilities()
    doc: dict[str, Any] = {
        "@context": UCP_CONTEXT,
        "@type": "Organization",
        "identifier": data.merchant_id,
        "areaServed": data.supported_countries,
        "currenciesAccepted": data.supported_currencies,
        "ucp:capabilities": data.capabilities,
    }
    if data.notes:
        doc["description"] = data.notes
    return doc


def etag_for(body: str) -> str:
    return '"' + hashlib.sha256(body.encode("utf-8")).hexdigest() + '"'
