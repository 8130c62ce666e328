import json
import re

import pytest
from pydantic import ValidationError

from merchforge.services.ucp import (
    build_ucp_jsonld,
    etag_for,
    load_ucp_capabilities,
    load_ucp_products,
    stable_stringify,
)


def test_stable_stringify_sorts_keys_compactly():
    assert stable_stringify({"b": 1, "a": {"d": 2, "c": "é"}}) == '{"a":{"c":"é","d":2},"b":1}'


def test_bundled_documents_load():
    caps = load_ucp_capabilities()
    assert caps.merchant_id == "merchforge-demo"
    assert "EUR" in caps.supported_currencies
    assert json.loads(load_ucp_products())["merchant_id"] == caps.merchant_id


def test_jsonld_view():
    caps = load_ucp_capabilities()
    doc = build_ucp_jsonld(caps)
    assert doc["@type"] == "Organization"
    assert doc["@context"]["@vocab"] == "https://schema.org/"
    assert doc["identifier"] == caps.merchant_id
    assert doc["currenciesAccepted"] == caps.supported_currencies
    assert doc["ucp:capabilities"] == caps.capabilities
    assert doc["description"] == caps.notes


def test_etag():
    tag = etag_for('{"a":1}')
    assert re.fullmatch(r'"[0-9a-f]{64}"', tag)
    assert etag_for('{"a":1}') == tag
    assert etag_for('{"a":2}') != tag


@pytest.mark.parametrize(
    "patch",
    [
        {"capabilities": {"offer_create": "yes"}},
        {"merchant_id": "   "},
        {"supported_currencies": "EUR"},
        {"notes": 42},
    ],
)
def test_invalid_capabilities_are_rejected(tmp_path, patch):
    doc = {
        "merchant_id": "shop",
        "capabilities": {"offer_create": True},
        "supported_currencies": ["EUR"],
        "supported_countries": ["DE"],
        **patch,
    }
    path = tmp_path / "caps.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    with pytest.raises(ValidationError):
        load_ucp_capabilities(path)
