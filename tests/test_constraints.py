import pytest

from merchforge.services.catalog import find_product
from merchforge.services.constraints import (
    CustomizationLimits,
    decode_customization_updates,
    validate_customization_updates,
    validate_discover_updates,
)

TEE = find_product("classic-tee")
TOTE = find_product("tote")


@pytest.mark.parametrize(
    "raw, product",
    [
        ({"productId": "Classic Tee", "productColor": "NAVY", "size": "xxl", "text": "  Stay   Wild "}, None),
        ({"color": "Forest", "iconId": "Star", "quantity": 3.7, "textColor": "White"}, TEE),
        ({"productId": "string", "productColor": "color", "size": "size", "action": "checkout"}, None),
        ({"productId": "mug", "productColor": "navy", "quantity": -4, "vibe": "Retro"}, None),
        ({"text": "x" * 80, "iconId": "dragon", "quantity": True, "stage": "preview"}, TOTE),
    ],
)
def test_validation_is_idempotent(raw, product):
    once = validate_customization_updates(raw, product=product)
    assert validate_customization_updates(once, product=product) == once


@pytest.mark.parametrize("n", range(-20, 150, 7))
def test_quantity_is_clamped(n):
    quantity = validate_customization_updates({"quantity": n})["quantity"]
    assert 1 <= quantity <= 99
    if 1 <= n <= 99:
        assert quantity == n


def test_quantity_is_floored_and_rejects_booleans():
    assert validate_customization_updates({"quantity": 4.9}) == {"quantity": 4}
    assert validate_customization_updates({"quantity": True}) == {}
    assert validate_customization_updates({"quantity": "5"}) == {}


def test_text_length_boundary():
    limits = CustomizationLimits(text_max_length=18)
    assert validate_customization_updates({"text": "a" * 18}, limits=limits) == {"text": "a" * 18}
    assert validate_customization_updates({"text": "a" * 19}, limits=limits) == {}

    default_max = CustomizationLimits().text_max_length
    assert "text" in validate_customization_updates({"text": "b" * default_max})
    assert "text" not in validate_customization_updates({"text": "b" * (default_max + 1)})


def test_text_whitespace_is_collapsed():
    assert validate_customization_updates({"text": "  Good \n  Vibes  "}) == {"text": "Good Vibes"}


def test_placeholders_are_dropped():
    raw = {"productColor": "string", "textColor": "color", "size": "size", "text": "string"}
    updates, errors = decode_customization_updates(raw)
    assert updates == {}
    assert set(errors) == {"productColor", "textColor", "size", "text"}


def test_product_color_checked_against_resolved_product():
    assert validate_customization_updates({"productColor": "Natural"}, product=TEE) == {}
    assert validate_customization_updates({"productColor": "Navy"}, product=TEE) == {"productColor": "navy"}


def test_product_color_before_product_uses_catalog_colors():
    assert validate_customization_updates({"productColor": "charcoal"}) == {"productColor": "charcoal"}
    assert validate_customization_updates({"productColor": "teal"}) == {}


def test_product_in_same_update_wins_over_context():
    updates = validate_customization_updates({"productId": "mug", "productColor": "navy"}, product=TEE)
    assert updates == {"productId": "mug"}


def test_color_alias_maps_to_product_color():
    assert validate_customization_updates({"color": "White"}, product=TEE) == {"productColor": "white"}


def test_size_rules():
    assert validate_customization_updates({"size": "xxl"}) == {"size": "2XL"}
    assert validate_customization_updates({"size": "m"}, product=TEE) == {"size": "M"}
    assert validate_customization_updates({"size": "M"}, product=TOTE) == {}
    assert validate_customization_updates({"size": "XXXS"}) == {}


def test_icon_and_action_vocabularies():
    assert validate_customization_updates({"iconId": "Heart"}) == {"iconId": "heart"}
    assert validate_customization_updates({"iconId": "dragon"}) == {}
    assert validate_customization_updates({"action": "add_to_cart"}) == {"action": "add_to_cart"}
    assert validate_customization_updates({"action": "delete_everything"}) == {}


@pytest.mark.parametrize("raw", [None, "navy tee", 42, ["productId"]])
def test_non_mapping_input_yields_nothing(raw):
    assert validate_customization_updates(raw) == {}
    assert validate_discover_updates(raw) == {}


def test_discover_updates():
    raw = {
        "category": "T-Shirt",
        "budgetMax": 20,
        "leadTimeMax": -3,
        "materials": ["Cotton", 7, None, "cotton", "string"],
        "tags": "eco",
        "sustainable": "yes",
        "quantity": 0.4,
        "color": "Navy",
        "size": "xxl",
        "stage": "results",
        "occasion": "team",
    }
    assert validate_discover_updates(raw) == {
        "category": "tee",
        "budgetMax": 20,
        "materials": ["cotton"],
        "quantity": 1,
        "color": "navy",
        "size": "2XL",
        "stage": "results",
        "occasion": "team",
    }


def test_discover_updates_are_idempotent():
    once = validate_discover_updates({"category": "bag", "budgetMax": 12.5, "tags": ["Eco", "eco"], "sustainable": True})
    assert validate_discover_updates(once) == once
