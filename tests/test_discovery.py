import asyncio

import pytest

from merchforge.config import DISCOVER_CONSTRAINTS_MESSAGE
from merchforge.models.discover import DiscoverConstraints, DiscoverState
from merchforge.services.discovery import (
    apply_discover_updates,
    filter_inventory,
    is_materials_question,
    merge_constraints,
    parse_constraints,
    process_discover_turn,
    rank_inventory,
    rank_with_relaxation,
    score_item,
    search_catalog,
    to_result,
)


def ids(results):
    return [r.item_id for r in results]


def test_white_tee_ranks_first(inventory):
    results = rank_inventory(DiscoverConstraints(category="tee", color="white"), inventory)
    assert ids(results) == ["tee-01"]
    assert results[0].matched_color == "White"


def test_ranking_is_deterministic(inventory):
    constraints = DiscoverConstraints(category="tee", budget_max=20)
    first = ids(rank_inventory(constraints, inventory))
    assert first == ["tee-01", "tee-02"]
    assert all(ids(rank_inventory(constraints, inventory)) == first for _ in range(5))


def test_results_are_capped(inventory):
    assert len(rank_inventory(DiscoverConstraints(), inventory)) == 3


def test_relaxation_drops_color_first_and_keeps_the_rest(inventory):
    constraints = DiscoverConstraints(category="tee", color="white", materials=["organic"])
    assert rank_inventory(constraints, inventory) == []
    results, relaxed = rank_with_relaxation(constraints, inventory)
    assert relaxed == ["color"]
    assert ids(results) == ["tee-02"]


def test_relaxation_is_cumulative(inventory):
    constraints = DiscoverConstraints(category="tote", color="white", materials=["cotton"])
    results, relaxed = rank_with_relaxation(constraints, inventory)
    assert relaxed == ["color", "materials"]
    assert ids(results) == ["tote-01"]


def test_relaxation_never_drops_category(inventory):
    assert rank_with_relaxation(DiscoverConstraints(category="hoodie"), inventory) == ([], [])


def test_variant_stock_overrides_item_availability(inventory):
    inventory[0] = inventory[0].model_copy(update={"availability_by_variant": {"white|cotton": "out of stock"}})
    white = DiscoverConstraints(color="white", materials=["cotton"])
    black = DiscoverConstraints(color="black", materials=["cotton"])
    assert "tee-01" not in ids(filter_inventory(inventory, white))
    assert "tee-01" in ids(filter_inventory(inventory, black))


def test_unsearchable_and_out_of_stock_items_are_filtered(inventory):
    inventory[1] = inventory[1].model_copy(update={"availability": "preorder"})
    inventory[2] = inventory[2].model_copy(update={"is_eligible_search": False})
    assert ids(filter_inventory(inventory, DiscoverConstraints())) == ["tee-01", "mug-01"]


def test_score(inventory):
    tee_02 = inventory[1]
    constraints = DiscoverConstraints(
        category="tee", sustainable=True, materials=["organic", "cotton"], color="forest", size="M"
    )
    assert score_item(tee_02, constraints) == 3 + 2 + 2 + 1 + 1
    assert score_item(tee_02, DiscoverConstraints()) == 0


def test_to_result(inventory):
    result = to_result(inventory[0], DiscoverConstraints(category="tee", budget_max=20, color="black"))
    assert result.price == "€10.00"
    assert result.reason == "matches tee, under €20"
    assert result.image_url.startswith("http") and result.image_url.endswith("/images/tee-01.png")
    assert result.image_url_selected.endswith("/images/tee-01-black.png")
    assert result.image_url_fallback.endswith("/images/tee-01-white.png")
    wire = result.model_dump(by_alias=True, exclude_none=True)
    assert wire["leadTimeDays"] == 5
    assert wire["matchedColor"] == "Black"


def test_min_qty_reason(inventory):
    inventory[0].attributes.min_qty = 25
    assert to_result(inventory[0], DiscoverConstraints(quantity=10)).reason == "min qty 25"
    assert to_result(inventory[3], DiscoverConstraints()).reason == "popular pick"


@pytest.mark.parametrize(
    "message, expected",
    [
        ("sustainable tees under 20 for my team", {"category": "tee", "sustainable": True, "budgetMax": 20.0, "occasion": "team"}),
        ("need it within 10 days", {"leadTimeMax": 10}),
        ("poly hoodie size l", {"category": "hoodie", "materials": ["polyester"], "size": "L"}),
        ("50 mugs in march", {"category": "mug", "quantity": 50, "eventDate": "march"}),
        ("anything around €25", {"budgetMax": 25.0}),
    ],
)
def test_parse_constraints(message, expected):
    assert parse_constraints(message) == expected


def test_days_are_not_a_budget():
    parsed = parse_constraints("under 10 days please")
    assert parsed == {"leadTimeMax": 10}


def test_merge_constraints_is_additive():
    merged = merge_constraints(DiscoverConstraints(category="tee", budget_max=20), {"color": "navy", "stage": "results"})
    assert (merged.category, merged.budget_max, merged.color) == ("tee", 20, "navy")


def test_materials_question(inventory):
    assert is_materials_question("What fabrics do you have?")
    assert not is_materials_question("a white tee")

    state = DiscoverState(stage="constraints", constraints=DiscoverConstraints(category="tee"))
    result = asyncio.run(process_discover_turn("which materials are there?", state, items=inventory))
    assert result.assistant_message == "Available materials right now: cotton, organic. Do you have a preference?"
    assert result.updates == {}
    assert result.results == []


def test_keyword_only_turn_when_model_is_unavailable(inventory):
    result = asyncio.run(process_discover_turn("a white tee", DiscoverState(), items=inventory))
    assert result.fallback_used
    assert result.assistant_message == DISCOVER_CONSTRAINTS_MESSAGE
    assert result.updates == {"category": "tee", "color": "white", "stage": "constraints"}
    assert ids(result.results) == ["tee-01"]


def test_relaxed_turn_explains_itself(inventory):
    result = asyncio.run(process_discover_turn("a navy tee", DiscoverState(stage="results"), items=inventory))
    assert result.relaxed == ["color"]
    assert result.assistant_message.startswith("We don't have an exact match for that color")
    assert ids(result.results) == ["tee-01", "tee-02"]


def test_model_selection_reorders_and_keywords_win(inventory, script):
    complete = script(
        {
            "assistant": "Try these",
            "updates": {"budgetMax": 20, "occasion": "team", "stage": "results"},
            "selection": {"primaryIds": ["tee-02"], "fallbackIds": ["tee-01", "ghost"], "rationale": "Great gift picks"},
        }
    )
    state = DiscoverState(stage="constraints", constraints=DiscoverConstraints(category="tee"))
    result = asyncio.run(process_discover_turn("something as a gift", state, complete=complete, items=inventory))

    assert not result.fallback_used
    assert result.assistant_message == "Try these"
    assert result.updates == {"budgetMax": 20, "occasion": "gift", "stage": "results"}
    assert ids(result.results) == ["tee-02", "tee-01"]
    assert {r.reason for r in result.results} == {"Great gift picks"}


def test_apply_discover_updates():
    state = apply_discover_updates(DiscoverState(), {"category": "tee", "stage": "constraints"})
    state = apply_discover_updates(state, {"budgetMax": 15})
    assert state.stage == "constraints"
    assert (state.constraints.category, state.constraints.budget_max) == ("tee", 15)


def test_search_catalog(inventory):
    assert search_catalog("TEE", items=inventory)[0] == 2
    assert [i.item_id for i in search_catalog(color="White", items=inventory)[1]] == ["tee-01", "mug-01"]
    assert [i.item_id for i in search_catalog(material="cotton", max_price=12, items=inventory)[1]] == ["tee-01"]
    assert search_catalog(q="eco", category="tote", items=inventory)[0] == 1

    count, page = search_catalog(limit=1, items=inventory)
    assert count == 4
    assert len(page) == 1
