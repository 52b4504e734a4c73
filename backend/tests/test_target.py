"""
Tests for resolving which meal slot a message refers to.
"""
from conftest import make_week, meal

from nutriplan.services.chat.target import pick_main_meal, resolve_missing_day, resolve_target


def test_day_and_slot_named():
    target = resolve_target("replace tuesday's breakfast", make_week(), "monday")
    assert (target.day, target.meal_type) == ("tuesday", "breakfast")


def test_day_only_defaults_to_dinner():
    target = resolve_target("change something on friday", make_week(), "monday")
    assert (target.day, target.meal_type) == ("friday", "dinner")


def test_day_only_policy_is_configurable():
    target = resolve_target("change something on friday", make_week(), "monday", day_only_default_meal="lunch")
    assert target.meal_type == "lunch"


def test_slot_only_uses_default_day():
    target = resolve_target("I don't like my lunch", make_week(), "wednesday")
    assert (target.day, target.meal_type) == ("wednesday", "lunch")


def test_vague_request_picks_highest_calorie_slot():
    week = make_week(["monday"])
    week[0]["lunch"] = meal("Big Burrito", 900)
    target = resolve_target("I want something else", week, "monday")
    assert target.meal_type == "lunch"


def test_vague_policy_can_name_a_slot():
    target = resolve_target("I want something else", make_week(), "monday", vague_policy="breakfast")
    assert target.meal_type == "breakfast"


def test_main_meal_ties_go_to_earlier_slot():
    entry = {"day": "monday", "breakfast": meal("A", 500), "lunch": meal("B", 500), "dinner": meal("C", 400)}
    assert pick_main_meal(entry) == "breakfast"


def test_missing_day_returns_none():
    week = make_week(["tuesday", "wednesday"])
    assert resolve_target("replace monday's lunch", week, "tuesday") is None
    assert resolve_missing_day("replace monday's lunch", "tuesday") == "monday"


def test_empty_plan_returns_none():
    assert resolve_target("change my dinner", [], "monday") is None
    assert resolve_target("change my dinner", None, "monday") is None


def test_day_lookup_is_case_insensitive():
    week = make_week(["Monday"])
    target = resolve_target("change my dinner", week, "monday")
    assert target.day == "monday"
