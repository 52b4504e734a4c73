"""Resolve which (day, meal slot) a chat message refers to."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from nutriplan.core.constants import MenuConstants
from nutriplan.core.logging import get_logger
from nutriplan.db.crud_meal_plans import find_day_index
from nutriplan.db.schema import MealTarget
from nutriplan.services.chat.intent import extract_day, extract_meal_type, normalize_message

logger = get_logger("services.chat.target")

HIGHEST_CALORIES = "highest_calories"


def today_name() -> str:
    """Server-local weekday name, lowercase."""
    return datetime.now().strftime("%A").lower()


def _calories(slot: Any) -> float:
    if not isinstance(slot, dict):
        return 0.0
    try:
        return float(slot.get("calories") or 0)
    except (TypeError, ValueError):
        return 0.0


def pick_main_meal(day_entry: Dict[str, Any]) -> str:
    """Slot with the most calories; ties go to the earlier slot."""
    best_type = MenuConstants.MEAL_TYPES[0]
    best_calories = _calories(day_entry.get(best_type))
    for meal_type in MenuConstants.MEAL_TYPES[1:]:
        calories = _calories(day_entry.get(meal_type))
        if calories > best_calories:
            best_type, best_calories = meal_type, calories
    return best_type


def resolve_target(
    message: str,
    week: Optional[List[Dict[str, Any]]],
    default_day: Optional[str] = None,
    *,
    day_only_default_meal: str = "dinner",
    vague_policy: str = HIGHEST_CALORIES,
) -> Optional[MealTarget]:
    """
    Resolve the slot a message is about.

    Args:
        message: Raw chat message
        week: Day entries of the current plan
        default_day: Day to use when none is named (defaults to today)
        day_only_default_meal: Slot used when only a day is named
        vague_policy: "highest_calories" or a slot name, used when neither
            a day nor a slot is named

    Returns:
        MealTarget, or None when the plan is empty or lacks the day
    """
    if not week:
        logger.info("[Target] Plan has no day entries")
        return None

    text = normalize_message(message)
    named_day = extract_day(text)
    meal_type = extract_meal_type(text)
    day = named_day or (default_day or today_name()).lower()

    day_index = find_day_index(week, day)
    if day_index is None:
        logger.info(f"[Target] Day '{day}' not found in plan")
        return None

    if meal_type is None:
        if named_day:
            meal_type = day_only_default_meal
        elif vague_policy == HIGHEST_CALORIES:
            meal_type = pick_main_meal(week[day_index])
        else:
            meal_type = vague_policy

    logger.debug(f"[Target] Resolved {day} {meal_type}")
    return MealTarget(day=day, meal_type=meal_type)


def resolve_missing_day(message: str, default_day: Optional[str] = None) -> str:
    """The day a failed resolution was looking for, for error messages."""
    return extract_day(normalize_message(message)) or (default_day or today_name()).lower()
