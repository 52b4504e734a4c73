"""
Builds the preference context that every meal prompt is filled from.
"""
from typing import Any, Dict, List, Mapping, Optional, Union

from nutriplan.db.models import UserModel
from nutriplan.db.schema import PreferenceContext

UserLike = Union[UserModel, Mapping[str, Any], None]

# Attribute name on the ORM model -> key accepted in plain dicts
_PROFILE_FIELDS = {
    "id": "id",
    "age": "age",
    "gender": "gender",
    "height": "height",
    "current_weight": "currentWeight",
    "goal_weight": "goalWeight",
    "food_allergies": "foodAllergies",
    "preferences": "preferences",
}


def _read_profile(user: UserLike) -> Dict[str, Any]:
    if user is None:
        return {}
    if isinstance(user, Mapping):
        return {
            attr: user.get(attr, user.get(camel))
            for attr, camel in _PROFILE_FIELDS.items()
        }
    return {attr: getattr(user, attr, None) for attr in _PROFILE_FIELDS}


def _text(value: Any, default: str) -> str:
    if value is None or value == "" or value == []:
        return default
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def build_preference_context(user: UserLike, user_id: Optional[str] = None) -> PreferenceContext:
    """
    Flatten a user record into a PreferenceContext.

    Accepts an ORM user, a plain dict (camelCase or snake_case keys) or None.
    Never mutates the input; every missing field falls back to its named default.
    """
    profile = _read_profile(user)
    prefs = dict(profile.get("preferences") or {})
    allergies = _string_list(profile.get("food_allergies"))

    return PreferenceContext(
        user_id=str(profile.get("id") or user_id or "anonymous"),
        health_goals="Weight management" if profile.get("goal_weight") else "General wellness",
        restrictions=list(allergies),
        allergies=list(allergies),
        activity_level=_text(prefs.get("activityLevel"), "Moderate"),
        meat_preference=_text(prefs.get("meatPreference"), "Any"),
        goals=_text(prefs.get("goals"), "General wellness"),
        craving_type=_text(prefs.get("cravingType"), "None"),
        cravings_frequency=_text(prefs.get("cravingsFrequency"), "Rarely"),
        digestive_upset=_text(prefs.get("digestiveUpset"), "Never"),
        fatigue_time=_text(prefs.get("fatigueTime"), "Not specified"),
        medical_conditions=_text(prefs.get("medicalConditions"), "None"),
        foods_to_avoid=_text(_string_list(prefs.get("foodsToAvoid")) + _string_list(prefs.get("dislikedMeals")), "None"),
        other_preferences=_text(prefs.get("otherPreferences"), "None"),
        gender=_text(profile.get("gender"), "Not specified"),
        current_weight=_text(profile.get("current_weight"), "Not specified"),
        goal_weight=_text(profile.get("goal_weight"), "Not specified"),
        height=_text(profile.get("height"), "Not specified"),
        age=_text(profile.get("age"), "Not specified"),
        cuisine_preferences=_text(prefs.get("cuisine"), "Any"),
        recipe_mode=bool(prefs.get("recipeMode", False)),
    )


def profile_summary(user: UserLike) -> str:
    """Short profile block for general chat prompts."""
    context = build_preference_context(user)
    allergies = ", ".join(context.allergies) if context.allergies else "None"
    return "\n".join([
        f"- Age: {context.age}",
        f"- Gender: {context.gender}",
        f"- Height: {context.height} cm",
        f"- Current weight: {context.current_weight} kg",
        f"- Goal weight: {context.goal_weight}",
        f"- Allergies: {allergies}",
        f"- Activity level: {context.activity_level}",
        f"- Meat preference: {context.meat_preference}",
        f"- Preferred cuisine: {context.cuisine_preferences}",
    ])
