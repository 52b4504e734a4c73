"""Rule-based intent classification for chat messages.

Rules are evaluated in a fixed order and the first predicate that matches
decides the intent:

1. meal plan query      -> NONE (reads never trigger writes or recipes)
2. confirmation         -> CONFIRMATION (only while a replacement is pending)
3. direct replacement   -> DIRECT_REPLACEMENT
4. replacement request  -> REPLACEMENT
5. modification request -> MODIFICATION
6. recipe request       -> RECIPE
7. anything else        -> NONE
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Tuple

from nutriplan.core.constants import LimitsConstants, MenuConstants
from nutriplan.core.logging import get_logger
from nutriplan.db.schema import IntentKind, IntentResult

logger = get_logger("services.chat.intent")

_DAYS = "|".join(MenuConstants.DAYS_OF_WEEK)
_MEALS = "|".join(MenuConstants.MEAL_TYPES)


def _compile(patterns: List[str]) -> List[Pattern[str]]:
    return [re.compile(p) for p in patterns]


PLAN_QUERY_PHRASES = [
    "what's my meal plan",
    "what is my meal plan",
    "show my meal plan",
    "show me my meal plan",
    "today's meal plan",
    "view my meal plan",
    "view my meals",
    "show my meals",
    "what am i eating",
]

REPLACEMENT_PATTERNS = _compile([
    rf"\b(change|replace|update)\b.*\b({_MEALS}|meal)\b",
    rf"\b(change|replace|update)\b.*\b({_DAYS})\b",
    r"\b(different|substitute)\b.*\bmeal\b",
    rf"\bi want\b.*\b({_MEALS})\b",
    rf"\bmake\b.*\b({_MEALS})\b",
    rf"\b(don't|dont|do not)\s+(like|want)\b.*\b({_MEALS}|meal)\b",
    r"\bhate\b.*\bfood\b",
])

REPLACEMENT_KEYWORDS = _compile([
    r"\bsomething else\b",
    r"\balternative meal\b",
    r"\bwithout\b",
    r"\binstead of\b",
    r"\bswap\b",
    r"\bmodify\b",
])

# Stricter family: the user names what they want, so the change is made right away
DIRECT_REPLACEMENT_PATTERNS = _compile([
    r"\breplace\b.*\bwith\s+\w+",
    r"\bchange\b.*\bto\s+\w+",
    r"\bswap\b.*\bwith\s+\w+",
    r"\bsubstitute\b.*\bwith\s+\w+",
    rf"\bi want\b.*\w+.*\bfor\b.*\b({_MEALS})\b",
    rf"\bmake\b.*\b({_MEALS})\b\W+\w+",
])

# Phrases that ask for the change to be applied without showing options first
AUTO_APPLY_KEYWORDS = _compile([
    r"\b(change|replace|update|swap) it\b",
    r"\byes,? replace\b",
    r"\bdo it\b",
    r"\bgo ahead\b",
    r"\byes please\b",
])

OPTION_PATTERNS = _compile([
    r"\breplace\b.*\bwith\b.*\boption\s*(\d+)",
    r"\bgo\b.*\bahead\b.*\bwith\b.*\boption\s*(\d+)",
    r"\boption\s*#?\s*(\d+)",
    r"\bnumber\s*(\d+)",
])

_ORDINALS = {"first": 1, "1st": 1, "second": 2, "2nd": 2, "third": 3, "3rd": 3}
ORDINAL_PATTERN = re.compile(r"\b(first|1st|second|2nd|third|3rd)\s+(one|option)\b")

AFFIRMATIVE_PATTERN = re.compile(
    r"^\s*(yes|yeah|yep|sure|ok|okay|go ahead|sounds good|perfect|that works|do it|please do|let's do it)\b"
)

MODIFICATION_KEYWORDS = [
    "make it healthier", "make it spicier", "make it milder", "add more protein",
    "make it vegan", "make it vegetarian", "gluten-free", "gluten free", "low-carb",
    "low carb", "keto", "more filling", "lighter meal", "make it lighter",
    "quicker to cook", "use different ingredients",
]

RECIPE_KEYWORDS = _compile([
    r"\brecipe\b", r"\bhow to make\b", r"\bhow to cook\b", r"\bingredients for\b",
    r"\bcooking instructions\b", r"\bpreparation method\b", r"\bcooking steps\b",
    r"\bcook\b", r"\bprepare\b", r"\bbake\b", r"\bfry\b", r"\bboil\b", r"\bgrill\b",
    r"\broast\b", r"\bsteam\b", r"\bsauté\b", r"\bsaute\b", r"\bingredients\b",
])

FOOD_ITEMS = [
    "besan cheela", "pasta", "biryani", "curry", "soup", "salad", "bread", "cake",
    "cookies", "pizza", "sandwich", "smoothie", "juice", "tea", "coffee", "dal",
    "rice", "chicken", "fish", "vegetables", "eggs", "pancakes", "omelette", "roti",
    "chapati", "paratha", "dosa", "idli", "samosa", "pulao", "rajma", "chole",
    "paneer", "tikka", "kebab", "masala", "sabzi",
]
FOOD_ITEM_PATTERNS = [(food, re.compile(rf"\b{re.escape(food)}\b")) for food in FOOD_ITEMS]


@dataclass(frozen=True)
class SessionState:
    """Per-session facts the classifier needs."""

    has_pending: bool = False
    recipe_mode: bool = False


def normalize_message(message: str) -> str:
    text = message.lower().replace("’", "'").replace("‘", "'")
    return re.sub(r"\s+", " ", text).strip()


def _any(patterns: List[Pattern[str]], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def is_plan_query(text: str, state: SessionState) -> bool:
    return any(phrase in text for phrase in PLAN_QUERY_PHRASES)


def is_replacement(text: str, state: SessionState) -> bool:
    return _any(REPLACEMENT_PATTERNS, text) or _any(REPLACEMENT_KEYWORDS, text)


def is_direct_replacement(text: str, state: SessionState) -> bool:
    if not is_replacement(text, state):
        return False
    return _any(DIRECT_REPLACEMENT_PATTERNS, text) or _any(AUTO_APPLY_KEYWORDS, text)


def extract_option_number(text: str) -> Optional[int]:
    """1-based option number mentioned in the message, if any."""
    for pattern in OPTION_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    match = ORDINAL_PATTERN.search(text)
    if match:
        return _ORDINALS[match.group(1)]
    return None


def is_confirmation(text: str, state: SessionState) -> bool:
    if not state.has_pending:
        return False
    if extract_option_number(text) is not None:
        return True
    # "yes, but change my lunch instead" is a new request
    return bool(AFFIRMATIVE_PATTERN.search(text)) and not is_replacement(text, state)


def is_modification(text: str, state: SessionState) -> bool:
    return any(keyword in text for keyword in MODIFICATION_KEYWORDS)


def mentioned_food_item(text: str) -> Optional[str]:
    for food, pattern in FOOD_ITEM_PATTERNS:
        if pattern.search(text):
            return food
    return None


def is_recipe_request(text: str, state: SessionState) -> bool:
    if _any(RECIPE_KEYWORDS, text) or mentioned_food_item(text):
        return True
    return state.recipe_mode and len(text) < LimitsConstants.RECIPE_MODE_SHORT_MESSAGE


def _always(text: str, state: SessionState) -> bool:
    return True


Predicate = Callable[[str, SessionState], bool]

INTENT_RULES: List[Tuple[str, Predicate, IntentKind]] = [
    ("plan_query", is_plan_query, IntentKind.NONE),
    ("confirmation", is_confirmation, IntentKind.CONFIRMATION),
    ("direct_replacement", is_direct_replacement, IntentKind.DIRECT_REPLACEMENT),
    ("replacement", is_replacement, IntentKind.REPLACEMENT),
    ("modification", is_modification, IntentKind.MODIFICATION),
    ("recipe", is_recipe_request, IntentKind.RECIPE),
    ("fallback", _always, IntentKind.NONE),
]


def extract_day(text: str) -> Optional[str]:
    match = re.search(rf"\b({_DAYS})\b", text)
    return match.group(1) if match else None


def extract_meal_type(text: str) -> Optional[str]:
    """First slot whose keyword appears, checked breakfast -> lunch -> dinner."""
    for meal_type, words in MenuConstants.MEAL_TYPE_SYNONYMS.items():
        if any(re.search(rf"\b{word}\b", text) for word in words):
            return meal_type
    return None


def classify(message: str, state: Optional[SessionState] = None) -> IntentResult:
    """Classify a chat message using the ordered rule table."""
    state = state or SessionState()
    text = normalize_message(message)

    rule_name, kind = "fallback", IntentKind.NONE
    for name, predicate, rule_kind in INTENT_RULES:
        if predicate(text, state):
            rule_name, kind = name, rule_kind
            break

    option_number = extract_option_number(text) if kind == IntentKind.CONFIRMATION else None

    result = IntentResult(
        kind=kind,
        day=extract_day(text),
        meal_type=extract_meal_type(text),
        option_index=option_number - 1 if option_number is not None else None,
        is_direct=kind == IntentKind.DIRECT_REPLACEMENT,
        is_plan_query=rule_name == "plan_query",
    )
    logger.debug(f"[Intent] rule={rule_name} kind={kind.value} day={result.day} meal={result.meal_type}")
    return result
