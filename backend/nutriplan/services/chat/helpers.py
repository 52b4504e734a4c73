"""
Response composition helpers for the chat orchestrator.
"""
import random
from typing import Dict, List, Optional, Sequence

from nutriplan.db.schema import (
    MealModification,
    MealSlot,
    MutationResult,
    ReplacementCandidate,
    ReplacementSuggestions,
)

QUICK_REPLIES: Dict[str, List[str]] = {
    "suggestions": [
        "Replace it with option 1",
        "Replace it with option 2",
        "Replace it with option 3",
        "Show me more alternatives",
    ],
    "applied": [
        "Show me the recipe details",
        "Change another meal",
        "See more alternatives",
        "View updated meal plan",
    ],
    "modification": [
        "Show original meal",
        "Make it even healthier",
        "Try different modification",
        "Replace this meal instead",
    ],
    "recipe": [
        "Show me another recipe",
        "Quick 15-minute recipes",
        "Make it healthier",
        "Suggest ingredient substitutes",
    ],
    "recipe_mode": [
        "Pasta recipe",
        "Indian curry",
        "Healthy salad",
        "Easy dessert",
    ],
    "not_found": [
        "What's my meal plan?",
        "Help me plan my week",
        "Give me a healthy recipe",
    ],
    "general": [
        "Change one of my meals",
        "Make my dinner healthier",
        "Give me a quick recipe",
        "Nutrition tips",
    ],
}

# Topic keyword -> chips offered after a general answer
_TOPIC_REPLIES = [
    (("protein", "muscle"), ["High-protein breakfast ideas", "Add more protein to my lunch"]),
    (("weight", "calorie", "lose"), ["Lower-calorie dinner ideas", "How many calories should I eat?"]),
    (("sleep", "tired", "energy", "fatigue"), ["Foods that boost energy", "Snacks for the afternoon slump"]),
    (("digest", "bloat", "stomach"), ["Gut-friendly meals", "Foods that are easy to digest"]),
    (("sugar", "craving", "sweet"), ["Healthy dessert ideas", "How to manage sugar cravings"]),
]

GENERAL_FALLBACK_REPLIES = [
    "I'm here to help you with your health and wellness journey! I can help you change meals you don't like, make them healthier, or find alternatives. What would you like to explore?",
    "I'd be happy to assist you with nutrition, fitness, or wellness advice. I can also help replace meals or modify them to your preferences. What specific area would you like to focus on?",
    "As your health assistant, I can help with meal planning, suggest alternatives if you don't like certain foods, and provide exercise suggestions. What can I help you with today?",
    "Let me help you on your wellness journey! I can suggest meal replacements, modifications, or general health advice. What would you like to discuss?",
]

RECIPE_MODE_PROMPT = """**Recipe Mode Active!**

I'm ready to help you cook something delicious! What would you like to make today?

Here are some popular options:
- **Pasta dishes** (carbonara, alfredo, marinara)
- **Indian classics** (biryani, dal, curry, paneer tikka)
- **Healthy meals** (salads, quinoa bowls, smoothies)
- **Desserts** (cakes, cookies, puddings)
- **Quick meals** (sandwiches, wraps, omelets)

Just tell me what you're craving and I'll give you a detailed recipe.

**What sounds good to you?**"""


def contextual_quick_replies(context: str) -> List[str]:
    """Quick-reply chips for a response context."""
    return list(QUICK_REPLIES.get(context, QUICK_REPLIES["general"]))


def topic_quick_replies(message: str, reply: str) -> List[str]:
    """Chips for a general answer, based on what the exchange was about."""
    text = f"{message} {reply}".lower()
    chips: List[str] = []
    for keywords, replies in _TOPIC_REPLIES:
        if any(keyword in text for keyword in keywords):
            chips.extend(replies)
    chips.extend(QUICK_REPLIES["general"])
    return list(dict.fromkeys(chips))[:4]


def pick_fallback_reply(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(GENERAL_FALLBACK_REPLIES)


def fallback_recipe(food_item: str) -> str:
    return f"""# Recipe for {food_item.upper()}

I'd love to help you cook {food_item}! Here's a basic approach:

## Basic Method:
1. **Prepare ingredients** - Gather all necessary items
2. **Follow cooking basics** - Clean, chop, and prep
3. **Cook with care** - Use appropriate heat and timing
4. **Season to taste** - Add spices and flavors gradually
5. **Serve fresh** - Best enjoyed immediately

## Need More Details?
Try asking me "Show me a detailed recipe for {food_item}" in a moment."""


def _candidate_line(index: int, candidate: ReplacementCandidate) -> str:
    lines = [f"**{index}. {candidate.name}**"]
    calories = f"{candidate.calories:.0f} calories" if candidate.calories is not None else "Calories n/a"
    lines.append(f"{calories} | {candidate.prep_time or 'Prep time n/a'}")
    if candidate.description:
        lines.append(candidate.description)
    if candidate.why_good_replacement:
        lines.append(f"Why: {candidate.why_good_replacement}")
    return "\n".join(lines)


def format_suggestion_list(meal: MealSlot, suggestions: ReplacementSuggestions) -> str:
    parts = [f"I understand you'd like to change your {meal.dish}! Here are some great alternatives:"]
    for index, candidate in enumerate(suggestions.replacements, start=1):
        parts.append(_candidate_line(index, candidate))

    if suggestions.smart_substitutions:
        swaps = ["**Smart Ingredient Swaps:**"]
        for sub in suggestions.smart_substitutions:
            swaps.append(f"- Instead of {sub.dont_like}: Try {' or '.join(sub.replace_with)}")
        parts.append("\n".join(swaps))

    parts.append(
        "**Would you like me to make this change for you?** Just reply with "
        "\"Replace it with option 1\", \"Go ahead with option 2\" or any similar confirmation."
    )
    return "\n\n".join(parts)


def format_applied_summary(result: MutationResult, candidate: Optional[ReplacementCandidate] = None) -> str:
    new = result.updated_meal
    parts = [
        "**Meal Successfully Replaced!**",
        f"I've updated your {result.meal_type} for {result.day.capitalize()}:\n"
        f"Old: {result.original_meal.dish}\n"
        f"New: {new.dish}",
        f"**{new.dish}**\n{new.calories:.0f} calories | "
        f"{new.protein:.0f}g protein | {new.carbs:.0f}g carbs | {new.fats:.0f}g fat",
    ]
    if candidate is not None:
        if candidate.description:
            parts.append(candidate.description)
        if candidate.why_good_replacement:
            parts.append(candidate.why_good_replacement)
    parts.append(f"**Recipe:** {new.recipe}")
    parts.append("Your meal plan has been updated and saved!")
    return "\n\n".join(parts)


def _signed(value: float, unit: str = "") -> str:
    return f"{'+' if value > 0 else ''}{value:g}{unit}"


def format_modification(meal: MealSlot, modification: MealModification) -> str:
    modified = modification.modified_meal
    comparison = modification.nutritional_comparison
    parts = [
        f"Great! Here's how I'd modify your {meal.dish}:",
        f"**Modified Meal: {modified.name}**\n{modified.description}".rstrip(),
        "**Nutritional Changes:**\n"
        f"- Calories: {_signed(comparison.calorie_change)}\n"
        f"- Protein: {_signed(comparison.protein_change, 'g')}\n"
        f"- Health Score: {_signed(comparison.health_score_change)}",
    ]
    if modification.explanation:
        parts.append(f"**Why this works:** {modification.explanation}")
    if modification.alternative_options:
        parts.append("**Other options:**\n" + "\n".join(f"- {o}" for o in modification.alternative_options))
    return "\n\n".join(parts)


def format_option_out_of_range(index: int, count: int) -> str:
    return (
        f"I only have {count} option{'s' if count != 1 else ''} for you, so I can't use option {index + 1}. "
        f"Pick a number between 1 and {count}."
    )


def summarize_week(week: Sequence[dict], days: int = 3) -> str:
    """Compact plan summary for prompts."""
    if not week:
        return "No saved meal plan"
    lines = []
    for entry in list(week)[:days]:
        meals = ", ".join(
            f"{slot[0].upper()}:{(entry.get(slot) or {}).get('dish', 'N/A')}"
            for slot in ("breakfast", "lunch", "dinner")
        )
        lines.append(f"{str(entry.get('day', '')).capitalize()}: {meals}")
    return " | ".join(lines)
