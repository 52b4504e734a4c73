"""
Tests for chat turns end to end, with a scripted LLM and an in-memory database.
"""
import asyncio
import json

import pytest
from conftest import AI_RESPONSE, http_error, make_orchestrator, make_week

from nutriplan.core.exceptions import AIUnavailableError, MealPlanNotFoundError
from nutriplan.db import crud_meal_plans
from nutriplan.db.schema import IntentKind
from nutriplan.services.chat.helpers import GENERAL_FALLBACK_REPLIES
from nutriplan.services.conversation_memory import ConversationMemory

SESSION = "session-1"


def stored_week(db, plan):
    db.expire_all()
    return crud_meal_plans.meal_plan.get(db, plan.id).week


def test_missing_day_is_reported_to_the_user(db, user_factory, plan_factory):
    user_factory()
    plan_factory(week=make_week(["tuesday", "wednesday"]))
    orchestrator, llm = make_orchestrator()

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "replace Monday's lunch with a salad"))

    assert "Monday" in result.reply
    assert "Traceback" not in result.reply
    assert result.applied_mutation is None
    assert llm.calls == []


def test_suggest_then_confirm_by_option_number(db, user_factory, plan_factory):
    user_factory()
    plan = plan_factory()
    orchestrator, llm = make_orchestrator([AI_RESPONSE])

    async def conversation():
        first = await orchestrator.handle_turn(db, SESSION, "user-1", "I don't like my dinner")
        # The slot named here is ignored; the stored target is used
        second = await orchestrator.handle_turn(db, SESSION, "user-1", "option 2 for my lunch")
        return first, second

    first, second = asyncio.run(conversation())

    assert first.intent == IntentKind.REPLACEMENT
    assert first.applied_mutation is None
    pending = first.pending_replacement
    assert (pending.day_of_week, pending.meal_type) == ("monday", "dinner")
    assert len(pending.candidates) == 3
    assert "Here are some great alternatives" in first.reply

    assert second.intent == IntentKind.CONFIRMATION
    mutation = second.applied_mutation
    assert (mutation.day, mutation.meal_type) == ("monday", "dinner")
    assert mutation.updated_meal.dish == pending.candidates[1].name
    assert mutation.original_meal.dish == "Butter Chicken"
    assert len(llm.calls) == 1

    week = stored_week(db, plan)
    assert week[0]["dinner"]["dish"] == pending.candidates[1].name
    assert week[0]["lunch"]["dish"] == "Rice and Dal"


def test_applied_replacement_closes_pending_state(db, user_factory, plan_factory):
    user_factory()
    plan_factory()
    orchestrator, _ = make_orchestrator([AI_RESPONSE])
    memory = ConversationMemory(db, SESSION, "user-1")

    async def conversation():
        await orchestrator.handle_turn(db, SESSION, "user-1", "I don't like my dinner")
        opened = await memory.find_pending_replacement()
        await orchestrator.handle_turn(db, SESSION, "user-1", "yes")
        closed = await memory.find_pending_replacement()
        history = await memory.get_conversation_history()
        return opened, closed, history

    opened, closed, history = asyncio.run(conversation())

    assert opened is not None
    assert closed is None
    assert [m["role"] for m in history] == ["user", "assistant", "user", "assistant"]
    assert history[0]["content"] == "I don't like my dinner"
    assert "Meal Successfully Replaced" in history[3]["content"]


def test_explicit_pending_state_from_client(db, user_factory, plan_factory):
    user_factory()
    plan_factory()
    orchestrator, _ = make_orchestrator([AI_RESPONSE])

    async def conversation():
        first = await orchestrator.handle_turn(db, "phone", "user-1", "change my breakfast")
        # A different session that never saw the suggestions
        return await orchestrator.handle_turn(
            db, "laptop", "user-1", "the third one", pending=first.pending_replacement
        )

    result = asyncio.run(conversation())
    assert result.applied_mutation.meal_type == "breakfast"
    assert result.applied_mutation.updated_meal.dish == "Paneer Tikka Bowl"


def test_option_out_of_range_keeps_pending(db, user_factory, plan_factory):
    user_factory()
    plan_factory()
    orchestrator, _ = make_orchestrator([AI_RESPONSE])

    async def conversation():
        await orchestrator.handle_turn(db, SESSION, "user-1", "I don't like my dinner")
        return await orchestrator.handle_turn(db, SESSION, "user-1", "option 5")

    result = asyncio.run(conversation())
    assert "only have 3 options" in result.reply
    assert result.applied_mutation is None
    assert result.pending_replacement is not None


def test_option_zero_does_not_apply_first_option(db, user_factory, plan_factory):
    user_factory()
    plan = plan_factory()
    orchestrator, _ = make_orchestrator([AI_RESPONSE])

    async def conversation():
        await orchestrator.handle_turn(db, SESSION, "user-1", "I don't like my dinner")
        return await orchestrator.handle_turn(db, SESSION, "user-1", "option 0")

    result = asyncio.run(conversation())
    assert "can't use option 0" in result.reply
    assert result.applied_mutation is None
    assert result.pending_replacement is not None
    assert stored_week(db, plan)[0]["dinner"]["dish"] == "Butter Chicken"


def test_direct_replacement_applies_first_suggestion(db, user_factory, plan_factory):
    user_factory()
    plan = plan_factory()
    orchestrator, _ = make_orchestrator([AI_RESPONSE])

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "replace my lunch with something lighter"))

    assert result.intent == IntentKind.DIRECT_REPLACEMENT
    assert result.applied_mutation.updated_meal.dish == "Mediterranean Chicken Salad"
    assert result.pending_replacement is None
    assert stored_week(db, plan)[0]["lunch"]["dish"] == "Mediterranean Chicken Salad"


def test_replacement_without_plan(db, user_factory):
    user_factory()
    orchestrator, llm = make_orchestrator()

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "change my dinner"))

    assert result.reply == MealPlanNotFoundError.user_message
    assert llm.calls == []


def test_ai_failure_during_replacement_propagates(db, user_factory, plan_factory):
    user_factory()
    plan_factory()
    orchestrator, _ = make_orchestrator([http_error(503)] * 4)
    memory = ConversationMemory(db, SESSION)

    with pytest.raises(AIUnavailableError):
        asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "I don't like my dinner"))

    history = asyncio.run(memory.get_conversation_history())
    assert [m["role"] for m in history] == ["user"]


def test_modification_does_not_write(db, user_factory, plan_factory):
    user_factory()
    plan = plan_factory()
    response = json.dumps({
        "modifiedMeal": {"name": "Lighter Butter Chicken", "description": "Yogurt based sauce", "calories": 520},
        "nutritionalComparison": {"calorieChange": -180, "proteinChange": 2, "healthScoreChange": 2},
        "explanation": "Less cream",
    })
    orchestrator, llm = make_orchestrator([response])

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "can you make it healthier?"))

    assert result.intent == IntentKind.MODIFICATION
    assert result.modification.modified_meal.name == "Lighter Butter Chicken"
    assert "Butter Chicken" in llm.calls[0]["prompt"]
    assert "Calories: -180" in result.reply
    assert stored_week(db, plan)[0]["dinner"]["dish"] == "Butter Chicken"


def test_modification_failure_falls_back_to_general_chat(db, user_factory, plan_factory):
    user_factory()
    plan_factory()
    orchestrator, _ = make_orchestrator(["no json here", "Try grilling instead of frying."])

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "make it healthier"))

    assert result.reply == "Try grilling instead of frying."
    assert result.modification is None


def test_recipe_request(db):
    orchestrator, _ = make_orchestrator(["# Dal\n\n1. Boil lentils."])

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, None, "recipe for dal"))

    assert result.intent == IntentKind.RECIPE
    assert result.reply.startswith("# Dal")


def test_recipe_failure_returns_basic_method(db):
    orchestrator, _ = make_orchestrator([http_error(500)] * 4)
    result = asyncio.run(orchestrator.handle_turn(db, SESSION, None, "how to make pasta"))
    assert "Recipe for PASTA" in result.reply


def test_recipe_mode_prompt_for_short_message(db, user_factory):
    user_factory(preferences={"recipeMode": True})
    orchestrator, llm = make_orchestrator()

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "hungry"))

    assert result.intent == IntentKind.RECIPE
    assert "Recipe Mode Active" in result.reply
    assert llm.calls == []


def test_general_chat_uses_profile_and_history(db, user_factory, plan_factory):
    user_factory(age=29)
    plan_factory()
    orchestrator, llm = make_orchestrator(["Aim for about 2 litres a day.", "You're welcome!"])

    async def conversation():
        await orchestrator.handle_turn(db, SESSION, "user-1", "How much water should I drink?")
        return await orchestrator.handle_turn(db, SESSION, "user-1", "thanks")

    result = asyncio.run(conversation())

    assert result.reply == "You're welcome!"
    prompt = llm.calls[1]["prompt"]
    assert "Age: 29" in prompt
    assert "How much water should I drink?" in prompt
    assert "Aim for about 2 litres a day." in prompt
    assert "Butter Chicken" in prompt


def test_general_chat_failure_returns_fallback_reply(db):
    orchestrator, _ = make_orchestrator([http_error(500)] * 4)
    result = asyncio.run(orchestrator.handle_turn(db, SESSION, None, "Tell me about sleep"))
    assert result.reply in GENERAL_FALLBACK_REPLIES


def test_plan_changes_need_a_user(db):
    orchestrator, llm = make_orchestrator(["I can help once you're signed in."])

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, None, "I don't like my dinner"))

    assert result.intent == IntentKind.NONE
    assert result.reply == "I can help once you're signed in."
    assert len(llm.calls) == 1


def test_plan_question_sees_the_whole_week(db, user_factory, plan_factory):
    user_factory()
    plan_factory()
    orchestrator, llm = make_orchestrator(["Your week is mostly Butter Chicken dinners."])

    result = asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "What's my meal plan this week?"))

    assert result.intent == IntentKind.NONE
    assert result.applied_mutation is None
    prompt = llm.calls[0]["prompt"]
    assert "Monday:" in prompt
    assert "Sunday:" in prompt


def test_other_chat_sees_a_short_preview(db, user_factory, plan_factory):
    user_factory()
    plan_factory()
    orchestrator, llm = make_orchestrator(["Aim for about 2 litres a day."])

    asyncio.run(orchestrator.handle_turn(db, SESSION, "user-1", "How much water should I drink?"))

    prompt = llm.calls[0]["prompt"]
    assert "Monday:" in prompt
    assert "Sunday:" not in prompt
