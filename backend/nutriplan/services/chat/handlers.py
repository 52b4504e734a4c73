"""Chat handlers for the non-replacement intents."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nutriplan.core.constants import MenuConstants
from nutriplan.core.exceptions import AIUnavailableError, NotFoundError, UnparseableAIResponseError
from nutriplan.core.logging import get_logger
from nutriplan.db.schema import ChatTurnResult, IntentKind
from nutriplan.services.chat import helpers
from nutriplan.services.chat.target import resolve_missing_day
from nutriplan.services.meal_replacement import extract_food_item
from nutriplan.services.preference_context import profile_summary

if TYPE_CHECKING:
    from nutriplan.services.chat.orchestrator import ConversationOrchestrator, TurnContext

logger = get_logger("services.chat.handlers")


async def handle_modification_request(orchestrator: ConversationOrchestrator, ctx: TurnContext) -> ChatTurnResult:
    """Suggest a modified version of the targeted meal; the plan is not touched."""
    try:
        target = await orchestrator.resolve_target(ctx)
        if target is None:
            day = resolve_missing_day(ctx.message, orchestrator.today())
            return ChatTurnResult(
                reply=f"I couldn't find {day.capitalize()} in your meal plan, so there's nothing to modify yet.",
                suggestions=helpers.contextual_quick_replies("not_found"),
                intent=IntentKind.MODIFICATION,
            )
        meal = await orchestrator.mutations.get_current_meal(ctx.db, ctx.user_id, target.day, target.meal_type)
    except NotFoundError as e:
        return ChatTurnResult(
            reply=e.user_message,
            suggestions=helpers.contextual_quick_replies("not_found"),
            intent=IntentKind.MODIFICATION,
        )

    try:
        modification = await orchestrator.engine.modify_meal(meal, ctx.message, ctx.preferences)
    except (AIUnavailableError, UnparseableAIResponseError) as e:
        logger.error(f"Meal modification failed, answering as general chat: {e}")
        return await handle_general_chat(orchestrator, ctx)

    return ChatTurnResult(
        reply=helpers.format_modification(meal, modification),
        suggestions=helpers.contextual_quick_replies("modification"),
        intent=IntentKind.MODIFICATION,
        modification=modification,
    )


async def handle_recipe_request(orchestrator: ConversationOrchestrator, ctx: TurnContext) -> ChatTurnResult:
    food_item = extract_food_item(ctx.message)
    if not food_item:
        return ChatTurnResult(
            reply=helpers.RECIPE_MODE_PROMPT,
            suggestions=helpers.contextual_quick_replies("recipe_mode"),
            intent=IntentKind.RECIPE,
        )

    try:
        reply = await orchestrator.engine.generate_recipe(food_item)
    except AIUnavailableError as e:
        logger.error(f"Recipe generation failed for '{food_item}': {e}")
        reply = helpers.fallback_recipe(food_item)

    return ChatTurnResult(
        reply=reply,
        suggestions=helpers.contextual_quick_replies("recipe"),
        intent=IntentKind.RECIPE,
    )


async def handle_general_chat(orchestrator: ConversationOrchestrator, ctx: TurnContext) -> ChatTurnResult:
    """Free-form answer grounded in the user's profile, plan and recent messages."""
    week = await orchestrator.load_week(ctx)
    history = await ctx.memory.get_context_for_prompt(orchestrator.settings.history_window)
    # Questions about the plan itself get every day, other turns a short preview
    summary_days = len(MenuConstants.DAYS_OF_WEEK) if ctx.intent.is_plan_query else 3

    system_prompt, user_template = orchestrator.prompt_loader.get_system_and_template("general_chat")
    user_prompt = orchestrator.prompt_loader.format_prompt(
        user_template,
        profile_summary=profile_summary(ctx.user),
        plan_summary=helpers.summarize_week(week or [], days=summary_days),
        conversation_history=history,
        user_message=ctx.message,
    )

    try:
        reply = await orchestrator.llm.chat(
            messages=[{"role": "user", "content": user_prompt}],
            temperature=0.7,
            system=system_prompt,
        )
        reply = reply.strip()
    except AIUnavailableError as e:
        logger.error(f"General chat generation failed: {e}")
        reply = helpers.pick_fallback_reply()

    return ChatTurnResult(
        reply=reply,
        suggestions=helpers.topic_quick_replies(ctx.message, reply),
        intent=ctx.intent.kind,
    )
