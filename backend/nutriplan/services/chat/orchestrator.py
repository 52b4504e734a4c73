"""
Conversation orchestrator: one chat turn from message to reply.

A turn moves through CLASSIFYING -> RESOLVING_TARGET -> AWAITING_AI ->
AWAITING_CONFIRMATION or APPLYING -> RESPONDING. Suggestions that were shown
but not applied are stored with the assistant message so the next turn can
confirm them by option number.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from nutriplan.core.config import Settings, get_settings
from nutriplan.core.exceptions import DayNotFoundError, NotFoundError
from nutriplan.core.llm_client import LLMClient
from nutriplan.core.logging import get_logger
from nutriplan.db import crud_meal_plans, crud_users
from nutriplan.db.schema import (
    ChatTurnResult,
    IntentKind,
    IntentResult,
    MealTarget,
    PendingReplacement,
    PreferenceContext,
)
from nutriplan.db.session import run_sync
from nutriplan.services.chat import helpers
from nutriplan.services.chat.intent import SessionState, classify
from nutriplan.services.chat.router import dispatch_intent
from nutriplan.services.chat.target import resolve_missing_day, resolve_target, today_name
from nutriplan.services.conversation_memory import ConversationMemory
from nutriplan.services.meal_replacement import ReplacementSuggestionEngine
from nutriplan.services.plan_mutation import PlanMutationService
from nutriplan.services.preference_context import build_preference_context
from nutriplan.utils.prompt_loader import PromptLoader, get_prompt_loader

logger = get_logger("services.chat.orchestrator")

# Intents that read or write the user's plan
_PLAN_INTENTS = {
    IntentKind.REPLACEMENT,
    IntentKind.DIRECT_REPLACEMENT,
    IntentKind.CONFIRMATION,
    IntentKind.MODIFICATION,
}


class TurnState(str, Enum):
    CLASSIFYING = "classifying"
    RESOLVING_TARGET = "resolving_target"
    AWAITING_AI = "awaiting_ai"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    APPLYING = "applying"
    RESPONDING = "responding"


@dataclass
class TurnContext:
    """Everything the handlers of one turn share."""

    db: Session
    session_id: str
    user_id: Optional[str]
    message: str
    memory: ConversationMemory
    user: Any
    preferences: PreferenceContext
    intent: IntentResult = field(default_factory=lambda: IntentResult(kind=IntentKind.NONE))
    pending: Optional[PendingReplacement] = None
    week: Optional[List[Dict[str, Any]]] = None
    state: TurnState = TurnState.CLASSIFYING

    def transition(self, state: TurnState) -> None:
        logger.debug(f"[Turn {self.session_id}] {self.state.value} -> {state.value}")
        self.state = state


class ConversationOrchestrator:
    """Drives chat turns across the intent classifier, suggestion engine and plan writer."""

    def __init__(
        self,
        engine: ReplacementSuggestionEngine,
        mutations: PlanMutationService,
        llm_client: LLMClient,
        settings: Optional[Settings] = None,
        today: Callable[[], str] = today_name,
        prompt_loader: Optional[PromptLoader] = None,
    ):
        self.engine = engine
        self.mutations = mutations
        self.llm = llm_client
        self.settings = settings or get_settings()
        self.today = today
        self.prompt_loader = prompt_loader or get_prompt_loader()

    async def handle_turn(
        self,
        db: Session,
        session_id: str,
        user_id: Optional[str],
        message: str,
        pending: Optional[PendingReplacement] = None,
    ) -> ChatTurnResult:
        """
        Classify a message, act on it and record both sides of the exchange.

        Args:
            db: Database session
            session_id: Chat session the message belongs to
            user_id: Owner of the meal plan, if known
            message: Raw user message
            pending: Suggestions the client was shown; falls back to the
                session log when omitted

        Raises:
            AIUnavailableError: Suggestions could not be generated for a replacement
            UnparseableAIResponseError: The AI's replacement suggestions were unusable
        """
        memory = ConversationMemory(db, session_id, user_id)
        user = await run_sync(crud_users.get_user, db, user_id) if user_id else None
        ctx = TurnContext(
            db=db,
            session_id=session_id,
            user_id=user_id,
            message=message,
            memory=memory,
            user=user,
            preferences=build_preference_context(user, user_id),
        )

        ctx.pending = pending or await memory.find_pending_replacement(self.settings.history_window)
        state = SessionState(has_pending=ctx.pending is not None, recipe_mode=ctx.preferences.recipe_mode)
        ctx.intent = classify(message, state)
        if user_id is None and ctx.intent.kind in _PLAN_INTENTS:
            logger.info(f"[Turn {session_id}] No user id, answering {ctx.intent.kind.value} as general chat")
            ctx.intent = ctx.intent.model_copy(update={"kind": IntentKind.NONE, "is_direct": False})

        logger.info(f"[Turn {session_id}] intent={ctx.intent.kind.value} pending={ctx.pending is not None}")

        try:
            if ctx.intent.kind == IntentKind.CONFIRMATION:
                result = await self._apply_pending(ctx)
            elif ctx.intent.kind in (IntentKind.REPLACEMENT, IntentKind.DIRECT_REPLACEMENT):
                result = await self._replace(ctx)
            else:
                result = await dispatch_intent(ctx.intent.kind, self, ctx)
        finally:
            await memory.record_user_message(message, ctx.intent.kind.value)

        ctx.transition(TurnState.RESPONDING)
        await memory.record_assistant_response(
            result.reply,
            intent=result.intent.value,
            pending=result.pending_replacement,
            applied=result.applied_mutation is not None,
        )
        return result

    async def load_week(self, ctx: TurnContext) -> Optional[List[Dict[str, Any]]]:
        """Day entries of the user's latest plan, loaded once per turn."""
        if ctx.week is None and ctx.user_id:
            plan = await run_sync(crud_meal_plans.meal_plan.get_latest, ctx.db, ctx.user_id)
            ctx.week = list(plan.week or []) if plan is not None else None
        return ctx.week

    async def resolve_target(self, ctx: TurnContext) -> Optional[MealTarget]:
        """
        Slot the message refers to.

        Raises:
            MealPlanNotFoundError: The user has no plan
        """
        ctx.transition(TurnState.RESOLVING_TARGET)
        if await self.load_week(ctx) is None:
            await run_sync(crud_meal_plans.meal_plan.get_latest_or_raise, ctx.db, ctx.user_id)
        return resolve_target(
            ctx.message,
            ctx.week,
            self.today(),
            day_only_default_meal=self.settings.day_only_default_meal,
            vague_policy=self.settings.vague_target_policy,
        )

    async def _replace(self, ctx: TurnContext) -> ChatTurnResult:
        try:
            target = await self.resolve_target(ctx)
            if target is None:
                raise DayNotFoundError(resolve_missing_day(ctx.message, self.today()))
            current = await self.mutations.get_current_meal(ctx.db, ctx.user_id, target.day, target.meal_type)
        except NotFoundError as e:
            logger.info(f"[Turn {ctx.session_id}] Replacement target not found: {e}")
            return ChatTurnResult(
                reply=e.user_message,
                suggestions=helpers.contextual_quick_replies("not_found"),
                intent=ctx.intent.kind,
            )

        ctx.transition(TurnState.AWAITING_AI)
        suggestions = await self.engine.suggest(current, ctx.preferences, reason=ctx.message)

        if ctx.intent.is_direct and suggestions.replacements:
            ctx.transition(TurnState.APPLYING)
            candidate = suggestions.replacements[0]
            mutation = await self.mutations.apply(ctx.db, ctx.user_id, target.day, target.meal_type, candidate)
            return ChatTurnResult(
                reply=helpers.format_applied_summary(mutation, candidate),
                suggestions=helpers.contextual_quick_replies("applied"),
                intent=ctx.intent.kind,
                applied_mutation=mutation,
                replacement_suggestions=suggestions,
            )

        ctx.transition(TurnState.AWAITING_CONFIRMATION)
        pending = PendingReplacement(
            target_meal=current,
            meal_type=target.meal_type,
            day_of_week=target.day,
            candidates=suggestions.replacements,
        )
        return ChatTurnResult(
            reply=helpers.format_suggestion_list(current, suggestions),
            suggestions=helpers.contextual_quick_replies("suggestions"),
            intent=ctx.intent.kind,
            pending_replacement=pending,
            replacement_suggestions=suggestions,
        )

    async def _apply_pending(self, ctx: TurnContext) -> ChatTurnResult:
        """Apply one of the stored candidates to the stored slot."""
        pending = ctx.pending
        index = ctx.intent.option_index if ctx.intent.option_index is not None else 0
        if not 0 <= index < len(pending.candidates):
            return ChatTurnResult(
                reply=helpers.format_option_out_of_range(index, len(pending.candidates)),
                suggestions=helpers.contextual_quick_replies("suggestions"),
                intent=IntentKind.CONFIRMATION,
                pending_replacement=pending,
            )

        ctx.transition(TurnState.APPLYING)
        candidate = pending.candidates[index]
        try:
            mutation = await self.mutations.apply(
                ctx.db, ctx.user_id, pending.day_of_week, pending.meal_type, candidate
            )
        except NotFoundError as e:
            logger.info(f"[Turn {ctx.session_id}] Pending replacement target is gone: {e}")
            return ChatTurnResult(
                reply=e.user_message,
                suggestions=helpers.contextual_quick_replies("not_found"),
                intent=IntentKind.CONFIRMATION,
            )

        return ChatTurnResult(
            reply=helpers.format_applied_summary(mutation, candidate),
            suggestions=helpers.contextual_quick_replies("applied"),
            intent=IntentKind.CONFIRMATION,
            applied_mutation=mutation,
        )
