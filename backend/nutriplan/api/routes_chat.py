"""
API routes for the meal assistant chat.
"""
import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from nutriplan.api.deps import get_engine, get_orchestrator
from nutriplan.core.config import get_settings
from nutriplan.core.logging import get_logger
from nutriplan.db import crud_users
from nutriplan.db.schema import (
    CacheClearResponse,
    CacheStats,
    ChatHistoryResponse,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatTurnResult,
    RecipeModeRequest,
    RecipeModeResponse,
)
from nutriplan.db.session import get_db, run_sync
from nutriplan.services.chat.orchestrator import ConversationOrchestrator
from nutriplan.services.conversation_memory import ConversationMemory
from nutriplan.services.meal_replacement import ReplacementSuggestionEngine

logger = get_logger("api.chat")

router = APIRouter()


def _to_response(session_id: str, result: ChatTurnResult) -> ChatResponse:
    return ChatResponse(
        session_id=session_id,
        reply=result.reply,
        suggestions=result.suggestions,
        intent=result.intent.value,
        model=result.model,
        applied_mutation=result.applied_mutation,
        pending_replacement=result.pending_replacement,
        replacement_suggestions=result.replacement_suggestions,
        modification=result.modification,
    )


@router.post("/message", response_model=ChatResponse)
async def chat_message(
    request: ChatRequest,
    db: Session = Depends(get_db),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """
    Chat endpoint for the meal assistant.

    - **message**: User message (e.g., "I don't like my dinner", "option 2", "recipe for dal")
    - **session_id**: Conversation identifier
    - **user_id**: Owner of the meal plan; without it only general chat is available
    - **pending_replacement**: Suggestions the client was shown, if it keeps them

    Replacement requests return up to three suggestions and a pending state;
    a following "option N" or "yes" applies one of them to the plan.
    """
    result = await orchestrator.handle_turn(
        db,
        request.session_id,
        request.user_id,
        request.message,
        pending=request.pending_replacement,
    )
    return _to_response(request.session_id, result)


@router.post("/message/stream")
async def chat_message_stream(
    body: ChatRequest,
    request: Request,
    db: Session = Depends(get_db),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """
    Same as /message, with the reply sent as NDJSON chunks.

    Lines are {"chunk": "..."} followed by one {"done": true, ...} line that
    carries the structured fields. Plan changes are saved before the first
    chunk and stay saved if the client disconnects.
    """
    result = await orchestrator.handle_turn(
        db,
        body.session_id,
        body.user_id,
        body.message,
        pending=body.pending_replacement,
    )
    response = _to_response(body.session_id, result)
    chunk_size = get_settings().stream_chunk_size

    async def generate():
        reply = response.reply
        for start in range(0, len(reply), chunk_size):
            if await request.is_disconnected():
                logger.info(f"Client disconnected from stream for session {body.session_id}")
                return
            yield json.dumps({"chunk": reply[start:start + chunk_size]}) + "\n"

        final = response.model_dump(mode="json", exclude={"reply"})
        final["done"] = True
        yield json.dumps(final) + "\n"

    return StreamingResponse(generate(), media_type="application/x-ndjson")


@router.get("/history/{session_id}", response_model=ChatHistoryResponse)
async def chat_history(
    session_id: str,
    limit: int = 50,
    db: Session = Depends(get_db)
):
    """Messages of a session, oldest first."""
    memory = ConversationMemory(db, session_id)
    messages = await memory.get_messages(limit)
    return ChatHistoryResponse(
        session_id=session_id,
        messages=[
            ChatMessage(
                role=m["role"],
                content=m["content"],
                intent=m.get("intent"),
                created_at=m["created_at"],
            )
            for m in messages
        ],
    )


@router.post("/recipe-mode", response_model=RecipeModeResponse)
async def set_recipe_mode(
    request: RecipeModeRequest,
    db: Session = Depends(get_db)
):
    """Turn recipe mode on or off; short messages are then treated as recipe requests."""
    user = await run_sync(crud_users.user.set_recipe_mode, db, request.user_id, request.enabled)
    logger.info(f"Recipe mode {'enabled' if request.enabled else 'disabled'} for user {user.id}")
    return RecipeModeResponse(user_id=user.id, recipe_mode=request.enabled)


@router.get("/cache/stats", response_model=CacheStats)
async def cache_stats(engine: ReplacementSuggestionEngine = Depends(get_engine)):
    return engine.cache.stats()


@router.delete("/cache/{user_id}", response_model=CacheClearResponse)
async def clear_cache(
    user_id: str,
    engine: ReplacementSuggestionEngine = Depends(get_engine)
):
    """Forget cached replacement suggestions for one user."""
    removed = await engine.cache.clear_prefix(f"suggestions:{user_id}:")
    logger.info(f"Cleared {removed} cached suggestion(s) for user {user_id}")
    return CacheClearResponse(user_id=user_id, removed=removed)
