"""
Conversation memory for the chat orchestrator.
Tracks message history and the pending replacement carried between turns.
"""
from typing import Any, List, Dict, Optional
from sqlalchemy.orm import Session
import json

from pydantic import ValidationError

from nutriplan.core.constants import LimitsConstants
from nutriplan.core.logging import get_logger
from nutriplan.db import crud_chat
from nutriplan.db.schema import PendingReplacement
from nutriplan.db.session import run_sync
from nutriplan.utils.json_parser import safe_json_parse

logger = get_logger("services.conversation_memory")


class ConversationMemory:
    """
    Conversation memory that tracks message history for a session.

    Assistant messages that carry structured data are stored as JSON
    ({"text": ..., "pending_replacement": ..., "applied": ...}) so the
    next turn can pick the state back up from the log.
    """

    def __init__(self, db: Session, session_id: str, user_id: Optional[str] = None):
        """
        Initialize conversation memory for a session.

        Args:
            db: Database session
            session_id: Unique session identifier
            user_id: Owner of the session
        """
        self.db = db
        self.session_id = session_id
        self.user_id = user_id

    async def add_message(
        self,
        role: str,
        content: str,
        intent: Optional[str] = None
    ) -> None:
        """Add a message to the conversation history asynchronously."""
        await run_sync(
            crud_chat.add_message,
            self.db,
            self.session_id,
            role,
            content,
            intent,
            self.user_id
        )

    async def _load(self, limit: Optional[int]) -> List[Dict[str, Any]]:
        messages = await run_sync(
            crud_chat.get_conversation_history,
            self.db,
            self.session_id,
            limit
        )

        result = []
        for msg in messages:
            message_dict: Dict[str, Any] = {
                "role": msg.role,
                "intent": msg.intent,
                "created_at": msg.created_at,
            }

            # Assistant messages with structured state are stored as JSON
            parsed = safe_json_parse(msg.content)
            if isinstance(parsed, dict) and "text" in parsed:
                message_dict["content"] = parsed["text"]
                message_dict["pending_replacement"] = parsed.get("pending_replacement")
                message_dict["applied"] = parsed.get("applied", False)
            else:
                message_dict["content"] = msg.content

            result.append(message_dict)

        return result

    async def get_messages(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Full message records, oldest first, with structured state unpacked."""
        return await self._load(limit)

    async def get_conversation_history(
        self,
        limit: Optional[int] = LimitsConstants.MEMORY_HISTORY_LIMIT
    ) -> List[Dict]:
        """
        Get recent conversation history asynchronously.

        Args:
            limit: Number of recent messages to retrieve

        Returns:
            List of {"role", "content"} dictionaries, oldest first
        """
        history = await self._load(limit)
        return [{"role": m["role"], "content": m["content"]} for m in history]

    async def get_context_for_prompt(self, limit: int = LimitsConstants.MEMORY_HISTORY_LIMIT) -> str:
        """
        Get recent conversation formatted as context string for the LLM.
        """
        history = await self.get_conversation_history(limit=limit)

        if not history:
            return "(no previous messages)"

        context_parts = []
        for msg in history:
            role_label = "User" if msg["role"] == "user" else "Aarav"
            context_parts.append(f"{role_label}: {msg['content']}")

        return "\n".join(context_parts)

    async def find_pending_replacement(
        self,
        limit: int = LimitsConstants.MEMORY_HISTORY_LIMIT
    ) -> Optional[PendingReplacement]:
        """
        Most recent pending replacement in the last `limit` messages.

        A later assistant message that applied a replacement closes it.
        """
        history = await self._load(limit)

        for msg in reversed(history):
            if msg["role"] != "assistant":
                continue
            if msg.get("applied"):
                return None
            raw = msg.get("pending_replacement")
            if raw:
                try:
                    return PendingReplacement.model_validate(raw)
                except ValidationError as e:
                    logger.warning(f"Ignoring malformed pending replacement in session {self.session_id}: {e}")
                    return None
        return None

    async def record_user_message(self, message: str, intent: str) -> None:
        """
        Record a user message asynchronously.
        """
        await self.add_message("user", message, intent)

    async def record_assistant_response(
        self,
        response: str,
        intent: Optional[str] = None,
        pending: Optional[PendingReplacement] = None,
        applied: bool = False
    ) -> None:
        """
        Record an assistant response asynchronously.

        Args:
            response: Assistant's response text
            intent: Intent of the turn being answered
            pending: Suggestions awaiting confirmation
            applied: Whether this turn wrote a replacement into the plan
        """
        if pending is not None or applied:
            payload: Dict[str, Any] = {"text": response, "applied": applied}
            if pending is not None:
                payload["pending_replacement"] = pending.model_dump(mode="json")
            content = json.dumps(payload)
        else:
            content = response

        await self.add_message("assistant", content, intent)
