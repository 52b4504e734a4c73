"""
CRUD operations for chat sessions and conversation memory.
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from datetime import datetime

from nutriplan.db.models import ChatSessionModel, ChatMessageModel
from nutriplan.db.base_crud import CRUDBase
from pydantic import BaseModel


class ChatSessionCreate(BaseModel):
    session_id: str
    user_id: Optional[str] = None


class CRUDChatSession(CRUDBase[ChatSessionModel, ChatSessionCreate]):
    def get_or_create(self, db: Session, session_id: str, user_id: Optional[str] = None) -> ChatSessionModel:
        """
        Get existing chat session or create a new one.
        """
        session = db.query(ChatSessionModel).filter(
            ChatSessionModel.session_id == session_id
        ).first()

        if not session:
            session = ChatSessionModel(
                session_id=session_id,
                user_id=user_id,
                created_at=datetime.utcnow(),
                updated_at=datetime.utcnow()
            )
            db.add(session)
            db.commit()
            db.refresh(session)
        elif user_id and not session.user_id:
            session.user_id = user_id
            db.commit()

        return session


chat_session = CRUDChatSession(ChatSessionModel)


def add_message(
    db: Session,
    session_id: str,
    role: str,
    content: str,
    intent: Optional[str] = None,
    user_id: Optional[str] = None
) -> ChatMessageModel:
    """
    Append a message to the chat session.

    Args:
        db: Database session
        session_id: Unique session identifier
        role: "user" or "assistant"
        content: Message content
        intent: Detected intent (optional)
        user_id: Owner of the session, recorded on first use

    Returns:
        ChatMessageModel instance
    """
    session = chat_session.get_or_create(db, session_id, user_id=user_id)

    message = ChatMessageModel(
        session_id=session_id,
        role=role,
        content=content,
        intent=intent,
        created_at=datetime.utcnow()
    )

    session.updated_at = datetime.utcnow()
    db.add(message)
    db.commit()
    db.refresh(message)

    return message


def get_conversation_history(
    db: Session,
    session_id: str,
    limit: Optional[int] = None
) -> List[ChatMessageModel]:
    """
    Get conversation history for a session.

    Args:
        db: Database session
        session_id: Unique session identifier
        limit: Maximum number of messages to return (most recent)

    Returns:
        List of ChatMessageModel instances in chronological order
    """
    # id breaks ties between messages written within the same clock tick
    query = db.query(ChatMessageModel).filter(
        ChatMessageModel.session_id == session_id
    ).order_by(ChatMessageModel.created_at.desc(), ChatMessageModel.id.desc())

    if limit:
        query = query.limit(limit)

    messages = query.all()
    return list(reversed(messages))
