"""
SQLAlchemy database models.
These define the database schema and relationships.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON, Boolean
from sqlalchemy.orm import relationship, declarative_base
from datetime import datetime

Base = declarative_base()


class UserModel(Base):
    """User profile with onboarding answers."""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, unique=True)

    # Physical characteristics
    age = Column(Integer, nullable=True)
    gender = Column(String(50), nullable=True)
    height = Column(Integer, nullable=True)  # cm
    current_weight = Column(Integer, nullable=True)  # kg
    goal_weight = Column(Integer, nullable=True)  # kg

    food_allergies = Column(JSON, nullable=True, default=list)
    # Onboarding answers: activityLevel, meatPreference, cuisine, recipeMode, ...
    preferences = Column(JSON, nullable=True, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    meal_plans = relationship("MealPlanModel", back_populates="user", cascade="all, delete-orphan")


class MealPlanModel(Base):
    """Weekly meal plan; the most recently created plan is the current one."""
    __tablename__ = "meal_plans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)

    # Seven {"day", "breakfast", "lunch", "dinner"} entries
    week = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("UserModel", back_populates="meal_plans")


class ChatSessionModel(Base):
    """Chat session model for conversation memory."""
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(255), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    messages = relationship(
        "ChatMessageModel",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessageModel.id",
    )


class ChatMessageModel(Base):
    """Individual chat message in a session."""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(255), ForeignKey("chat_sessions.session_id"), nullable=False)
    role = Column(String(20), nullable=False)  # "user" or "assistant"
    content = Column(Text, nullable=False)
    intent = Column(String(50), nullable=True)  # Detected intent
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    session = relationship("ChatSessionModel", back_populates="messages")
