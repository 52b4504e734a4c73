"""
CRUD operations for users and their onboarding preferences.
"""
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from pydantic import BaseModel, Field

from nutriplan.db.models import UserModel
from nutriplan.db.base_crud import CRUDBase
from nutriplan.core.exceptions import UserNotFoundError


class UserCreate(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    height: Optional[int] = None
    current_weight: Optional[int] = None
    goal_weight: Optional[int] = None
    food_allergies: List[str] = Field(default_factory=list)
    preferences: Dict[str, Any] = Field(default_factory=dict)


class CRUDUser(CRUDBase[UserModel, UserCreate]):
    def get_or_raise(self, db: Session, user_id: str) -> UserModel:
        user = self.get(db, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def set_recipe_mode(self, db: Session, user_id: str, enabled: bool) -> UserModel:
        """Toggle the recipe mode flag stored with the onboarding preferences."""
        user = self.get_or_raise(db, user_id)
        preferences = dict(user.preferences or {})
        preferences["recipeMode"] = enabled
        user.preferences = preferences
        flag_modified(user, "preferences")
        db.commit()
        db.refresh(user)
        return user

    def add_meal_feedback(
        self,
        db: Session,
        user_id: str,
        entry: Dict[str, Any],
        avoid: Optional[str] = None,
        history_limit: int = 20
    ) -> UserModel:
        """
        Append a feedback entry to the user's preferences, keeping the newest
        history_limit entries, and remember a meal to avoid if one is given.
        """
        user = self.get_or_raise(db, user_id)
        preferences = dict(user.preferences or {})
        history = list(preferences.get("mealFeedback") or [])
        history.append(entry)
        preferences["mealFeedback"] = history[-history_limit:]
        if avoid:
            disliked = list(preferences.get("dislikedMeals") or [])
            if avoid.lower() not in (d.lower() for d in disliked):
                disliked.append(avoid)
            preferences["dislikedMeals"] = disliked
        user.preferences = preferences
        flag_modified(user, "preferences")
        db.commit()
        db.refresh(user)
        return user


user = CRUDUser(UserModel)


def get_user(db: Session, user_id: Optional[str]) -> Optional[UserModel]:
    """Return the user or None when the id is missing or unknown."""
    if not user_id:
        return None
    return user.get(db, user_id)
