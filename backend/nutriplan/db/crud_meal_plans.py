"""
CRUD operations for weekly meal plans.
"""
from copy import deepcopy
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from pydantic import BaseModel

from nutriplan.db.models import MealPlanModel
from nutriplan.db.base_crud import CRUDBase
from nutriplan.core.exceptions import MealPlanNotFoundError


class MealPlanCreate(BaseModel):
    user_id: str
    week: List[Dict[str, Any]]


class CRUDMealPlan(CRUDBase[MealPlanModel, MealPlanCreate]):
    def get_latest(self, db: Session, user_id: str) -> Optional[MealPlanModel]:
        """
        Get the user's current plan (most recently created).
        """
        return (
            db.query(MealPlanModel)
            .filter(MealPlanModel.user_id == user_id)
            .order_by(MealPlanModel.created_at.desc(), MealPlanModel.id.desc())
            .first()
        )

    def get_latest_or_raise(self, db: Session, user_id: str) -> MealPlanModel:
        plan = self.get_latest(db, user_id)
        if plan is None:
            raise MealPlanNotFoundError(user_id)
        return plan

    def write_slot(
        self,
        db: Session,
        plan: MealPlanModel,
        day_index: int,
        meal_type: str,
        slot: Dict[str, Any]
    ) -> MealPlanModel:
        """
        Overwrite one meal slot and persist the plan.

        The week column is a nested JSON document, so the write is signalled
        explicitly with flag_modified.
        """
        week = deepcopy(plan.week)
        week[day_index][meal_type] = slot
        plan.week = week
        flag_modified(plan, "week")
        db.commit()
        return plan

    def read_slot(self, db: Session, plan_id: int, day_index: int, meal_type: str) -> Optional[Dict[str, Any]]:
        """Re-read a slot straight from the database."""
        db.expire_all()
        fresh = self.get(db, plan_id)
        if fresh is None or day_index >= len(fresh.week or []):
            return None
        return fresh.week[day_index].get(meal_type)


meal_plan = CRUDMealPlan(MealPlanModel)


def find_day_index(week: List[Dict[str, Any]], day: str) -> Optional[int]:
    """Case-insensitive lookup of a day entry."""
    wanted = day.strip().lower()
    for index, entry in enumerate(week or []):
        if str(entry.get("day", "")).strip().lower() == wanted:
            return index
    return None
