#!/usr/bin/env python3
"""
Meal Plan Records
=================

Boundary between the MealPlan model and the persistence collaborator.

Stored plans are flat field-per-(meal type, day) records:

    breakfast_1_name, breakfast_1_description, breakfast_1_ingredients,
    breakfast_1_recipe, breakfast_1_protein, breakfast_1_carbs, breakfast_1_fat,
    ... through dinner_5_*,
    snack_{1,2}_{name,protein,carbs,fat},
    favorite_meal_{1,2}_{name,protein,carbs,fat},
    meal_plan_id

flatten_meal_plan / unflatten_meal_plan are pure transforms between the two
shapes. MealPlanStore is the interface the service layer expects from the
storage side.
"""

import json
import sys
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

# Add parent directory to path for imports from project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from meal_models import MEAL_TYPES, PLAN_DAYS, Meal, MealPlan, SnackItem
from tools.logging_utils import get_logger

logger = get_logger(__name__)

SNACK_FIELDS = ("name", "protein", "carbs", "fat")
MAX_SNACKS = 2
MAX_FAVORITE_MEALS = 2


# =============================================================================
# PERSISTENCE COLLABORATOR
# =============================================================================

class MealPlanStore(ABC):
    """Storage side of the pipeline; implemented outside this package."""

    @abstractmethod
    async def get_meal_plan_by_id(self, plan_id: str) -> Optional[Dict[str, Any]]:
        """Flat plan record, or None when the plan does not exist."""

    @abstractmethod
    async def get_all_user_data(self, user_id: str, conversation_id: Optional[str] = None) -> Dict[str, Any]:
        """
        User data bundle:
        {user, metricsAndGoals, dietAndMealPreferences, calorieCalculations, mealPlans}
        """

    @abstractmethod
    async def store_meal_plan(
        self,
        user_id: str,
        plan_data: Dict[str, Any],
        conversation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Insert or update a flat plan record keyed by meal_plan_id."""


# =============================================================================
# FLATTEN
# =============================================================================

def _flatten_items(record: Dict[str, Any], prefix: str, items: List[SnackItem], limit: int) -> None:
    if len(items) > limit:
        logger.warning(f"⚠️ Only {limit} {prefix} entries are stored, dropping {len(items) - limit}")
    for index, item in enumerate(items[:limit], start=1):
        record[f"{prefix}_{index}_name"] = item.name
        record[f"{prefix}_{index}_protein"] = item.protein
        record[f"{prefix}_{index}_carbs"] = item.carbs
        record[f"{prefix}_{index}_fat"] = item.fat


def flatten_meal_plan(plan: MealPlan, **metadata: Any) -> Dict[str, Any]:
    """
    MealPlan -> flat record.

    Args:
        plan: MealPlan to store
        **metadata: Extra top-level fields (status, based_on_plan_id, ...)

    Returns:
        Flat dict ready for MealPlanStore.store_meal_plan
    """
    record: Dict[str, Any] = {"meal_plan_id": plan.plan_id}
    for meal in plan.sorted_meals():
        if meal.meal_type not in MEAL_TYPES:
            # would collide with the snack_{n}_* slots
            logger.warning(f"⚠️ Not storing '{meal.name}': unknown meal type {meal.meal_type!r}")
            continue
        prefix = f"{meal.meal_type}_{meal.day}"
        record[f"{prefix}_name"] = meal.name
        record[f"{prefix}_description"] = meal.description
        record[f"{prefix}_ingredients"] = [i.to_dict() for i in meal.ingredients]
        record[f"{prefix}_recipe"] = meal.recipe
        record[f"{prefix}_protein"] = meal.protein
        record[f"{prefix}_carbs"] = meal.carbs
        record[f"{prefix}_fat"] = meal.fat

    _flatten_items(record, "snack", plan.snacks, MAX_SNACKS)
    _flatten_items(record, "favorite_meal", plan.favorite_meals, MAX_FAVORITE_MEALS)
    record.update(metadata)
    return record


# =============================================================================
# UNFLATTEN
# =============================================================================

def placeholder_meal(day: int, meal_type: str) -> Meal:
    """Stand-in for a meal missing from a stored record."""
    return Meal(
        day=day,
        meal_type=meal_type,
        name=f"{meal_type.capitalize()} for Day {day}",
        description="No meal data available",
        ingredients=(),
        recipe="No recipe available",
        protein=0,
        carbs=0,
        fat=0,
    )


def _load_ingredients(value: Any) -> List[Any]:
    """Ingredients may be stored as a list or as a JSON-encoded string."""
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return [part.strip() for part in value.split(",") if part.strip()]
    return value if isinstance(value, list) else [value]


def _unflatten_items(record: Dict[str, Any], prefix: str, limit: int) -> List[SnackItem]:
    items = []
    for index in range(1, limit + 1):
        name = record.get(f"{prefix}_{index}_name")
        if not name:
            continue
        items.append(SnackItem.from_dict({
            field: record.get(f"{prefix}_{index}_{field}") for field in SNACK_FIELDS
        }))
    return items


def unflatten_meal_plan(record: Dict[str, Any]) -> MealPlan:
    """
    Flat record -> MealPlan.

    Missing meals are filled with placeholders so the result always has
    15 meals; each one is logged.
    """
    meals: List[Meal] = []
    for day in range(1, PLAN_DAYS + 1):
        for meal_type in MEAL_TYPES:
            prefix = f"{meal_type}_{day}"
            if not record.get(f"{prefix}_name"):
                logger.warning(f"⚠️ Missing meal in stored plan: Day {day} {meal_type}")
                meals.append(placeholder_meal(day, meal_type))
                continue
            meals.append(Meal.from_dict({
                "day": day,
                "mealType": meal_type,
                "name": record.get(f"{prefix}_name"),
                "description": record.get(f"{prefix}_description") or "",
                "ingredients": _load_ingredients(record.get(f"{prefix}_ingredients")),
                "recipe": record.get(f"{prefix}_recipe") or "",
                "protein": record.get(f"{prefix}_protein") or 0,
                "carbs": record.get(f"{prefix}_carbs") or 0,
                "fat": record.get(f"{prefix}_fat") or 0,
            }))

    return MealPlan(
        plan_id=str(record.get("meal_plan_id") or ""),
        meals=meals,
        snacks=_unflatten_items(record, "snack", MAX_SNACKS),
        favorite_meals=_unflatten_items(record, "favorite_meal", MAX_FAVORITE_MEALS),
    )
