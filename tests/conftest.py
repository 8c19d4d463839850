"""
Pytest Configuration and Fixtures
=================================

Provides shared fixtures for the test suite:
- A 2000 kcal @ 40/30/30 profile and its targets
- Meal factory and five days of meals that pass every check
- Scripted fake chat client (no network)
- In-memory MealPlanStore
- asyncio.sleep patched out so retry backoff costs nothing

SAFETY: Nothing here talks to OpenRouter or a real database.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence
from unittest.mock import AsyncMock, patch

import pytest

from meal_models import Ingredient, Meal, MealPlan, UserProfile
from nutrition_targets import calculate_nutrition_targets
from utils.plan_records import MealPlanStore


def run_async(coro):
    """Run a coroutine to completion in a fresh event loop."""
    return asyncio.run(coro)


# =============================================================================
# Meal data
# =============================================================================

# Per meal type (protein, carbs, fat); a day totals P214 C165 F76 = 2200 kcal
DAY_MACROS = {
    "breakfast": (64, 50, 23),
    "lunch": (75, 58, 26),
    "dinner": (75, 57, 27),
}

# (name, ingredients) per day, breakfast / lunch / dinner.
# Names, proteins and cooking methods are spread so no pair reads as a duplicate.
SAMPLE_DAYS = {
    1: [
        ("Spinach Feta Omelette", ["whole eggs", "spinach", "feta", "olive oil"]),
        ("Grilled Salmon Quinoa Salad", ["salmon fillet", "quinoa", "cucumber", "lemon"]),
        ("Beef Stir-Fry with Broccoli", ["flank steak", "broccoli", "jasmine rice", "soy sauce"]),
    ],
    2: [
        ("Greek Yogurt Berry Parfait", ["greek yogurt", "blueberries", "granola", "honey"]),
        ("Turkey Avocado Wrap", ["sliced turkey", "avocado", "tortilla", "lettuce"]),
        ("Braised Lamb Shank Stew", ["lamb shank", "carrots", "potatoes", "red wine"]),
    ],
    3: [
        ("Protein Pancakes with Banana", ["oat flour", "whole eggs", "banana", "maple syrup"]),
        ("Shrimp Tacos with Mango Salsa", ["shrimp", "corn tortillas", "mango", "red onion"]),
        ("Chicken Tikka Masala with Rice", ["chicken breast", "basmati rice", "tomato", "cream"]),
    ],
    4: [
        ("Smoked Salmon Bagel", ["smoked salmon", "bagel", "cream cheese", "capers"]),
        ("Lentil Soup with Crusty Bread", ["red lentils", "sourdough", "celery", "cumin"]),
        ("Pork Tenderloin with Roasted Vegetables", ["pork tenderloin", "zucchini", "bell pepper", "thyme"]),
    ],
    5: [
        ("Cottage Cheese Pancakes", ["cottage cheese", "oats", "strawberries", "butter"]),
        ("Tuna Poke Bowl", ["ahi tuna", "sushi rice", "edamame", "seaweed"]),
        ("Baked Cod with Sweet Potato", ["cod fillet", "sweet potato", "green beans", "garlic"]),
    ],
}


def make_meal(
    day: int = 1,
    meal_type: str = "breakfast",
    name: str = "Test Meal",
    protein: float = 30,
    carbs: float = 40,
    fat: float = 15,
    ingredients: Sequence[str] = (),
    description: str = "",
) -> Meal:
    return Meal(
        day=day,
        meal_type=meal_type,
        name=name,
        description=description,
        ingredients=tuple(Ingredient(name=i) for i in ingredients),
        recipe="Cook and serve.",
        protein=protein,
        carbs=carbs,
        fat=fat,
    )


def sample_day_meals(day: int) -> List[Meal]:
    """Three meals for `day` that pass structure, floor and macro checks."""
    meals = []
    for meal_type, (name, ingredients) in zip(("breakfast", "lunch", "dinner"), SAMPLE_DAYS[day]):
        protein, carbs, fat = DAY_MACROS[meal_type]
        meals.append(make_meal(day, meal_type, name, protein, carbs, fat, ingredients))
    return meals


def sample_plan(plan_id: str = "plan-123") -> MealPlan:
    meals = [meal for day in SAMPLE_DAYS for meal in sample_day_meals(day)]
    return MealPlan(plan_id=plan_id, meals=meals)


def day_reply(meals: Sequence[Meal], wrap: bool = True) -> str:
    """A model reply carrying `meals`, fenced the way models usually answer."""
    body = json.dumps({"meals": [m.to_dict() for m in meals]}, indent=2)
    return f"Here is the plan:\n```json\n{body}\n```" if wrap else body


# =============================================================================
# Fakes
# =============================================================================

class FakeChatClient:
    """
    Scripted stand-in for OpenRouterChatClient.

    Each chat() call consumes the next scripted reply; an Exception instance
    in the script is raised instead of returned.
    """

    def __init__(self, replies: Sequence[Any]):
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    async def chat(self, system_prompt, messages, temperature=0.7, max_tokens=4000):
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": [dict(m) for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if not self.replies:
            raise AssertionError("FakeChatClient ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class InMemoryMealPlanStore(MealPlanStore):
    """MealPlanStore backed by dicts."""

    def __init__(self, user_data: Optional[Dict[str, Any]] = None):
        self.user_data = user_data or {}
        self.plans: Dict[str, Dict[str, Any]] = {}
        self.stored: List[Dict[str, Any]] = []

    async def get_meal_plan_by_id(self, plan_id):
        return self.plans.get(plan_id)

    async def get_all_user_data(self, user_id, conversation_id=None):
        return self.user_data

    async def store_meal_plan(self, user_id, plan_data, conversation_id=None):
        self.plans[plan_data["meal_plan_id"]] = dict(plan_data)
        self.stored.append({"user_id": user_id, "conversation_id": conversation_id, "plan": plan_data})
        return plan_data


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def profile():
    """2000 kcal weekdays, 40/30/30 split, no restrictions."""
    return UserProfile(
        goal="build muscle",
        weekday_calories=2000,
        weekend_calories=2200,
        macro_split="40/30/30",
    )


@pytest.fixture
def targets(profile):
    return calculate_nutrition_targets(profile)


@pytest.fixture
def user_data():
    """Store bundle for the same 2000 kcal @ 40/30/30 user."""
    return {
        "user": {"id": "user-1"},
        "metricsAndGoals": {"health_fitness_goal": "build muscle"},
        "dietAndMealPreferences": {
            "dietary_restrictions": [],
            "dietary_preferences": ["high protein"],
            "meal_portion_people_count": 2,
            "include_snacks": False,
            "include_favorite_meals": False,
        },
        "calorieCalculations": {
            "five_two_split": "weekdays:2000 weekends:2200",
            "macronutrient_split": '{"type": "40/30/30"}',
        },
        "mealPlans": [],
    }


@pytest.fixture(autouse=True)
def generation_defaults():
    """Pin GENERATION_CONFIG to the shipped defaults whatever data/config.yaml says."""
    import config
    with patch.dict(config.GENERATION_CONFIG, config._build_generation_config({})):
        yield config.GENERATION_CONFIG


@pytest.fixture
def no_sleep():
    """Patch asyncio.sleep so retry backoff is instant; yields the mock."""
    with patch("asyncio.sleep", new=AsyncMock()) as mocked:
        yield mocked


# =============================================================================
# Test Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "readonly: marks test as read-only (no network, no writes)"
    )
    config.addinivalue_line(
        "markers", "slow: marks test as slow (may take >10 seconds)"
    )
