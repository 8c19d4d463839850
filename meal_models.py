"""
Meal Plan Data Model
====================

Dataclasses shared by every stage of the pipeline:

- UserProfile: immutable input for one generation run
- Meal / Ingredient: one model-proposed meal; calories are always derived
- MealPlan: 5 days x 3 meal types plus optional snacks / favorite meals
- ValidationResult: transient verdict from the validators
- RevisionRequest / ProgressEvent: revision input and progress signal payload
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

PLAN_DAYS = 5
MEAL_TYPES = ("breakfast", "lunch", "dinner")
MACROS = ("calories", "protein", "carbs", "fat")

KCAL_PER_GRAM = {"protein": 4, "carbs": 4, "fat": 9}


def derive_calories(protein: float, carbs: float, fat: float) -> float:
    """4/4/9 kcal-per-gram conversion. Never rounded here."""
    return (protein * KCAL_PER_GRAM["protein"]
            + carbs * KCAL_PER_GRAM["carbs"]
            + fat * KCAL_PER_GRAM["fat"])


def meal_type_order(meal_type: str) -> int:
    try:
        return MEAL_TYPES.index(meal_type)
    except ValueError:
        return len(MEAL_TYPES)


def _to_number(value: Any, field_name: str) -> float:
    """Coerce a macro value from model output ("30", "30g", 30) to a number."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be numeric, got {value!r}")
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip().lower()
    if text.endswith("g"):
        text = text[:-1].strip()
    try:
        number = float(text)
    except ValueError:
        raise ValueError(f"{field_name} must be numeric, got {value!r}") from None
    return int(number) if number.is_integer() else number


# =============================================================================
# PROFILE
# =============================================================================

@dataclass(frozen=True)
class SnackItem:
    """Snack or favorite meal attached to a plan from the user's profile."""
    name: str
    protein: float = 0
    carbs: float = 0
    fat: float = 0

    @property
    def calories(self) -> float:
        return derive_calories(self.protein, self.carbs, self.fat)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "protein": self.protein,
                "carbs": self.carbs, "fat": self.fat}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnackItem":
        return cls(
            name=str(data.get("name") or "").strip(),
            protein=_to_number(data.get("protein"), "protein"),
            carbs=_to_number(data.get("carbs"), "carbs"),
            fat=_to_number(data.get("fat"), "fat"),
        )


@dataclass(frozen=True)
class UserProfile:
    goal: str = ""
    dietary_restrictions: FrozenSet[str] = frozenset()
    dietary_preferences: FrozenSet[str] = frozenset()
    portion_count: int = 1
    weekday_calories: float = 0
    weekend_calories: float = 0
    # "35/35/30", {"type": "35/35/30"}, {"protein": 35, ...} or (35, 35, 30)
    macro_split: Any = None
    include_snacks: bool = False
    include_favorite_meals: bool = False
    snacks: Tuple[SnackItem, ...] = ()
    favorite_meals: Tuple[SnackItem, ...] = ()


# =============================================================================
# MEALS
# =============================================================================

@dataclass(frozen=True)
class Ingredient:
    name: str
    quantity: Any = None
    unit: str = ""

    @classmethod
    def from_value(cls, value: Any) -> "Ingredient":
        if isinstance(value, dict):
            return cls(
                name=str(value.get("name") or "").strip(),
                quantity=value.get("quantity"),
                unit=str(value.get("unit") or "").strip(),
            )
        return cls(name=str(value).strip())

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "unit": self.unit}


@dataclass(frozen=True)
class Meal:
    day: int
    meal_type: str
    name: str
    description: str = ""
    ingredients: Tuple[Ingredient, ...] = ()
    recipe: str = ""
    protein: float = 0
    carbs: float = 0
    fat: float = 0

    @property
    def calories(self) -> float:
        return derive_calories(self.protein, self.carbs, self.fat)

    @property
    def key(self) -> Tuple[int, str]:
        return (self.day, self.meal_type)

    @property
    def ingredient_names(self) -> List[str]:
        return [i.name for i in self.ingredients if i.name]

    def to_dict(self) -> Dict[str, Any]:
        """Model-facing shape (camelCase mealType)."""
        return {
            "day": self.day,
            "mealType": self.meal_type,
            "name": self.name,
            "description": self.description,
            "ingredients": [i.to_dict() for i in self.ingredients],
            "recipe": self.recipe,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_day: Optional[int] = None) -> "Meal":
        """
        Build a Meal from a model or storage dict.

        Raises:
            ValueError: If the entry is not an object or has non-numeric fields
        """
        if not isinstance(data, dict):
            raise ValueError(f"meal entry must be an object, got {type(data).__name__}")

        raw_day = data.get("day", default_day)
        try:
            day = int(raw_day) if raw_day is not None else 0
        except (TypeError, ValueError):
            raise ValueError(f"day must be an integer, got {raw_day!r}") from None

        meal_type = data.get("mealType", data.get("meal_type", ""))
        ingredients = data.get("ingredients") or []
        if not isinstance(ingredients, list):
            ingredients = [ingredients]

        return cls(
            day=day,
            meal_type=str(meal_type or "").strip().lower(),
            name=str(data.get("name") or "").strip(),
            description=str(data.get("description") or "").strip(),
            ingredients=tuple(Ingredient.from_value(i) for i in ingredients),
            recipe=str(data.get("recipe") or "").strip(),
            protein=_to_number(data.get("protein"), "protein"),
            carbs=_to_number(data.get("carbs"), "carbs"),
            fat=_to_number(data.get("fat"), "fat"),
        )


@dataclass
class MealPlan:
    plan_id: str
    meals: List[Meal] = field(default_factory=list)
    snacks: List[SnackItem] = field(default_factory=list)
    favorite_meals: List[SnackItem] = field(default_factory=list)

    def sorted_meals(self) -> List[Meal]:
        return sorted(self.meals, key=lambda m: (m.day, meal_type_order(m.meal_type)))

    def meals_for_day(self, day: int) -> List[Meal]:
        return [m for m in self.sorted_meals() if m.day == day]

    def get_meal(self, day: int, meal_type: str) -> Optional[Meal]:
        for meal in self.meals:
            if meal.day == day and meal.meal_type == meal_type:
                return meal
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meal_plan_id": self.plan_id,
            "meals": [m.to_dict() for m in self.sorted_meals()],
            "snacks": [s.to_dict() for s in self.snacks],
            "favoriteMeals": [f.to_dict() for f in self.favorite_meals],
        }


# =============================================================================
# TRANSIENT RECORDS
# =============================================================================

@dataclass
class ValidationResult:
    valid: bool
    reason: str = ""
    deviations: Dict[str, float] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    # parse | duplicate | macro | structural | dietary
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, deviations: Optional[Dict[str, float]] = None) -> "ValidationResult":
        return cls(valid=True, deviations=deviations or {})

    @classmethod
    def failed(cls, kind: str, reason: str, **kwargs) -> "ValidationResult":
        return cls(valid=False, reason=reason, error_kind=kind, **kwargs)


@dataclass(frozen=True)
class RevisionRequest:
    """One requested change to an approved plan."""
    day: int
    meal_type: str
    description: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RevisionRequest":
        return cls(
            day=int(data["day"]),
            meal_type=str(data.get("mealType", data.get("meal_type", ""))).strip().lower(),
            description=str(data.get("changes", data.get("description", ""))).strip(),
        )


@dataclass(frozen=True)
class ProgressEvent:
    day: int
    message: str
    progress: int
