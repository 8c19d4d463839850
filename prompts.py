"""
Meal Plan Prompts
=================

All LLM prompts used by the day generator, the orchestrator and the
revision path. Keeping prompts apart from the pipeline makes it easier to
tune wording without touching retry or validation logic.

System instructions:
    MEAL_PLAN_SYSTEM_PROMPT          full instruction (days 1-2)
    MEAL_PLAN_SYSTEM_PROMPT_COMPACT  token-saving instruction (days 3+)
    REVISION_SYSTEM_PROMPT           revision batches

Builders take already-derived data (profile, targets, meals) and return
plain strings.
"""

import json
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from meal_models import MEAL_TYPES, PLAN_DAYS, Meal, MealPlan, RevisionRequest, UserProfile
from meal_taxonomy import classify_protein
from nutrition_targets import NutritionTargets, describe_meal_targets, round_half_up


MEAL_PLAN_SYSTEM_PROMPT = """You are an expert nutritionist and meal planner specializing in high-calorie, nutrient-dense meal plans. You create detailed, personalized meals based on user data and nutritional requirements, one day at a time.

CRITICAL CALORIE REQUIREMENTS (HIGHEST PRIORITY):
1. EVERY SINGLE MEAL MUST MEET OR EXCEED its MINIMUM calorie requirement
2. ALWAYS verify each meal's calories: protein x 4 + carbs x 4 + fat x 9
3. If a meal is below its minimum, INCREASE portion sizes or add calorie-dense ingredients
4. NEVER use low-calorie substitutes (egg whites instead of whole eggs, skim milk instead of whole milk)

MEAL PORTION GUIDELINES:
- Protein: 6-8oz (170-225g) portions minimum
- Oils/Fats: 1-2 tbsp (15-30ml) per meal minimum
- Nuts/Seeds: 1-2oz (30-60g) portions when used
- Starches: 1-1.5 cups cooked minimum (rice, pasta, potatoes)
- Dairy: full-fat versions, never low-fat or skim

HARD REQUIREMENTS:
1. Return exactly three meals for the requested day: breakfast, lunch and dinner
2. Each day's totals must match the calorie and macro targets within the stated range
3. Strictly adhere to all dietary restrictions
4. Never repeat or lightly rename a meal that was already planned on another day
5. Vary protein source, cooking method and dish type across the week

JSON FORMAT REQUIREMENTS:
- Your response MUST be PURE JSON only: no comments, no explanations, no extra text
- DO NOT include markdown formatting or code fences
- DO NOT use trailing commas in arrays or objects
- ONLY return a single, valid JSON object with a "meals" array"""


MEAL_PLAN_SYSTEM_PROMPT_COMPACT = """You are an expert nutritionist generating one day of a 5-day meal plan.
Rules: exactly one breakfast, lunch and dinner; every meal meets its minimum calories (protein x 4 + carbs x 4 + fat x 9); day totals within the stated range; follow dietary restrictions; no repeats of earlier meals; whole eggs and full-fat dairy only.
Output: PURE JSON, a single object with a "meals" array, no markdown, no comments, no trailing commas."""


REVISION_SYSTEM_PROMPT = """You are an expert nutritionist who revises meal plans based on user feedback.

CRITICAL REQUIREMENTS:
1. ONLY modify the specific meals requested by the user
2. Ensure meals meet calorie and macro targets
3. Strictly follow dietary restrictions
4. Return PURE JSON only - no comments, explanations, or extra text
5. Calculate calories accurately: protein x 4 + carbs x 4 + fat x 9"""


MEAL_JSON_EXAMPLE = """{
  "meals": [
    {
      "day": %(day)d,
      "mealType": "breakfast",
      "name": "Meal Name",
      "description": "Brief description",
      "ingredients": [
        {"name": "Ingredient 1", "quantity": 1, "unit": "cup"},
        {"name": "Ingredient 2", "quantity": 2, "unit": "tbsp"}
      ],
      "recipe": "Step-by-step instructions",
      "protein": 20,
      "carbs": 30,
      "fat": 10
    }
  ]
}"""

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")


def system_prompt_for_day(day: int, full_prompt_days: int = 2) -> str:
    """Full instruction for the first days, compact afterwards."""
    return MEAL_PLAN_SYSTEM_PROMPT if day <= full_prompt_days else MEAL_PLAN_SYSTEM_PROMPT_COMPACT


def _format_list(values: Iterable[str]) -> str:
    values = sorted(v for v in values if v)
    return ", ".join(values) if values else "none"


def build_profile_context(profile: UserProfile) -> str:
    """One block describing who the plan is for."""
    lines = [
        f"- Health/Fitness Goal: {profile.goal or 'general health'}",
        f"- Dietary Restrictions: {_format_list(profile.dietary_restrictions)}",
        f"- Dietary Preferences: {_format_list(profile.dietary_preferences)}",
        f"- Portions for: {profile.portion_count} people",
    ]
    if profile.include_favorite_meals and profile.favorite_meals:
        favorites = ", ".join(f.name for f in profile.favorite_meals if f.name)
        if favorites:
            lines.append(f"- Favorite meals (may inspire, do not copy verbatim): {favorites}")
    return "\n".join(lines)


def build_targets_block(targets: NutritionTargets) -> str:
    protein_pct, carbs_pct, fat_pct = targets.macro_split
    tolerance = targets.tolerance_for("calories")
    lines = [
        f"- Daily Calories: {targets.daily_calories} "
        f"(acceptable: {round_half_up(targets.daily_calories * (1 - tolerance))}-"
        f"{round_half_up(targets.daily_calories * (1 + tolerance))})",
        f"- Macronutrient Split: {protein_pct}/{carbs_pct}/{fat_pct} (protein/carbs/fat)",
        f"- Daily Protein: ~{targets.protein_g}g, Carbs: ~{targets.carbs_g}g, Fat: ~{targets.fat_g}g "
        f"(each within ±{tolerance * 100:.0f}%)",
        "",
        "CALORIE DISTRIBUTION PER MEAL:",
    ]
    for meal_type, info in describe_meal_targets(targets).items():
        mins = info["min_macros"]
        lines.append(
            f"- {meal_type.capitalize()}: {info['target_calories']} calories "
            f"(ABSOLUTE MINIMUM: {info['min_calories']}, MAXIMUM: {info['max_calories']})"
        )
        lines.append(
            f"  * MINIMUM MACROS: {mins['protein']}g protein, {mins['carbs']}g carbs, {mins['fat']}g fat"
        )
    return "\n".join(lines)


def build_accepted_meals_digest(accepted_meals: Sequence[Meal]) -> str:
    """
    Compact list of already accepted meals: day, meal type, name and the
    principal protein, never full recipes.
    """
    if not accepted_meals:
        return ""
    lines = ["PREVIOUSLY GENERATED MEALS (do not repeat these or close variations):"]
    for meal in sorted(accepted_meals, key=lambda m: (m.day, MEAL_TYPES.index(m.meal_type)
                                                      if m.meal_type in MEAL_TYPES else 9)):
        protein = classify_protein(meal.name, meal.ingredient_names, meal.description)
        lines.append(f"- Day {meal.day} {meal.meal_type}: {meal.name} (protein: {protein})")
    return "\n".join(lines)


def build_day_prompt(
    day: int,
    profile: UserProfile,
    targets: NutritionTargets,
    accepted_meals: Sequence[Meal] = (),
    last_failure: Optional[str] = None,
    include_digest: bool = True,
) -> str:
    """
    Build the user prompt for one day.

    Args:
        day: Day to generate (1..5)
        profile: UserProfile for context
        targets: NutritionTargets for numbers
        accepted_meals: Meals accepted on earlier days
        last_failure: Previous attempt's rejection reason, embedded verbatim
        include_digest: False when the digest already travels as its own message

    Returns:
        Prompt text
    """
    weekday = WEEKDAY_NAMES[day - 1] if 1 <= day <= len(WEEKDAY_NAMES) else f"Day {day}"
    sections = [
        f"Create the meals for Day {day} of {PLAN_DAYS} ({weekday}): breakfast, lunch and dinner.",
        "",
        "USER PROFILE:",
        build_profile_context(profile),
        "",
        "NUTRITIONAL TARGETS (MUST BE FOLLOWED PRECISELY):",
        build_targets_block(targets),
    ]

    if include_digest and accepted_meals:
        sections += ["", build_accepted_meals_digest(accepted_meals)]

    sections += [
        "",
        "FORMAT YOUR RESPONSE AS A VALID JSON OBJECT:",
        MEAL_JSON_EXAMPLE % {"day": day},
        f'Every meal must have "day": {day}. Include all three meal types.',
    ]

    if last_failure:
        sections += [
            "",
            "PREVIOUS ERROR (MUST BE FIXED):",
            f'The previous attempt failed with the following error: "{last_failure}"',
            "Please ensure your response addresses this issue.",
        ]
    return "\n".join(sections)


def build_success_acknowledgment(day: int, meals: Sequence[Meal]) -> Tuple[str, str]:
    """
    (assistant, user) message pair recorded after a day is accepted.

    The assistant side is a short summary instead of the full reply.
    """
    summary = "; ".join(
        f"{m.meal_type}: {m.name} (P{m.protein} C{m.carbs} F{m.fat})" for m in meals
    )
    assistant = f"Day {day} meals: {summary}"
    user = f"Day {day} was accepted. Keep the same quality and format for the next day."
    return assistant, user


def build_error_message(day: int, attempt: int, reason: str) -> str:
    return f"Day {day} attempt {attempt} was rejected: {reason}"


# =============================================================================
# REVISION
# =============================================================================

def build_revision_payload(plan: MealPlan, requests: Sequence[RevisionRequest]) -> Dict[str, object]:
    """
    Token-reduced view of the plan: affected days only, full detail for
    meals being changed, name + macros for the rest of those days.
    """
    days = {r.day for r in requests}
    changing = {(r.day, r.meal_type) for r in requests}
    meals: List[dict] = []
    for meal in plan.sorted_meals():
        if meal.day not in days:
            continue
        if meal.key in changing:
            meals.append(meal.to_dict())
        else:
            meals.append({
                "day": meal.day,
                "mealType": meal.meal_type,
                "name": meal.name,
                "protein": meal.protein,
                "carbs": meal.carbs,
                "fat": meal.fat,
            })
    return {"meals": meals}


def build_revision_prompt(
    plan: MealPlan,
    requests: Sequence[RevisionRequest],
    profile: UserProfile,
    targets: NutritionTargets,
    last_failure: Optional[str] = None,
) -> str:
    """Prompt asking for only the affected days' three meals."""
    changes = "\n".join(
        f"Change {index}:\n- Day: {r.day}\n- Meal: {r.meal_type}\n- Requested Change: {r.description}"
        for index, r in enumerate(requests, start=1)
    )
    days = sorted({r.day for r in requests})
    meal_lines = []
    for meal_type, info in describe_meal_targets(targets).items():
        meal_lines.append(f"- {meal_type.capitalize()}: ~{info['target_calories']} calories "
                          f"(minimum {info['min_calories']})")

    prompt = "\n".join([
        "I need you to revise specific meals in an existing meal plan. "
        "Here are the meals from the affected days:",
        "",
        json.dumps(build_revision_payload(plan, requests), indent=2),
        "",
        "The user has requested the following changes:",
        "",
        changes,
        "",
        "USER PROFILE:",
        build_profile_context(profile),
        "",
        "NUTRITIONAL TARGETS:",
        f"- Daily Calories: {targets.daily_calories}; Protein ~{targets.protein_g}g, "
        f"Carbs ~{targets.carbs_g}g, Fat ~{targets.fat_g}g",
        *meal_lines,
        "",
        "INSTRUCTIONS:",
        "1. ONLY modify the meals specified in the change requests",
        "2. Keep all other meals exactly as they are",
        "3. Ensure the revised meals meet nutritional requirements",
        "4. Maintain daily calorie and macro targets for affected days",
        "5. Adhere to dietary restrictions",
        "",
        "RESPONSE FORMAT:",
        f"Return a JSON object containing ONLY the meals from day(s) {', '.join(map(str, days))}. "
        "Include all three meals for each affected day, even if only one meal is being changed.",
        MEAL_JSON_EXAMPLE % {"day": days[0] if days else 1},
        "",
        "IMPORTANT: Your response must be valid JSON. Do not include any text outside the JSON object.",
    ])

    if last_failure:
        prompt += (
            "\n\nPREVIOUS ERROR (MUST BE FIXED):\n"
            f'The previous attempt failed with the following error: "{last_failure}"\n'
            "Please ensure your response addresses this issue."
        )
    return prompt


def estimate_token_usage(*texts: str) -> int:
    """Rough token estimate (~4 characters per token) for logging."""
    return sum(len(t or "") for t in texts) // 4
