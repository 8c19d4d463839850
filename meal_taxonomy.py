"""
Keyword taxonomies for meal classification and dietary checks.

This module is intentionally lightweight (plain data + pure functions) so it
can be used by the similarity checker, the validators and the prompt digest
without pulling in the rest of the pipeline.

Each table is an immutable, ordered mapping of category -> keywords. Order
matters: the first category with a matching keyword wins, so specific
categories ("ground beef") come before general ones ("beef").
"""

from __future__ import annotations

import re
from functools import lru_cache
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

OTHER = "other"

PROTEIN_CATEGORIES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "chicken-thigh": ("chicken thigh", "chicken leg", "drumstick"),
    "chicken-breast": ("chicken breast", "chicken"),
    "turkey": ("turkey",),
    "beef-ground": ("ground beef", "minced beef", "beef mince", "hamburger", "meatball"),
    "beef-steak": ("steak", "sirloin", "ribeye", "flank", "beef"),
    "pork": ("pork", "bacon", "ham", "sausage", "prosciutto", "chorizo"),
    "lamb": ("lamb",),
    "fish-salmon": ("salmon",),
    "fish-tuna": ("tuna",),
    "fish-white": ("cod", "tilapia", "halibut", "haddock", "sea bass", "mahi", "fish"),
    "shellfish": ("shrimp", "prawn", "crab", "lobster", "scallop", "mussel"),
    "tofu": ("tofu", "tempeh", "seitan"),
    "beans": ("bean", "lentil", "chickpea", "edamame", "hummus", "dal"),
    "eggs": ("egg", "omelette", "omelet", "frittata", "shakshuka"),
    "protein-powder": ("protein powder", "whey", "protein shake"),
    "dairy": ("greek yogurt", "yogurt", "cottage cheese", "paneer", "cheese", "milk"),
})

COOKING_METHODS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "combination": ("braise", "braised", "pot roast", "stew", "stewed", "slow cooker", "slow-cooked"),
    "fat-based": ("stir-fry", "stir fry", "stir-fried", "pan-fried", "deep-fried", "fried",
                  "fry", "saute", "sauteed", "sauté", "sautéed", "crispy"),
    "wet-heat": ("poached", "poach", "steamed", "steam", "boiled", "boil", "simmered", "simmer"),
    "dry-heat": ("grilled", "grill", "roasted", "roast", "baked", "bake", "broiled", "broil",
                 "seared", "sear", "toasted", "bbq", "barbecue"),
    "cold-prep": ("raw", "no-cook", "overnight", "chilled", "smoothie", "parfait", "ceviche"),
})

DISH_TYPES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "curry": ("curry", "masala", "korma", "vindaloo"),
    "stir-fry": ("stir-fry", "stir fry", "stir-fried"),
    "soup": ("soup", "broth", "chowder", "bisque", "ramen", "pho"),
    "salad": ("salad", "slaw"),
    "sandwich": ("sandwich", "wrap", "burger", "panini", "sub", "pita", "toast", "taco", "burrito"),
    "pasta": ("pasta", "spaghetti", "penne", "linguine", "fettuccine", "macaroni", "lasagna",
              "noodle", "gnocchi"),
    "casserole": ("casserole", "bake", "gratin", "hotdish"),
    "rice-dish": ("rice", "risotto", "pilaf", "paella", "biryani", "jambalaya"),
    "bowl": ("bowl", "poke", "oatmeal", "porridge", "parfait"),
    "roast": ("roast", "roasted"),
})

CUISINES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "thai": ("thai", "pad thai", "tom yum", "lemongrass", "green curry", "red curry", "satay"),
    "japanese": ("japanese", "teriyaki", "sushi", "miso", "katsu", "tempura", "soba", "udon", "ramen"),
    "indian": ("indian", "tikka", "masala", "korma", "tandoori", "dal", "biryani", "paneer", "vindaloo"),
    "mexican": ("mexican", "taco", "burrito", "enchilada", "quesadilla", "fajita", "salsa",
                "tortilla", "chipotle", "guacamole"),
    "italian": ("italian", "pesto", "marinara", "parmesan", "risotto", "lasagna", "bruschetta",
                "caprese", "spaghetti", "gnocchi"),
    "middle-eastern": ("middle eastern", "shawarma", "falafel", "tahini", "za'atar", "kebab",
                       "harissa", "lebanese", "persian"),
    "mediterranean": ("mediterranean", "greek", "feta", "tzatziki", "kalamata", "hummus", "gyro"),
    "french": ("french", "provencal", "provençal", "ratatouille", "dijon", "bearnaise",
               "crepe", "quiche", "nicoise"),
    "asian": ("asian", "chinese", "soy sauce", "hoisin", "sesame", "kung pao", "bok choy",
              "korean", "bulgogi", "gochujang"),
    "american": ("american", "bbq", "barbecue", "cajun", "buffalo", "meatloaf", "mac and cheese",
                 "pancake", "cobb"),
})

# Case-insensitive substring search over ingredient names
DIETARY_RESTRICTION_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "vegan": ("meat", "chicken", "beef", "pork", "fish", "milk", "cheese", "egg"),
    "vegetarian": ("meat", "chicken", "beef", "pork", "fish"),
    "gluten-free": ("wheat", "gluten", "bread", "pasta", "flour"),
    "dairy-free": ("milk", "cheese", "yogurt", "butter", "cream"),
})

# A stored restriction names a table entry when it contains one of these markers
_RESTRICTION_MARKERS = (
    ("vegan", "vegan"),
    ("vegetarian", "vegetarian"),
    ("gluten", "gluten-free"),
    ("dairy", "dairy-free"),
    ("lactose", "dairy-free"),
)


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    # word boundaries, optional plural suffix ("egg" matches "eggs", not "eggplant")
    return re.compile(r"\b" + re.escape(keyword) + r"(?:e?s)?\b", re.IGNORECASE)


def contains_keyword(text: str, keyword: str) -> bool:
    return bool(text) and bool(_keyword_pattern(keyword).search(text))


def classify(table: Mapping[str, Tuple[str, ...]], *texts: Optional[str]) -> str:
    """
    Return the first category of `table` whose keyword appears in the texts.

    Texts are searched in the order given, so pass the most telling field
    (the meal name) first.

    Returns:
        Category name, or "other" when nothing matches
    """
    for text in texts:
        if not text:
            continue
        for category, keywords in table.items():
            if any(contains_keyword(text, k) for k in keywords):
                return category
    return OTHER


def _meal_texts(name: str, ingredients: Iterable[str], description: str) -> Tuple[str, str, str]:
    return name or "", " ".join(i for i in ingredients if i), description or ""


def classify_protein(name: str, ingredients: Iterable[str] = (), description: str = "") -> str:
    return classify(PROTEIN_CATEGORIES, *_meal_texts(name, ingredients, description))


def classify_cooking_method(name: str, ingredients: Iterable[str] = (), description: str = "") -> str:
    return classify(COOKING_METHODS, *_meal_texts(name, ingredients, description))


def classify_dish_type(name: str, ingredients: Iterable[str] = (), description: str = "") -> str:
    return classify(DISH_TYPES, *_meal_texts(name, ingredients, description))


def classify_cuisine(name: str, ingredients: Iterable[str] = (), description: str = "") -> str:
    return classify(CUISINES, *_meal_texts(name, ingredients, description))


def restriction_categories(restriction: str) -> Tuple[str, ...]:
    """
    Keyword-table entries named by a free-text restriction.

    "Vegan" -> ("vegan",); "gluten free and no dairy" -> ("gluten-free", "dairy-free").
    Unknown restrictions map to nothing.
    """
    lowered = (restriction or "").lower()
    found = []
    for marker, category in _RESTRICTION_MARKERS:
        if marker in lowered and category not in found:
            found.append(category)
    return tuple(found)


def find_restricted_keyword(ingredient_name: str, restriction: str) -> Optional[str]:
    """First restricted keyword contained (substring, case-insensitive) in an ingredient name."""
    lowered = (ingredient_name or "").lower()
    for category in restriction_categories(restriction):
        for keyword in DIETARY_RESTRICTION_KEYWORDS[category]:
            if keyword in lowered:
                return keyword
    return None
