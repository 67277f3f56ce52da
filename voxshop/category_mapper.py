"""Keyword-based grocery category inference."""

from __future__ import annotations

import re

from voxshop.models import Category

CATEGORY_ORDER: tuple[Category, ...] = (
    Category.PRODUCE,
    Category.DAIRY,
    Category.MEAT,
    Category.FROZEN,
    Category.PANTRY,
    Category.BAKERY,
    Category.BEVERAGES,
    Category.HOUSEHOLD,
    Category.OTHER,
)

CATEGORY_LABELS: dict[Category, str] = {
    Category.PRODUCE: "Produce",
    Category.DAIRY: "Dairy",
    Category.MEAT: "Meat & Seafood",
    Category.FROZEN: "Frozen",
    Category.PANTRY: "Pantry",
    Category.BAKERY: "Bakery",
    Category.BEVERAGES: "Beverages",
    Category.HOUSEHOLD: "Household",
    Category.OTHER: "Other",
}

CATEGORY_KEYWORDS: dict[Category, tuple[str, ...]] = {
    Category.PRODUCE: (
        "apple",
        "apples",
        "banana",
        "bananas",
        "berries",
        "blueberries",
        "strawberries",
        "grapes",
        "orange",
        "oranges",
        "lemon",
        "lime",
        "avocado",
        "lettuce",
        "spinach",
        "kale",
        "tomato",
        "tomatoes",
        "onion",
        "onions",
        "garlic",
        "potato",
        "potatoes",
        "carrot",
        "carrots",
        "cucumber",
        "pepper",
        "peppers",
        "broccoli",
        "cauliflower",
        "celery",
        "mushroom",
        "mushrooms",
        "cilantro",
        "parsley",
        "basil",
        "ginger",
    ),
    Category.DAIRY: (
        "milk",
        "almond milk",
        "oat milk",
        "cheese",
        "yogurt",
        "butter",
        "cream",
        "sour cream",
        "cottage cheese",
        "eggs",
    ),
    Category.MEAT: (
        "beef",
        "chicken",
        "pork",
        "turkey",
        "ham",
        "bacon",
        "sausage",
        "steak",
        "fish",
        "salmon",
        "tuna",
        "shrimp",
    ),
    Category.FROZEN: (
        "frozen",
        "ice cream",
        "frozen pizza",
        "frozen veggies",
    ),
    Category.PANTRY: (
        "pasta",
        "rice",
        "beans",
        "canned",
        "soup",
        "cereal",
        "flour",
        "sugar",
        "oil",
        "vinegar",
        "sauce",
        "ketchup",
        "mustard",
        "spice",
        "spices",
        "salt",
        "peppercorn",
    ),
    Category.BAKERY: (
        "bread",
        "bagel",
        "bagels",
        "baguette",
        "bun",
        "buns",
        "roll",
        "rolls",
        "pastry",
        "cake",
        "muffin",
        "cookies",
    ),
    Category.BEVERAGES: (
        "water",
        "sparkling water",
        "soda",
        "juice",
        "coffee",
        "tea",
        "beer",
        "wine",
        "kombucha",
    ),
    Category.HOUSEHOLD: (
        "paper towels",
        "toilet paper",
        "detergent",
        "dish soap",
        "soap",
        "shampoo",
        "conditioner",
        "trash bags",
        "garbage bags",
        "cleaner",
        "bleach",
        "napkins",
        "tissues",
        "foil",
        "wrap",
        "batteries",
    ),
    Category.OTHER: (),
}

# Single-word keywords must match whole words ("ham" never hits "shampoo").
_WORD_PATTERNS: dict[str, re.Pattern[str]] = {
    keyword: re.compile(rf"\b{re.escape(keyword)}\b")
    for keywords in CATEGORY_KEYWORDS.values()
    for keyword in keywords
    if " " not in keyword
}


def _matches_keyword(normalized: str, keyword: str) -> bool:
    """Test one keyword against an already normalized name.

    Args:
        normalized: Lower-cased, trimmed item name.
        keyword: Keyword from the category table.

    Returns:
        True if the keyword matches.
    """
    if " " in keyword:
        return keyword in normalized
    return _WORD_PATTERNS[keyword].search(normalized) is not None


def infer_category_from_name(name: str) -> Category:
    """Guess the aisle category of an item from its name.

    Categories are tried in display order and the first one with a
    keyword hit wins.

    Args:
        name: Item name in any case.

    Returns:
        The inferred Category, ``Category.OTHER`` when nothing matches.
    """
    normalized = name.strip().lower()
    if not normalized:
        return Category.OTHER

    for category in CATEGORY_ORDER:
        if category is Category.OTHER:
            continue
        if any(_matches_keyword(normalized, kw) for kw in CATEGORY_KEYWORDS[category]):
            return category

    return Category.OTHER
