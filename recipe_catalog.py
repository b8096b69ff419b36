"""
Recipe catalog — the recipe collection the cooking session reads from.

Recipes are plain dicts (see SAMPLE_RECIPES). Validation happens here, at
authoring time; the session engine assumes every step it is given has a
positive whole-minute duration.
"""

import copy
import json
import logging
import os
import time
import uuid

log = logging.getLogger("recipes")

DIFFICULTIES = ("Easy", "Medium", "Hard")
STEP_TYPES = ("instruction", "cooking")
MIN_TITLE_LEN = 3


def _now_iso():
    return time.strftime("%Y-%m-%dT%H:%M:%S")


def _new_id():
    return uuid.uuid4().hex


SAMPLE_RECIPES = [
    {
        "id": "spicy-tomato-pasta",
        "title": "Spicy Tomato Pasta",
        "cuisine": "Italian",
        "difficulty": "Easy",
        "ingredients": [
            {"id": "pasta", "name": "Pasta", "quantity": 200, "unit": "g"},
            {"id": "tomato-sauce", "name": "Tomato Sauce", "quantity": 150, "unit": "ml"},
        ],
        "steps": [
            {"id": "boil", "description": "Boil pasta", "type": "instruction", "duration_minutes": 10},
            {
                "id": "sauce",
                "description": "Cook sauce",
                "type": "cooking",
                "duration_minutes": 8,
                "cooking_settings": {"temperature": 120, "speed": 2},
            },
        ],
        "is_favorite": True,
    },
    {
        "id": "chocolate-mug-cake",
        "title": "Chocolate Mug Cake",
        "cuisine": "Dessert",
        "difficulty": "Medium",
        "ingredients": [
            {"id": "flour", "name": "Flour", "quantity": 50, "unit": "g"},
            {"id": "cocoa", "name": "Cocoa Powder", "quantity": 20, "unit": "g"},
        ],
        "steps": [
            {"id": "mix", "description": "Mix ingredients", "type": "instruction", "duration_minutes": 3},
            {
                "id": "microwave",
                "description": "Microwave",
                "type": "cooking",
                "duration_minutes": 2,
                "cooking_settings": {"temperature": 150, "speed": 1},
            },
        ],
        "is_favorite": False,
    },
]


def validate_step(step, index=None):
    """Check duration and fill in defaults. Raises ValueError on bad input."""
    label = f"Step {index + 1}" if index is not None else "Step"
    if "duration_minutes" not in step:
        raise ValueError(f"{label} missing 'duration_minutes'")
    minutes = step["duration_minutes"]
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
        raise ValueError(f"{label} duration must be a positive whole number of minutes")
    step.setdefault("id", _new_id())
    step.setdefault("type", "instruction")
    if step["type"] not in STEP_TYPES:
        raise ValueError(f"{label} type must be one of {', '.join(STEP_TYPES)}")
    if not step.get("description"):
        step["description"] = "Cooking step" if step["type"] == "cooking" else "Instruction step"
    step.setdefault("ingredient_ids", [])
    return step


def validate_recipe(recipe):
    """Validate a recipe dict in place and return it."""
    title = (recipe.get("title") or "").strip()
    if len(title) < MIN_TITLE_LEN:
        raise ValueError(f"Title must be at least {MIN_TITLE_LEN} characters")
    recipe["title"] = title
    recipe.setdefault("difficulty", "Easy")
    if recipe["difficulty"] not in DIFFICULTIES:
        raise ValueError(f"Difficulty must be one of {', '.join(DIFFICULTIES)}")
    steps = recipe.get("steps") or []
    if not steps:
        raise ValueError("Recipe needs at least one step")
    for i, step in enumerate(steps):
        validate_step(step, index=i)
    ingredient_ids = set()
    for ing in recipe.setdefault("ingredients", []):
        ing.setdefault("id", _new_id())
        ingredient_ids.add(ing["id"])
    # Drop references to ingredients that were removed
    for step in steps:
        step["ingredient_ids"] = [i for i in step["ingredient_ids"] if i in ingredient_ids]
    recipe.setdefault("id", _new_id())
    recipe.setdefault("cuisine", "")
    recipe["is_favorite"] = bool(recipe.get("is_favorite", False))
    stamp = _now_iso()
    recipe.setdefault("created_at", stamp)
    recipe.setdefault("updated_at", stamp)
    return recipe


def total_minutes(recipe):
    return sum(s["duration_minutes"] for s in recipe.get("steps", []))


def total_seconds(recipe):
    return total_minutes(recipe) * 60


class RecipeCatalog:
    """Ordered recipe collection, optionally backed by a JSON file."""

    def __init__(self, path=None):
        self.path = path
        self.items = self._load() if path else []
        if not self.items:
            self.items = [validate_recipe(copy.deepcopy(r)) for r in SAMPLE_RECIPES]

    def _load(self):
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            log.warning(f"Ignoring corrupt recipe file {self.path}: {e}")
            return []
        if not isinstance(data, list):
            log.warning(f"Ignoring recipe file {self.path}: expected a list")
            return []
        recipes = []
        for raw in data:
            try:
                recipes.append(validate_recipe(raw))
            except (ValueError, AttributeError, TypeError) as e:
                log.warning(f"Skipping invalid stored recipe: {e}")
        return recipes

    def _save(self):
        if not self.path:
            return
        with open(self.path, "w") as f:
            json.dump(self.items, f, indent=2)

    def list(self, difficulty=None, sort="asc", favorites_only=False):
        """Recipes filtered by difficulty/favourite, sorted by total time."""
        recipes = self.items
        if difficulty:
            recipes = [r for r in recipes if r["difficulty"] == difficulty]
        if favorites_only:
            recipes = [r for r in recipes if r["is_favorite"]]
        return sorted(recipes, key=total_minutes, reverse=(sort == "desc"))

    def get(self, recipe_id):
        return next((r for r in self.items if r["id"] == recipe_id), None)

    def add(self, recipe):
        recipe = validate_recipe(recipe)
        if self.get(recipe["id"]):
            raise ValueError(f"Recipe {recipe['id']} already exists")
        self.items.append(recipe)
        self._save()
        log.info(f"Recipe added: {recipe['title']} ({recipe['id']})")
        return recipe

    def update(self, recipe_id, recipe):
        current = self.get(recipe_id)
        if not current:
            return None
        recipe["id"] = recipe_id
        recipe["created_at"] = current.get("created_at", _now_iso())
        recipe["updated_at"] = _now_iso()
        recipe = validate_recipe(recipe)
        self.items[self.items.index(current)] = recipe
        self._save()
        log.info(f"Recipe updated: {recipe['title']} ({recipe_id})")
        return recipe

    def delete(self, recipe_id):
        current = self.get(recipe_id)
        if not current:
            return False
        self.items.remove(current)
        self._save()
        log.info(f"Recipe deleted: {recipe_id}")
        return True

    def toggle_favorite(self, recipe_id):
        recipe = self.get(recipe_id)
        if not recipe:
            return None
        recipe["is_favorite"] = not recipe["is_favorite"]
        self._save()
        return recipe


def default_path():
    return os.environ.get("COOK_RECIPES_FILE", "recipes.json")
