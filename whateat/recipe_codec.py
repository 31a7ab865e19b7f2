"""Tolerant decoding of recipe payloads and canonical request bodies.

The backend is inconsistent between endpoints: snake_case vs camelCase keys,
numbers sent as strings (and the other way round), ingredients and steps as
bare strings or objects, and list payloads wrapped in a handful of envelopes.
Everything here turns those shapes into the `whateat.recipes` models, and
builds the snake_case bodies the write endpoints expect.

Decoding is strict by default: a malformed payload raises `DecodeError`. The one
exception is the saved-recipes list, where a malformed element is logged and
skipped so one bad row does not hide the whole collection.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, ClassVar

from whateat.api_client import DecodeError
from whateat.recipes import Ingredient, InstructionStep, MealType, Recipe, RecipeOwnership

logger = logging.getLogger(__name__)

MISSING_DESCRIPTION = "Instructions coming soon."
PLACEHOLDER_INGREDIENT = "Ingredient"

_SAVED_LIST_KEYS = ("recipe_saves", "recipeSaves", "items", "results")
_PAGINATION_KEYS = ("pagination", "meta")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _pick(data: dict, *keys: str) -> Any:
    """Return the first non-null value among *keys*."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _flexible_string(value: Any) -> str | None:
    """Accept a string, int or float; numbers become their shortest string form."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return str(value)
    return None


def _optional_string(data: dict, *keys: str) -> str | None:
    return _flexible_string(_pick(data, *keys))


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _string_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, str)]


def _require_dict(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise DecodeError(f"{what} must be an object, got {type(value).__name__}")
    return value


def normalized_text(value: str) -> str:
    """Collapse whitespace and repair the dash mojibake some imports carry."""
    replaced = (
        value.replace("\r", " ")
        .replace("\n", " ")
        .replace("Ð", "-")
        .replace("Ñ", "-")
    )
    return " ".join(replaced.split())


# ---------------------------------------------------------------------------
# Wire-level shapes
# ---------------------------------------------------------------------------

@dataclass
class RecipeIngredient:
    """One ingredient as the server sent it."""
    name: str | None = None
    amount: str | None = None
    unit: str | None = None
    quantity: str | None = None
    raw_text: str | None = None
    text: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> "RecipeIngredient":
        if isinstance(value, str):
            return cls(raw_text=value, text=value)
        data = _require_dict(value, "ingredient")
        raw_text = _pick(data, "raw_text", "rawText")
        raw_text = raw_text if isinstance(raw_text, str) else None
        text = data.get("text")
        return cls(
            name=data["name"] if isinstance(data.get("name"), str) else None,
            amount=_flexible_string(data.get("amount")),
            unit=data["unit"] if isinstance(data.get("unit"), str) else None,
            quantity=_flexible_string(data.get("quantity")),
            raw_text=raw_text,
            text=text if isinstance(text, str) else raw_text,
        )


@dataclass
class RecipeStep:
    """One instruction step as the server sent it."""
    title: str | None = None
    detail: str | None = None
    text: str | None = None
    instruction: str | None = None
    order: int | None = None

    @classmethod
    def from_value(cls, value: Any) -> "RecipeStep":
        if isinstance(value, str):
            return cls(text=value)
        data = _require_dict(value, "step")

        def _str(key):
            v = data.get(key)
            return v if isinstance(v, str) else None

        instruction = _str("instruction")
        order = _optional_int(data.get("order"))
        if order is None:
            order = _optional_int(_pick(data, "stepNumber", "step_number"))
        return cls(
            title=_str("title"),
            detail=_str("description") if _str("description") is not None else _str("detail"),
            text=_str("text") if _str("text") is not None else instruction,
            instruction=instruction,
            order=order,
        )


@dataclass
class RecipeData:
    """A recipe in any of the server's shapes, flattened to one set of fields."""
    id: str
    title: str
    description: str | None = None
    servings: int | None = None
    calories: int | None = None
    prep_time: str | None = None
    cook_time: str | None = None
    prep_time_minutes: int | None = None
    cook_time_minutes: int | None = None
    tags: list[str] | None = None
    cuisine: str | None = None
    dietary_labels: list[str] | None = None
    ingredients: list[RecipeIngredient] | None = None
    steps: list[RecipeStep] | None = None
    media_urls: list[str] = field(default_factory=list)
    meal_type: str | None = None  # raw metadata label
    source_type: str | None = None
    is_user_owned: bool = False
    editable_recipe_id: str | None = None

    @classmethod
    def from_dict(cls, value: Any) -> "RecipeData":
        data = _require_dict(value, "recipe")

        recipe_id = _flexible_string(data.get("id"))
        title = _pick(data, "title", "name")
        missing = []
        if not recipe_id:
            missing.append("id")
        if not isinstance(title, str):
            missing.append("title")
        if missing:
            raise DecodeError(f"Missing required recipe fields: {', '.join(missing)}")

        ingredients_raw = data.get("ingredients")
        ingredients = None
        if ingredients_raw is not None:
            if not isinstance(ingredients_raw, list):
                raise DecodeError("ingredients must be a list")
            ingredients = [RecipeIngredient.from_value(item) for item in ingredients_raw]

        steps_raw = _pick(data, "steps", "instructions")
        steps = None
        if steps_raw is not None:
            if not isinstance(steps_raw, list):
                raise DecodeError("steps must be a list")
            steps = [RecipeStep.from_value(item) for item in steps_raw]

        media_urls = []
        media = data.get("media")
        if isinstance(media, list):
            for item in media:
                if isinstance(item, dict) and isinstance(item.get("url"), str):
                    media_urls.append(item["url"])
                elif isinstance(item, str):
                    media_urls.append(item)
        image_url = _pick(data, "image_url", "imageUrl")
        if isinstance(image_url, str) and image_url not in media_urls:
            media_urls.append(image_url)

        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        meal_type = _pick(metadata, "mealType", "meal_type")
        if meal_type is None:
            meal_type = _pick(data, "mealType", "meal_type")

        ownership = data.get("ownership") if isinstance(data.get("ownership"), dict) else {}

        return cls(
            id=recipe_id,
            title=title,
            description=_optional_string(data, "description"),
            servings=_optional_int(data.get("servings")),
            calories=_optional_int(data.get("calories")),
            prep_time=_optional_string(data, "prepTime", "prep_time"),
            cook_time=_optional_string(data, "cookTime", "cook_time"),
            prep_time_minutes=_optional_int(_pick(data, "prepTimeMinutes", "prep_time_minutes")),
            cook_time_minutes=_optional_int(_pick(data, "cookTimeMinutes", "cook_time_minutes")),
            tags=_string_list(data.get("tags")),
            cuisine=_optional_string(data, "cuisine"),
            dietary_labels=_string_list(_pick(data, "dietaryLabels", "dietary_labels")),
            ingredients=ingredients,
            steps=steps,
            media_urls=media_urls,
            meal_type=meal_type if isinstance(meal_type, str) else None,
            source_type=_optional_string(data, "sourceType", "source_type"),
            is_user_owned=bool(_pick(ownership, "isUserOwned", "is_user_owned")),
            editable_recipe_id=_optional_string(data, "editableRecipeId", "editable_recipe_id"),
        )


# ---------------------------------------------------------------------------
# Mapping to the canonical Recipe
# ---------------------------------------------------------------------------

def meal_type_for(recipe: RecipeData) -> MealType:
    """metadata.mealType first, then the first tag naming a meal, else OTHER."""
    meal_type = MealType.from_api_value(recipe.meal_type)
    if meal_type is not None:
        return meal_type

    for tag in recipe.tags or []:
        meal_type = MealType.from_api_value(tag)
        if meal_type is not None:
            return meal_type

    return MealType.OTHER


def format_minutes(minutes: int) -> str:
    """70 -> "1h 10m", 120 -> "2h", 25 -> "25 min"; non-positive -> "N/A"."""
    if minutes <= 0:
        return "N/A"
    hours, remaining = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remaining}m" if remaining > 0 else f"{hours}h"
    return f"{remaining} min"


def formatted_time(
    prep_time: str | None,
    cook_time: str | None,
    prep_minutes: int | None,
    cook_minutes: int | None,
) -> str:
    if prep_time:
        return prep_time
    if cook_time:
        return cook_time
    if prep_minutes is not None and cook_minutes is not None:
        return format_minutes(prep_minutes + cook_minutes)
    if prep_minutes is not None:
        return format_minutes(prep_minutes)
    if cook_minutes is not None:
        return format_minutes(cook_minutes)
    return "N/A"


def map_ingredient(ingredient: RecipeIngredient) -> Ingredient:
    if ingredient.text:
        cleaned = normalized_text(ingredient.text)
        if cleaned:
            return Ingredient(name=cleaned, text=cleaned)

    amount_parts = []
    for part in (ingredient.quantity, ingredient.amount, ingredient.unit):
        if part is None:
            continue
        trimmed = normalized_text(part)
        if trimmed:
            amount_parts.append(trimmed)
    amount_text = " ".join(amount_parts) if amount_parts else None
    name = normalized_text(ingredient.name or "")

    if not name and amount_text:
        return Ingredient(name="", amount=None, text=amount_text)

    return Ingredient(name=name or PLACEHOLDER_INGREDIENT, amount=amount_text)


def map_ingredients(ingredients: list[RecipeIngredient] | None) -> list[Ingredient]:
    return [map_ingredient(ingredient) for ingredient in ingredients or []]


def map_steps(steps: list[RecipeStep] | None) -> list[InstructionStep]:
    """Order by `order` (missing last, input position breaks ties) and renumber 1..N."""
    if not steps:
        return []

    ordered = sorted(
        enumerate(steps),
        key=lambda entry: (entry[1].order is None, entry[1].order or 0, entry[0]),
    )

    result = []
    for offset, (_, step) in enumerate(ordered):
        step_number = offset + 1
        fallback_title = f"Step {step_number}"
        title = normalized_text(step.title) if step.title else ""
        detail = step.detail if step.detail is not None else (step.text or "")
        description = normalized_text(detail)
        result.append(InstructionStep(
            step_number=step_number,
            title=title or fallback_title,
            description=description or MISSING_DESCRIPTION,
        ))
    return result


def build_recipe(recipe: RecipeData, meal_type: MealType | None = None) -> Recipe:
    """Build the canonical Recipe. *meal_type* overrides the decoded one (bucket label)."""
    return Recipe(
        id=recipe.id,
        name=recipe.title,
        meal_type=meal_type or meal_type_for(recipe),
        prep_time=formatted_time(
            recipe.prep_time,
            recipe.cook_time,
            recipe.prep_time_minutes,
            recipe.cook_time_minutes,
        ),
        calories=recipe.calories,
        image_url=recipe.media_urls[0] if recipe.media_urls else None,
        ingredients=map_ingredients(recipe.ingredients),
        instructions=map_steps(recipe.steps),
        tags=list(recipe.tags or []),
        source_type=recipe.source_type,
        ownership=RecipeOwnership(is_user_owned=recipe.is_user_owned),
        editable_recipe_id=recipe.editable_recipe_id,
    )


def decode_recipe(value: Any) -> Recipe:
    return build_recipe(RecipeData.from_dict(value))


# ---------------------------------------------------------------------------
# Single-recipe envelopes
# ---------------------------------------------------------------------------

def decode_recipe_response(payload: Any) -> RecipeData:
    """GET /recipes/{id}: ``{recipe_data}`` or ``{recipe}``."""
    data = _require_dict(payload, "recipe response")
    for key in ("recipe_data", "recipe"):
        if data.get(key) is not None:
            return RecipeData.from_dict(data[key])
    raise DecodeError("Missing recipe_data or recipe payload.")


def decode_import_response(payload: Any) -> RecipeData:
    """Import: ``{recipe_data}`` or ``{save_payload: {recipe}}``."""
    data = _require_dict(payload, "import response")
    if data.get("recipe_data") is not None:
        return RecipeData.from_dict(data["recipe_data"])
    save_payload = data.get("save_payload")
    if isinstance(save_payload, dict) and save_payload.get("recipe") is not None:
        return RecipeData.from_dict(save_payload["recipe"])
    raise DecodeError("Missing recipe_data or save_payload.recipe payload.")


# ---------------------------------------------------------------------------
# Saved recipes
# ---------------------------------------------------------------------------

@dataclass
class SavedRecipesPagination:
    page: int
    limit: int | None
    total: int | None
    total_pages: int

    @classmethod
    def from_value(cls, value: Any) -> "SavedRecipesPagination | None":
        if not isinstance(value, dict):
            return None
        page = _optional_int(value.get("page"))
        total_pages = _optional_int(_pick(value, "totalPages", "total_pages"))
        if page is None or total_pages is None:
            return None
        return cls(
            page=page,
            limit=_optional_int(value.get("limit")),
            total=_optional_int(value.get("total")),
            total_pages=total_pages,
        )


@dataclass
class SavedRecipePayload:
    id: str
    recipe: RecipeData
    saved_at: str | None = None
    source_recipe_id: str | None = None
    daily_plan_item_id: str | None = None

    @classmethod
    def from_dict(cls, value: Any) -> "SavedRecipePayload":
        data = _require_dict(value, "recipe save")
        save_id = _flexible_string(data.get("id"))
        if not save_id:
            raise DecodeError("Missing recipe save id.")
        recipe = _pick(data, "recipe_data", "recipeData", "recipe")
        if recipe is None:
            raise DecodeError("Missing recipe or recipe_data payload.")
        return cls(
            id=save_id,
            recipe=RecipeData.from_dict(recipe),
            saved_at=_optional_string(data, "saved_at", "savedAt"),
            source_recipe_id=_optional_string(data, "source_recipe_id", "sourceRecipeId"),
            daily_plan_item_id=_optional_string(data, "daily_plan_item_id", "dailyPlanItemId"),
        )


@dataclass
class SavedRecipesResponse:
    recipe_saves: list[SavedRecipePayload]
    pagination: SavedRecipesPagination | None = None


def _lossy_saved_list(items: list) -> list[SavedRecipePayload]:
    saves = []
    for index, item in enumerate(items):
        try:
            saves.append(SavedRecipePayload.from_dict(item))
        except DecodeError as e:
            logger.warning("Skipping malformed saved recipe", extra={"index": index, "error": str(e)})
    return saves


def _pagination_from(container: dict) -> SavedRecipesPagination | None:
    for key in _PAGINATION_KEYS:
        pagination = SavedRecipesPagination.from_value(container.get(key))
        if pagination is not None:
            return pagination
    return None


def decode_saved_recipes(payload: Any) -> SavedRecipesResponse:
    """GET /recipe-saves in any of its envelopes.

    Precedence: ``recipe_saves | recipeSaves | items | results | data``; ``data`` may
    be the list itself or an object holding one of the list keys.
    """
    if isinstance(payload, list):
        return SavedRecipesResponse(recipe_saves=_lossy_saved_list(payload))

    data = _require_dict(payload, "saved recipes response")

    for key in _SAVED_LIST_KEYS:
        if isinstance(data.get(key), list):
            return SavedRecipesResponse(_lossy_saved_list(data[key]), _pagination_from(data))

    inner = data.get("data")
    if isinstance(inner, list):
        return SavedRecipesResponse(_lossy_saved_list(inner), _pagination_from(data))
    if isinstance(inner, dict):
        for key in _SAVED_LIST_KEYS:
            if isinstance(inner.get(key), list):
                pagination = _pagination_from(inner) or _pagination_from(data)
                return SavedRecipesResponse(_lossy_saved_list(inner[key]), pagination)

    raise DecodeError("Missing recipe_saves payload.")


@dataclass
class SaveRecipeResponse:
    id: str
    recipe_id: str | None = None
    recipe_title: str | None = None
    source_recipe_id: str | None = None
    daily_plan_item_id: str | None = None
    created_at: str | None = None

    @classmethod
    def _from_flat(cls, value: Any) -> "SaveRecipeResponse | None":
        if not isinstance(value, dict):
            return None
        save_id = _flexible_string(value.get("id"))
        if not save_id:
            return None
        return cls(
            id=save_id,
            recipe_id=_optional_string(value, "recipeId", "recipe_id"),
            recipe_title=_optional_string(value, "recipeTitle", "recipe_title"),
            source_recipe_id=_optional_string(value, "sourceRecipeId", "source_recipe_id"),
            daily_plan_item_id=_optional_string(value, "dailyPlanItemId", "daily_plan_item_id"),
            created_at=_optional_string(value, "createdAt", "created_at"),
        )


def decode_save_response(payload: Any) -> SaveRecipeResponse:
    """POST /recipe-saves: flat, or under ``recipe_save``, ``data`` or ``data.recipe_save``."""
    data = _require_dict(payload, "save response")
    inner = data.get("data") if isinstance(data.get("data"), dict) else {}
    for candidate in (data, data.get("recipe_save"), inner, inner.get("recipe_save")):
        response = SaveRecipeResponse._from_flat(candidate)
        if response is not None:
            return response
    raise DecodeError("Missing recipe save payload.")


# ---------------------------------------------------------------------------
# Daily suggestions
# ---------------------------------------------------------------------------

@dataclass
class DailySuggestion:
    id: str
    recipe_data: RecipeData
    rank: int | None = None
    user_id: str | None = None
    generated_at: str | None = None
    expires_at: str | None = None
    saved_recipe_id: str | None = None
    run_id: str | None = None
    trigger_source: str | None = None

    @classmethod
    def from_dict(cls, value: Any) -> "DailySuggestion":
        data = _require_dict(value, "suggestion")
        suggestion_id = _flexible_string(data.get("id"))
        if not suggestion_id:
            raise DecodeError("Missing suggestion id.")
        recipe = _pick(data, "recipe_data", "recipeData", "recipe")
        if recipe is None:
            raise DecodeError("Missing suggestion recipe_data.")
        return cls(
            id=suggestion_id,
            recipe_data=RecipeData.from_dict(recipe),
            rank=_optional_int(data.get("rank")),
            user_id=_optional_string(data, "userId", "user_id"),
            generated_at=_optional_string(data, "generatedAt", "generated_at"),
            expires_at=_optional_string(data, "expiresAt", "expires_at"),
            saved_recipe_id=_optional_string(data, "savedRecipeId", "saved_recipe_id"),
            run_id=_optional_string(data, "runId", "run_id"),
            trigger_source=_optional_string(data, "triggerSource", "trigger_source"),
        )


@dataclass
class SuggestionList:
    kind: ClassVar[str] = "list"
    suggestions: list[DailySuggestion]


@dataclass
class SuggestionBuckets:
    kind: ClassVar[str] = "buckets"
    buckets: dict[str, list[DailySuggestion]]


DailySuggestionsPayload = SuggestionList | SuggestionBuckets


@dataclass
class DailyRun:
    id: str
    status: str
    trigger_source: str | None = None
    created_at: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> "DailyRun | None":
        if not isinstance(value, dict):
            return None
        run_id = _flexible_string(value.get("id"))
        status = value.get("status")
        if not run_id or not isinstance(status, str):
            return None
        return cls(
            id=run_id,
            status=status,
            trigger_source=_optional_string(value, "triggerSource", "trigger_source"),
            created_at=_optional_string(value, "createdAt", "created_at"),
        )


@dataclass
class DailySuggestionsResponse:
    suggestions: DailySuggestionsPayload
    run: DailyRun | None = None


def _decode_buckets(value: dict) -> SuggestionBuckets:
    buckets = {}
    for label, items in value.items():
        if not isinstance(items, list):
            raise DecodeError(f"Suggestion bucket {label!r} must be a list")
        buckets[label] = [DailySuggestion.from_dict(item) for item in items]
    return SuggestionBuckets(buckets=buckets)


def decode_daily_suggestions(payload: Any) -> DailySuggestionsResponse:
    """GET /daily/suggestions: ``suggestions`` is either a flat list or meal buckets."""
    data = _require_dict(payload, "daily suggestions response")
    raw = data.get("suggestions")
    if isinstance(raw, list):
        suggestions = SuggestionList(suggestions=[DailySuggestion.from_dict(item) for item in raw])
    elif isinstance(raw, dict):
        suggestions = _decode_buckets(raw)
    else:
        suggestions = SuggestionBuckets(buckets={})
    return DailySuggestionsResponse(suggestions=suggestions, run=DailyRun.from_value(data.get("run")))


def decode_daily_refresh(payload: Any) -> SuggestionBuckets:
    """GET /daily/refresh always answers with buckets."""
    data = _require_dict(payload, "daily refresh response")
    raw = data.get("suggestions")
    if not isinstance(raw, dict):
        raise DecodeError("Daily refresh suggestions must be bucketed by meal type.")
    return _decode_buckets(raw)


# ---------------------------------------------------------------------------
# Outbound payloads
# ---------------------------------------------------------------------------

def _compact(payload: dict) -> dict:
    return {key: value for key, value in payload.items() if value is not None}


def ingredient_payload(raw_text: str) -> dict:
    return {"raw_text": raw_text}


def step_payloads(instructions: list[str]) -> list[dict]:
    """Steps in the order given, numbered 1..N."""
    return [{"instruction": text, "order": index + 1} for index, text in enumerate(instructions)]


def media_payload(url: str, name: str | None = None, media_type: str = "image") -> dict:
    return _compact({"media_type": media_type, "url": url, "name": name})


def _recipe_write_body(
    title: str | None,
    ingredients: list[str] | None,
    instructions: list[str] | None,
    description: str | None,
    servings: int | None,
    calories: int | None,
    prep_time: str | None,
    cook_time: str | None,
    prep_time_minutes: int | None,
    cook_time_minutes: int | None,
    tags: list[str] | None,
    cuisine: str | None,
    dietary_labels: list[str] | None,
    media: list[dict] | None,
    meal_type: MealType | str | None,
) -> dict:
    if isinstance(meal_type, MealType):
        meal_type = meal_type.value
    return _compact({
        "title": title,
        "description": description,
        "servings": servings,
        "calories": calories,
        "prep_time": prep_time,
        "cook_time": cook_time,
        "prep_time_minutes": prep_time_minutes,
        "cook_time_minutes": cook_time_minutes,
        "tags": tags,
        "cuisine": cuisine,
        "dietary_labels": dietary_labels,
        "ingredients": [ingredient_payload(text) for text in ingredients] if ingredients is not None else None,
        "steps": step_payloads(instructions) if instructions is not None else None,
        "media": media,
        "metadata": {"meal_type": meal_type} if meal_type else None,
    })


def build_create_request(
    title: str,
    ingredients: list[str],
    instructions: list[str],
    *,
    description: str | None = None,
    servings: int | None = None,
    calories: int | None = None,
    prep_time: str | None = None,
    cook_time: str | None = None,
    prep_time_minutes: int | None = None,
    cook_time_minutes: int | None = None,
    tags: list[str] | None = None,
    cuisine: str | None = None,
    dietary_labels: list[str] | None = None,
    media: list[dict] | None = None,
    meal_type: MealType | str | None = None,
) -> dict:
    """Body for POST /recipes. Title, ingredients and steps are always sent."""
    return _recipe_write_body(
        title, ingredients, instructions, description, servings, calories,
        prep_time, cook_time, prep_time_minutes, cook_time_minutes,
        tags, cuisine, dietary_labels, media, meal_type,
    )


def build_update_request(
    title: str | None = None,
    ingredients: list[str] | None = None,
    instructions: list[str] | None = None,
    *,
    description: str | None = None,
    servings: int | None = None,
    calories: int | None = None,
    prep_time: str | None = None,
    cook_time: str | None = None,
    prep_time_minutes: int | None = None,
    cook_time_minutes: int | None = None,
    tags: list[str] | None = None,
    cuisine: str | None = None,
    dietary_labels: list[str] | None = None,
    media: list[dict] | None = None,
    meal_type: MealType | str | None = None,
) -> dict:
    """Body for PATCH /recipes/{id}. Only the fields given are sent."""
    return _recipe_write_body(
        title, ingredients, instructions, description, servings, calories,
        prep_time, cook_time, prep_time_minutes, cook_time_minutes,
        tags, cuisine, dietary_labels, media, meal_type,
    )


def encode_recipe(recipe: Recipe) -> dict:
    """Create body for an already-decoded Recipe."""
    return build_create_request(
        title=recipe.name,
        ingredients=[ingredient.display_text for ingredient in recipe.ingredients],
        instructions=[step.description for step in recipe.instructions],
        calories=recipe.calories,
        prep_time=recipe.prep_time if recipe.prep_time != "N/A" else None,
        tags=list(recipe.tags) or None,
        media=[media_payload(recipe.image_url)] if recipe.image_url else None,
        meal_type=recipe.meal_type if recipe.meal_type is not MealType.OTHER else None,
    )
