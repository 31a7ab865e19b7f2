"""Draft state behind the create / edit recipe screen."""

import logging
import re
from enum import Enum

from whateat.api_client import APIClient, APIError, DecodeError
from whateat.auth import AuthError, AuthManager
from whateat.image_upload import CoverPhotoUpload, ImageUploadService
from whateat.observable import Observable
from whateat.recipe_codec import build_create_request, build_update_request, media_payload
from whateat.recipes import Ingredient, InstructionStep, MealType, Recipe, RecipeOwnership
from whateat.saved_recipes import SavedRecipesStore

logger = logging.getLogger(__name__)

COVER_PHOTO_NAME = "Cover photo"
COVER_NOT_READY_MESSAGE = "Cover photo upload isn't finished yet. Remove it or wait to finish."

_HOURS_RE = re.compile(r"(\d+)\s*h")
_MINUTES_RE = re.compile(r"(\d+)\s*m")


class EditorMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"


def format_minutes(minutes: int) -> str:
    """Like the codec's formatter, but an empty draft reads "0 min" instead of "N/A"."""
    if minutes <= 0:
        return "0 min"
    hours, remaining = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remaining}m" if remaining > 0 else f"{hours}h"
    return f"{remaining} min"


def parse_minutes(value: str) -> int | None:
    """ "1h 10m" -> 70, "25 min" -> 25, "45" -> 45, "N/A" -> None."""
    lower = value.lower()
    if "n/a" in lower:
        return None

    total = 0
    hours = _HOURS_RE.search(lower)
    if hours:
        total += int(hours.group(1)) * 60
    minutes = _MINUTES_RE.search(lower)
    if minutes:
        total += int(minutes.group(1))

    if total == 0:
        try:
            return int(lower.strip())
        except ValueError:
            return None
    return total


def _clean_lines(lines: list[str]) -> list[str]:
    return [line.strip() for line in lines if line.strip()]


class RecipeEditor(Observable):
    """Create a new recipe or edit an existing one.

    In edit mode the draft is seeded from the recipe. Saving a recipe the user
    does not own first materialises an editable copy through the saved store.
    """

    def __init__(
        self,
        api: APIClient,
        auth: AuthManager,
        saved_recipes: SavedRecipesStore,
        upload_service: ImageUploadService,
        recipe: Recipe | None = None,
    ):
        super().__init__()
        self.api = api
        self.auth = auth
        self.saved_recipes = saved_recipes
        self.original = recipe
        self.mode = EditorMode.EDIT if recipe is not None else EditorMode.CREATE

        self.is_saving = False
        self.error_message: str | None = None

        if recipe is None:
            self.title = ""
            self.ingredients = [""]
            self.instructions = [""]
            self.prep_hours = 0
            self.prep_minutes = 0
            self.calories_text = ""
            self.meal_type = MealType.OTHER
            cover_url = None
        else:
            self.title = recipe.name
            self.ingredients = [ingredient.display_text for ingredient in recipe.ingredients] or [""]
            self.instructions = [
                step.description if step.description.strip() else step.title
                for step in recipe.instructions
            ] or [""]
            total = parse_minutes(recipe.prep_time) or 0
            self.prep_hours, self.prep_minutes = divmod(total, 60)
            self.calories_text = str(recipe.calories) if recipe.calories is not None else ""
            self.meal_type = recipe.meal_type
            cover_url = recipe.image_url

        self.cover = CoverPhotoUpload(upload_service, url=cover_url)
        self.cover.subscribe(lambda _: self.notify())

    @property
    def navigation_title(self) -> str:
        return "New Recipe" if self.mode is EditorMode.CREATE else "Edit Recipe"

    @property
    def trimmed_title(self) -> str:
        return self.title.strip()

    @property
    def total_prep_minutes(self) -> int:
        return max(0, self.prep_hours * 60 + self.prep_minutes)

    @property
    def formatted_prep_time(self) -> str:
        return format_minutes(self.total_prep_minutes)

    @property
    def non_empty_ingredients(self) -> list[str]:
        return _clean_lines(self.ingredients)

    @property
    def non_empty_instructions(self) -> list[str]:
        return _clean_lines(self.instructions)

    @property
    def parsed_calories(self) -> int | None:
        trimmed = self.calories_text.strip()
        if not trimmed:
            return None
        try:
            return int(trimmed)
        except ValueError:
            return None

    @property
    def has_required_fields(self) -> bool:
        return (
            bool(self.trimmed_title)
            and bool(self.non_empty_ingredients)
            and bool(self.non_empty_instructions)
            and self.total_prep_minutes > 0
        )

    # Cover photo

    async def select_cover_photo(self, data: bytes, mime: str = "image/jpeg"):
        try:
            access_token = await self.auth.get_valid_access_token()
        except (AuthError, APIError) as e:
            self.error_message = str(e)
            self.notify()
            return None
        return self.cover.select(data, access_token, mime=mime)

    def remove_cover_photo(self) -> None:
        self.cover.remove()

    # Payloads

    def _media(self) -> list[dict] | None:
        if self.cover.url is None:
            return None
        return [media_payload(self.cover.url, name=COVER_PHOTO_NAME)]

    def _meal_type(self) -> MealType | None:
        return self.meal_type if self.meal_type is not MealType.OTHER else None

    def make_create_request(self) -> dict:
        return build_create_request(
            title=self.trimmed_title,
            ingredients=self.non_empty_ingredients,
            instructions=self.non_empty_instructions,
            calories=self.parsed_calories,
            prep_time_minutes=self.total_prep_minutes,
            media=self._media(),
            meal_type=self._meal_type(),
        )

    def make_update_request(self) -> dict:
        return build_update_request(
            title=self.trimmed_title,
            ingredients=self.non_empty_ingredients,
            instructions=self.non_empty_instructions,
            calories=self.parsed_calories,
            prep_time_minutes=self.total_prep_minutes,
            media=self._media(),
            meal_type=self._meal_type(),
        )

    def make_recipe(self, recipe_id: str, source_type: str | None = "user") -> Recipe:
        """The local Recipe the draft turns into once the server accepted it."""
        return Recipe(
            id=recipe_id,
            name=self.trimmed_title,
            meal_type=self.meal_type,
            prep_time=self.formatted_prep_time,
            calories=self.parsed_calories,
            image_url=self.cover.url,
            ingredients=[Ingredient(name=line, text=line) for line in self.non_empty_ingredients],
            instructions=[
                InstructionStep(step_number=index + 1, title=f"Step {index + 1}", description=line)
                for index, line in enumerate(self.non_empty_instructions)
            ],
            tags=[],
            source_type=source_type,
            ownership=RecipeOwnership(is_user_owned=True),
            editable_recipe_id=recipe_id,
        )

    # Save

    async def save(self) -> Recipe | None:
        """Create or update the recipe. Returns the saved Recipe, or None when nothing was saved."""
        if self.is_saving or not self.has_required_fields:
            return None
        if not self.cover.is_ready_for_save:
            self.error_message = COVER_NOT_READY_MESSAGE
            self.notify()
            return None

        self.is_saving = True
        self.error_message = None
        self.notify()
        try:
            if self.mode is EditorMode.CREATE:
                recipe = await self._create()
            else:
                recipe = await self._update()
        except (AuthError, APIError) as e:
            logger.warning("Failed to save recipe", extra={"mode": self.mode.value, "error": str(e)})
            self.error_message = str(e)
            return None
        finally:
            self.is_saving = False
            self.notify()
        return recipe

    async def _create(self) -> Recipe:
        access_token = await self.auth.get_valid_access_token()
        response = await self.api.post("/recipes", self.make_create_request(), access_token=access_token)
        if not isinstance(response, dict) or response.get("id") is None:
            raise DecodeError("create response is missing the recipe id")
        recipe = self.make_recipe(str(response["id"]))
        logger.info("Created recipe", extra={"recipe_id": recipe.id})
        await self.saved_recipes.refresh_after_recipe_mutation()
        return recipe

    async def _update(self) -> Recipe:
        recipe_id = await self.saved_recipes.ensure_editable_recipe_id(self.original)
        access_token = await self.auth.get_valid_access_token()
        response = await self.api.patch(
            f"/recipes/{recipe_id}",
            self.make_update_request(),
            access_token=access_token,
        )
        if isinstance(response, dict) and response.get("id") is not None:
            recipe_id = str(response["id"])
        recipe = self.make_recipe(recipe_id)
        self.saved_recipes.update_recipe(recipe, source_recipe_id=self.original.id)
        logger.info("Updated recipe", extra={"recipe_id": recipe_id})
        return recipe
