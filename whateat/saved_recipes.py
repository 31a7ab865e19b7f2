"""The user's saved-recipe collection, mirrored from GET /recipe-saves.

The store keeps the list in server order, an index from every recipe id and
source-recipe id to its save id, and per-recipe ingredient check marks. Save and
unsave reconcile with the server on the races it reports (409 on a duplicate
save, 404 on an already-removed save).
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import ClassVar

from whateat import config
from whateat.api_client import APIClient, APIError
from whateat.auth import AuthError, AuthManager
from whateat.observable import Observable
from whateat.recipe_codec import SaveRecipeResponse, build_recipe, decode_save_response, decode_saved_recipes
from whateat.recipes import Recipe, RecipeOwnership

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409
HTTP_NOT_FOUND = 404


@dataclass(frozen=True)
class SaveSource:
    """Where a save comes from. `source_type` is the discriminant sent to the server."""
    source_type: str
    source_id: str

    DAILY_PLAN_ITEM: ClassVar[str] = "daily_plan_item"
    RECIPE: ClassVar[str] = "recipe"
    SHARE: ClassVar[str] = "share"

    @classmethod
    def daily_plan_item(cls, item_id: str) -> "SaveSource":
        return cls(cls.DAILY_PLAN_ITEM, item_id)

    @classmethod
    def recipe(cls, recipe_id: str) -> "SaveSource":
        return cls(cls.RECIPE, recipe_id)

    @classmethod
    def share(cls, token: str) -> "SaveSource":
        return cls(cls.SHARE, token)

    def to_request(self) -> dict:
        return {"source_type": self.source_type, "source_id": self.source_id}


@dataclass
class SavedRecipeItem:
    id: str  # save id
    recipe: Recipe
    saved_at: str | None = None
    source_recipe_id: str | None = None
    daily_plan_item_id: str | None = None


def _status_of(error: Exception) -> int | None:
    return getattr(error, "status_code", None)


def _owned_copy(recipe: Recipe, recipe_id: str) -> Recipe:
    """The user's editable clone of *recipe* as materialised by a save."""
    return dataclasses.replace(
        recipe,
        id=recipe_id,
        source_type="user",
        ownership=RecipeOwnership(is_user_owned=True),
        editable_recipe_id=recipe_id,
    )


class SavedRecipesStore(Observable):
    def __init__(self, api: APIClient, auth: AuthManager, page_limit: int = config.DEFAULT_PAGE_LIMIT):
        super().__init__()
        self.api = api
        self.auth = auth
        self.default_page_limit = page_limit
        self._reset_state()

    def _reset_state(self) -> None:
        self.saved_recipes: list[SavedRecipeItem] = []
        self.is_loading = False
        self.is_loading_more = False
        self.is_bookmark_busy = False
        self.error_message: str | None = None
        self.has_loaded = False
        self.pagination = None
        self.current_page = 1
        self.page_limit = self.default_page_limit
        self.save_id_by_recipe_id: dict[str, str] = {}
        self._checked_ingredients: dict[str, set[str]] = {}
        self._end_reached_without_pagination = False

    def reset(self) -> None:
        """Forget everything; used on sign-out."""
        self._reset_state()
        self.notify()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_saved_recipes_if_needed(self) -> None:
        if self.has_loaded:
            return
        await self.load_saved_recipes(page=1, limit=self.page_limit)

    async def load_saved_recipes(self, page: int = 1, limit: int | None = None, force: bool = False) -> bool:
        """Fetch one page. Page 1 replaces the list, later pages append.

        Args:
            page: 1-based page number.
            limit: Page size; defaults to the current page limit.
            force: Reload page 1 even when it has already been loaded.

        Returns:
            True when a page was loaded; False when the call was a no-op or failed.
        """
        limit = limit or self.page_limit
        first_page = page <= 1
        if first_page:
            if self.is_loading or (self.has_loaded and not force):
                return False
            self.is_loading = True
        else:
            # A later page waits until page 1 has settled
            if self.is_loading_more or self.is_loading:
                return False
            self.is_loading_more = True
        self.notify()

        try:
            access_token = await self.auth.get_valid_access_token()
            payload = await self.api.get(
                "/recipe-saves",
                access_token=access_token,
                params={"page": page, "limit": limit},
            )
            response = decode_saved_recipes(payload)
        except (AuthError, APIError) as e:
            logger.warning("Failed to load saved recipes", extra={"page": page, "error": str(e)})
            self.error_message = str(e)
            return False
        finally:
            if first_page:
                self.is_loading = False
            else:
                self.is_loading_more = False
            self.notify()

        items = [
            SavedRecipeItem(
                id=save.id,
                recipe=build_recipe(save.recipe),
                saved_at=save.saved_at,
                source_recipe_id=save.source_recipe_id,
                daily_plan_item_id=save.daily_plan_item_id,
            )
            for save in response.recipe_saves
        ]

        if first_page:
            self.saved_recipes = []
        for item in items:
            self._upsert(item, insert_at_top=False)
        self._rebuild_index()

        pagination = response.pagination
        self.pagination = pagination
        self.current_page = pagination.page if pagination else page
        self.page_limit = (pagination.limit if pagination and pagination.limit else None) or limit
        self._end_reached_without_pagination = pagination is None and len(items) < limit
        if first_page:
            self.has_loaded = True
        self.error_message = None

        logger.info("Loaded saved recipes", extra={"page": page, "count": len(items), "total": len(self.saved_recipes)})
        self.notify()
        return True

    async def load_more_saved_recipes(self) -> bool:
        if self.is_loading or not self.can_load_more:
            return False
        return await self.load_saved_recipes(page=self.current_page + 1, limit=self.page_limit, force=True)

    async def refresh_after_recipe_mutation(self) -> bool:
        return await self.load_saved_recipes(page=1, limit=self.page_limit, force=True)

    @property
    def can_load_more(self) -> bool:
        if self.pagination is not None:
            return self.pagination.page < self.pagination.total_pages
        if self._end_reached_without_pagination:
            return False
        return bool(self.saved_recipes) and len(self.saved_recipes) >= self.page_limit

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_saved(self, recipe_id: str) -> bool:
        return recipe_id in self.save_id_by_recipe_id

    def save_id(self, recipe_id: str) -> str | None:
        return self.save_id_by_recipe_id.get(recipe_id)

    # ------------------------------------------------------------------
    # Save / unsave
    # ------------------------------------------------------------------

    async def save(self, recipe: Recipe, source: SaveSource) -> SavedRecipeItem | None:
        """Bookmark *recipe* and index it locally.

        A 409 means the server already has the save, so page 1 is reloaded to
        pick it up.

        Args:
            recipe: The recipe being saved.
            source: Where the save came from (daily plan item, recipe or share).

        Returns:
            The stored item, or None on a no-op, a 409 or a failure (see ``error_message``).
        """
        if self.is_saved(recipe.id) or self.is_bookmark_busy:
            return None

        self.is_bookmark_busy = True
        self.notify()
        try:
            item = await self._post_save(recipe, source)
        except (AuthError, APIError) as e:
            if _status_of(e) == HTTP_CONFLICT:
                logger.info("Recipe already saved on the server, reloading", extra={"recipe_id": recipe.id})
                self.is_bookmark_busy = False
                await self.load_saved_recipes(page=1, limit=config.DEFAULT_PAGE_LIMIT, force=True)
                return None
            logger.warning("Failed to save recipe", extra={"recipe_id": recipe.id, "error": str(e)})
            self.error_message = str(e)
            return None
        finally:
            self.is_bookmark_busy = False
            self.notify()

        self.error_message = None
        self.notify()
        return item

    async def _post_save(self, recipe: Recipe, source: SaveSource) -> SavedRecipeItem:
        access_token = await self.auth.get_valid_access_token()
        payload = await self.api.post("/recipe-saves", source.to_request(), access_token=access_token)
        response = decode_save_response(payload)
        item = self._item_from_save(recipe, response)
        self._upsert(item, insert_at_top=True)
        self._rebuild_index()
        logger.info("Saved recipe", extra={"recipe_id": recipe.id, "save_id": item.id})
        return item

    @staticmethod
    def _item_from_save(recipe: Recipe, response: SaveRecipeResponse) -> SavedRecipeItem:
        resolved_id = response.recipe_id or response.source_recipe_id or recipe.id
        return SavedRecipeItem(
            id=response.id,
            recipe=_owned_copy(recipe, resolved_id),
            saved_at=response.created_at,
            source_recipe_id=response.source_recipe_id or recipe.id,
            daily_plan_item_id=response.daily_plan_item_id,
        )

    async def unsave(self, recipe: Recipe) -> bool:
        """Remove the save for *recipe*. Unknown recipes are a successful no-op."""
        save_id = self.save_id_by_recipe_id.get(recipe.id)
        if save_id is None:
            return True
        if self.is_bookmark_busy:
            return False

        self.is_bookmark_busy = True
        self.notify()
        try:
            access_token = await self.auth.get_valid_access_token()
            await self.api.delete(f"/recipe-saves/{save_id}", access_token=access_token)
        except (AuthError, APIError) as e:
            if _status_of(e) != HTTP_NOT_FOUND:
                logger.warning("Failed to unsave recipe", extra={"save_id": save_id, "error": str(e)})
                self.error_message = str(e)
                return False
            logger.info("Save already gone on the server", extra={"save_id": save_id})
        finally:
            self.is_bookmark_busy = False
            self.notify()

        self._remove(save_id)
        self.error_message = None
        self.notify()
        return True

    async def toggle_saved(self, recipe: Recipe, source: SaveSource) -> None:
        if self.is_saved(recipe.id):
            await self.unsave(recipe)
        else:
            await self.save(recipe, source)

    async def ensure_editable_recipe_id(self, recipe: Recipe) -> str:
        """Return the id PATCH /recipes/{id} accepts, saving the recipe first if needed.

        When the server already holds a save that is not loaded yet (409), page 1
        is reloaded and the copy is looked up again.

        Raises the underlying AuthError / APIError when the implicit save fails.
        """
        if recipe.is_user_owned:
            return recipe.id
        if recipe.editable_recipe_id:
            return recipe.editable_recipe_id

        existing = self._find_copy_of(recipe.id)
        if existing is not None:
            return existing.recipe.id

        try:
            item = await self._post_save(recipe, SaveSource.recipe(recipe.id))
        except APIError as e:
            if _status_of(e) != HTTP_CONFLICT:
                raise
            logger.info("Recipe already saved on the server, reloading", extra={"recipe_id": recipe.id})
            await self.load_saved_recipes(page=1, limit=config.DEFAULT_PAGE_LIMIT, force=True)
            existing = self._find_copy_of(recipe.id)
            if existing is None:
                raise
            return existing.recipe.id

        self.notify()
        return item.recipe.id

    def _find_copy_of(self, recipe_id: str) -> SavedRecipeItem | None:
        for item in self.saved_recipes:
            if item.source_recipe_id == recipe_id:
                return item
        return None

    def update_recipe(self, recipe: Recipe, source_recipe_id: str | None = None) -> bool:
        """Swap in an edited recipe, matched by id first, then by source recipe id."""
        for item in self.saved_recipes:
            if item.recipe.id == recipe.id:
                item.recipe = recipe
                break
        else:
            if source_recipe_id is None:
                return False
            for item in self.saved_recipes:
                if item.source_recipe_id == source_recipe_id:
                    item.recipe = recipe
                    break
            else:
                return False

        self._rebuild_index()
        self.notify()
        return True

    # ------------------------------------------------------------------
    # Ingredient check marks
    # ------------------------------------------------------------------

    def is_ingredient_checked(self, recipe_id: str, key: str) -> bool:
        return key in self._checked_ingredients.get(recipe_id, ())

    def toggle_ingredient_check(self, recipe_id: str, key: str) -> bool:
        """Flip the mark and return the new value."""
        checked = self._checked_ingredients.setdefault(recipe_id, set())
        if key in checked:
            checked.remove(key)
        else:
            checked.add(key)
        self.notify()
        return key in checked

    def reset_ingredient_checks(self, recipe_id: str) -> None:
        self._checked_ingredients[recipe_id] = set()
        self.notify()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _upsert(self, item: SavedRecipeItem, insert_at_top: bool) -> None:
        for index, existing in enumerate(self.saved_recipes):
            if existing.id == item.id:
                self.saved_recipes[index] = item
                return
        if insert_at_top:
            self.saved_recipes.insert(0, item)
        else:
            self.saved_recipes.append(item)

    def _remove(self, save_id: str) -> None:
        self.saved_recipes = [item for item in self.saved_recipes if item.id != save_id]
        self._rebuild_index()

    def _rebuild_index(self) -> None:
        index = {}
        for item in self.saved_recipes:
            index[item.recipe.id] = item.id
            if item.source_recipe_id is not None:
                index[item.source_recipe_id] = item.id
        self.save_id_by_recipe_id = index
