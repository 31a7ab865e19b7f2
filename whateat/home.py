"""Daily recipe suggestions grouped by meal."""

import logging
import math
from dataclasses import dataclass

from whateat import config
from whateat.api_client import APIClient, APIError
from whateat.auth import AuthError, AuthManager
from whateat.observable import Observable
from whateat.recipe_codec import (
    DailySuggestion,
    SuggestionBuckets,
    SuggestionList,
    build_recipe,
    decode_daily_refresh,
    decode_daily_suggestions,
    meal_type_for,
)
from whateat.recipes import MealType, Recipe

logger = logging.getLogger(__name__)


@dataclass
class HomeSuggestion:
    id: str
    recipe: Recipe
    rank: int | None = None


def _sort_key(suggestion: HomeSuggestion):
    return (suggestion.rank if suggestion.rank is not None else math.inf, suggestion.id)


def _sorted_groups(grouped: dict[MealType, list[HomeSuggestion]]) -> dict[MealType, list[HomeSuggestion]]:
    return {meal_type: sorted(items, key=_sort_key) for meal_type, items in grouped.items()}


def group_suggestion_list(suggestions: list[DailySuggestion]) -> dict[MealType, list[HomeSuggestion]]:
    """Flat list: each suggestion goes to the bucket of its recipe's own meal type."""
    grouped: dict[MealType, list[HomeSuggestion]] = {}
    for suggestion in suggestions:
        meal_type = meal_type_for(suggestion.recipe_data)
        recipe = build_recipe(suggestion.recipe_data, meal_type)
        grouped.setdefault(meal_type, []).append(HomeSuggestion(suggestion.id, recipe, suggestion.rank))
    return _sorted_groups(grouped)


def group_suggestion_buckets(buckets: dict[str, list[DailySuggestion]]) -> dict[MealType, list[HomeSuggestion]]:
    """Bucketed payload: the bucket label wins; unknown labels collect under OTHER."""
    grouped: dict[MealType, list[HomeSuggestion]] = {}
    for label, suggestions in buckets.items():
        meal_type = MealType.from_api_value(label) or MealType.OTHER
        items = grouped.setdefault(meal_type, [])
        for suggestion in suggestions:
            recipe = build_recipe(suggestion.recipe_data, meal_type)
            items.append(HomeSuggestion(suggestion.id, recipe, suggestion.rank))
    return _sorted_groups(grouped)


def clamp_count_per_meal(count: int) -> int:
    return min(max(count, config.MIN_COUNT_PER_MEAL), config.MAX_COUNT_PER_MEAL)


class HomeSuggestionsStore(Observable):
    def __init__(self, api: APIClient, auth: AuthManager):
        super().__init__()
        self.api = api
        self.auth = auth
        self.suggestions_by_meal: dict[MealType, list[HomeSuggestion]] = {}
        self.is_loading = False
        self.is_refreshing = False
        self.has_loaded = False
        self.error_message: str | None = None
        self.run = None

    @property
    def is_empty(self) -> bool:
        return all(not items for items in self.suggestions_by_meal.values())

    def suggestions_for(self, meal_type: MealType) -> list[HomeSuggestion]:
        return self.suggestions_by_meal.get(meal_type, [])

    async def load_daily_suggestions_if_needed(self) -> bool:
        """Load today's suggestions once. Later calls are no-ops."""
        if self.is_loading or self.has_loaded:
            return False

        self.is_loading = True
        self.notify()
        try:
            access_token = await self.auth.get_valid_access_token()
            payload = await self.api.get("/daily/suggestions", access_token=access_token)
            response = decode_daily_suggestions(payload)
        except (AuthError, APIError) as e:
            logger.warning("Failed to load daily suggestions", extra={"error": str(e)})
            self.error_message = str(e)
            return False
        finally:
            self.is_loading = False
            self.has_loaded = True
            self.notify()

        if isinstance(response.suggestions, SuggestionList):
            self.suggestions_by_meal = group_suggestion_list(response.suggestions.suggestions)
        elif isinstance(response.suggestions, SuggestionBuckets):
            self.suggestions_by_meal = group_suggestion_buckets(response.suggestions.buckets)
        self.run = response.run
        self.error_message = None
        logger.info(
            "Loaded daily suggestions",
            extra={"shape": response.suggestions.kind, "meals": [m.value for m in self.suggestions_by_meal]},
        )
        self.notify()
        return True

    async def refresh_suggestions(self, count_per_meal: int = config.DEFAULT_COUNT_PER_MEAL) -> bool:
        """Ask the server for a fresh set of suggestions."""
        if self.is_refreshing:
            return False

        self.is_refreshing = True
        self.notify()
        try:
            access_token = await self.auth.get_valid_access_token()
            payload = await self.api.get(
                "/daily/refresh",
                access_token=access_token,
                params={"count_per_meal": clamp_count_per_meal(count_per_meal)},
            )
            buckets = decode_daily_refresh(payload)
        except (AuthError, APIError) as e:
            logger.warning("Failed to refresh daily suggestions", extra={"error": str(e)})
            self.error_message = str(e)
            return False
        finally:
            self.is_refreshing = False
            self.notify()

        self.suggestions_by_meal = group_suggestion_buckets(buckets.buckets)
        self.error_message = None
        self.notify()
        return True

    def reset(self) -> None:
        self.suggestions_by_meal = {}
        self.is_loading = False
        self.is_refreshing = False
        self.has_loaded = False
        self.error_message = None
        self.run = None
        self.notify()
