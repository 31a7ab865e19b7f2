"""Builds the client components and wires them together.

One `WhatEatClient` per signed-in app session::

    client = WhatEatClient.from_config(identity_provider)
    await client.start()
    await client.home.load_daily_suggestions_if_needed()
"""

import logging

from whateat import config
from whateat.api_client import APIClient
from whateat.auth import AuthManager, AuthState, IdentityProvider
from whateat.home import HomeSuggestionsStore
from whateat.image_cache import ImageCache, shared_image_cache
from whateat.image_upload import ImageUploadService
from whateat.logging_config import configure_logging
from whateat.recipe_codec import build_recipe, decode_import_response, decode_recipe_response
from whateat.recipe_editor import RecipeEditor
from whateat.recipes import Recipe
from whateat.saved_recipes import SavedRecipesStore
from whateat.secret_store import FileSecretStore, SecretStore

logger = logging.getLogger(__name__)


class WhatEatClient:
    def __init__(
        self,
        api: APIClient,
        store: SecretStore,
        identity_provider: IdentityProvider,
        image_cache: ImageCache | None = None,
    ):
        self.api = api
        self.auth = AuthManager(api, store, identity_provider)
        self.saved_recipes = SavedRecipesStore(api, self.auth)
        self.home = HomeSuggestionsStore(api, self.auth)
        self.uploads = ImageUploadService(api)
        self.image_cache = image_cache or shared_image_cache()
        self._last_auth_state = self.auth.state
        self.auth.subscribe(self._on_auth_change)

    @classmethod
    def from_config(cls, identity_provider: IdentityProvider, configure_logs: bool = True) -> "WhatEatClient":
        if configure_logs:
            configure_logging(config.LOG_LEVEL)
        api = APIClient(config.API_BASE_URL, timeout=config.REQUEST_TIMEOUT_SECONDS)
        store = FileSecretStore(config.SECRETS_DIR, config.SECRET_SERVICE)
        return cls(api, store, identity_provider)

    async def start(self) -> AuthState:
        """Resolve the stored session; call once at launch."""
        state = await self.auth.check_existing_credentials()
        logger.info("Client started", extra={"auth_state": state.value})
        return state

    def _on_auth_change(self, auth: AuthManager) -> None:
        previous, self._last_auth_state = self._last_auth_state, auth.state
        if auth.state is AuthState.SIGNED_OUT and previous is not AuthState.SIGNED_OUT:
            logger.info("Signed out, clearing cached user data")
            self.saved_recipes.reset()
            self.home.reset()

    def editor(self, recipe: Recipe | None = None) -> RecipeEditor:
        """Editor for a new recipe, or for *recipe* when given."""
        return RecipeEditor(self.api, self.auth, self.saved_recipes, self.uploads, recipe)

    async def fetch_recipe(self, recipe_id: str) -> Recipe:
        access_token = await self.auth.get_valid_access_token()
        payload = await self.api.get(f"/recipes/{recipe_id}", access_token=access_token)
        return build_recipe(decode_recipe_response(payload))

    def recipe_from_import(self, payload) -> Recipe:
        """Recipe from an import response body."""
        return build_recipe(decode_import_response(payload))
