"""Pytest configuration and fixtures."""

import json
from dataclasses import dataclass
from unittest.mock import AsyncMock, Mock, patch

import pytest
import requests

from whateat.api_client import APIClient
from whateat.auth import AuthManager, AuthState, CredentialState, IdentityProvider
from whateat.secret_store import (
    ACCESS_TOKEN,
    APPLE_USER_IDENTIFIER,
    EXPIRES_AT,
    REFRESH_TOKEN,
    InMemorySecretStore,
)

NOW = 1_700_000_000
BASE_URL = "https://api.test/api/v1"


def make_response(status_code: int = 200, json_body=None, text: str | None = None, headers: dict | None = None):
    """Real requests.Response with a canned body."""
    response = requests.Response()
    response.status_code = status_code
    response.encoding = "utf-8"
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
    response.headers.update(headers or {})
    return response


@dataclass
class RecordedCall:
    method: str
    path: str
    params: dict | None
    body: object
    headers: dict


class FakeServer:
    """Stands in for `session.request`: canned responses per (method, path), every call recorded.

    Responses queued for a route are served in order; the last one keeps repeating.
    A queued exception is raised instead of returned.
    """

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url
        self.routes: dict[tuple[str, str], list] = {}
        self.calls: list[RecordedCall] = []

    def add(self, method: str, path: str, *responses) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def calls_to(self, method: str, path: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == method and c.path == path]

    def __call__(self, method, url, headers=None, data=None, params=None, timeout=None):
        path = url[len(self.base_url):] if url.startswith(self.base_url) else url
        body = data
        if isinstance(data, str):
            body = json.loads(data)
        self.calls.append(RecordedCall(method, path, params, body, dict(headers or {})))

        queue = self.routes.get((method, path))
        if not queue:
            return make_response(404, {"error": f"No route for {method} {path}"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response


def recipe_payload(recipe_id: str = "r1", title: str = "Shakshuka", **overrides) -> dict:
    payload = {
        "id": recipe_id,
        "title": title,
        "metadata": {"meal_type": "breakfast"},
        "ingredients": [{"raw_text": "2 eggs"}],
        "steps": [{"instruction": "Crack the eggs", "order": 1}],
    }
    payload.update(overrides)
    return payload


def saved_payload(save_id: str, recipe_id: str, source_recipe_id: str | None = None, **recipe_overrides) -> dict:
    recipe = recipe_payload(recipe_id, f"Recipe {recipe_id}")
    recipe.update(recipe_overrides)
    payload = {
        "id": save_id,
        "saved_at": "2026-01-10T08:00:00Z",
        "recipe": recipe,
    }
    if source_recipe_id is not None:
        payload["source_recipe_id"] = source_recipe_id
    return payload


def auth_payload(access_token: str = "access-2", refresh_token: str = "refresh-2", expires_at: int = NOW + 3600) -> dict:
    return {
        "accessToken": access_token,
        "refreshToken": refresh_token,
        "expiresIn": expires_at - NOW,
        "expiresAt": expires_at,
        "user": {"id": "user-1", "email": "cook@example.com", "createdAt": "2026-01-01T00:00:00Z"},
    }


def store_session(
    secret_store,
    access_token: str = "access-1",
    refresh_token: str | None = "refresh-1",
    expires_at: int = NOW + 3600,
    user_identifier: str = "apple-user",
) -> None:
    secret_store.put_string(APPLE_USER_IDENTIFIER, user_identifier)
    secret_store.put_string(ACCESS_TOKEN, access_token)
    secret_store.put_string(EXPIRES_AT, str(expires_at))
    if refresh_token is not None:
        secret_store.put_string(REFRESH_TOKEN, refresh_token)


@pytest.fixture
def api():
    return APIClient(BASE_URL, timeout=5, session=requests.Session())


@pytest.fixture
def server(api):
    fake = FakeServer(BASE_URL)
    with patch.object(api.session, "request", side_effect=fake):
        yield fake


@pytest.fixture
def secret_store():
    return InMemorySecretStore()


@pytest.fixture
def identity_provider():
    provider = Mock(spec=IdentityProvider)
    provider.credential_state = AsyncMock(return_value=CredentialState.AUTHORIZED)
    return provider


@pytest.fixture
def auth(api, secret_store, identity_provider):
    return AuthManager(api, secret_store, identity_provider, clock=lambda: NOW)


@pytest.fixture
def signed_in_auth(auth, secret_store):
    """Auth manager holding a token that is good for another hour."""
    store_session(secret_store)
    auth.state = AuthState.AUTHENTICATED
    return auth
