import asyncio
from unittest.mock import patch

import pytest

from whateat.api_client import ServerError
from whateat.auth import (
    AuthManager,
    AuthResponse,
    AuthProfile,
    AuthState,
    BackendAuthFailedError,
    CredentialState,
    IdentityProvider,
    MissingIdentityTokenError,
    NotLoggedInError,
    SessionExpiredError,
)
from whateat.secret_store import (
    ACCESS_TOKEN,
    ALL_SLOTS,
    APPLE_USER_EMAIL,
    APPLE_USER_FULL_NAME,
    APPLE_USER_IDENTIFIER,
    EXPIRES_AT,
    REFRESH_TOKEN,
)
from tests.conftest import NOW, auth_payload, make_response, store_session


def assert_secrets_cleared(secret_store):
    assert all(secret_store.get(slot) is None for slot in ALL_SLOTS)


class TestAccessToken:
    @pytest.mark.asyncio
    async def test_fresh_token_is_returned_without_refresh(self, auth, secret_store, server):
        store_session(secret_store, access_token="fresh", expires_at=NOW + 301)

        assert await auth.get_valid_access_token() == "fresh"
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_token_inside_the_window_is_refreshed(self, auth, secret_store, server):
        store_session(secret_store, access_token="stale", expires_at=NOW + 300)
        server.add("POST", "/auth/refresh", make_response(200, auth_payload("new-access", "new-refresh", NOW + 3600)))

        token = await auth.get_valid_access_token()

        assert token == "new-access"
        assert server.calls_to("POST", "/auth/refresh")[0].body == {"refreshToken": "refresh-1"}
        assert secret_store.get_string(ACCESS_TOKEN) == "new-access"
        assert secret_store.get_string(REFRESH_TOKEN) == "new-refresh"
        assert secret_store.get_int(EXPIRES_AT) == NOW + 3600
        assert auth.user_id == "user-1"

    @pytest.mark.asyncio
    async def test_returned_token_is_always_fresh(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 10)
        server.add("POST", "/auth/refresh", make_response(200, auth_payload(expires_at=NOW + 900)))

        await auth.get_valid_access_token()

        assert secret_store.get_int(EXPIRES_AT) > NOW + auth.refresh_window

    @pytest.mark.asyncio
    async def test_no_refresh_token_is_not_logged_in(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1, refresh_token=None)

        with pytest.raises(NotLoggedInError):
            await auth.get_valid_access_token()
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_refresh_401_ends_the_session(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        auth.state = AuthState.AUTHENTICATED
        server.add("POST", "/auth/refresh", make_response(401, {"error": "Refresh token expired"}))

        with pytest.raises(SessionExpiredError):
            await auth.get_valid_access_token()

        assert auth.state is AuthState.SIGNED_OUT
        assert_secrets_cleared(secret_store)

    @pytest.mark.asyncio
    async def test_other_refresh_errors_propagate_and_keep_the_session(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        auth.state = AuthState.AUTHENTICATED
        server.add("POST", "/auth/refresh", make_response(503, {"error": "Down"}))

        with pytest.raises(ServerError):
            await auth.get_valid_access_token()

        assert auth.state is AuthState.AUTHENTICATED
        assert secret_store.get_string(REFRESH_TOKEN) == "refresh-1"


class TestSingleFlightRefresh:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        server.add("POST", "/auth/refresh", make_response(200, auth_payload("shared-token")))

        tokens = await asyncio.gather(*(auth.get_valid_access_token() for _ in range(5)))

        assert tokens == ["shared-token"] * 5
        assert len(server.calls_to("POST", "/auth/refresh")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_the_error(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        server.add("POST", "/auth/refresh", make_response(401, {"error": "expired"}))

        results = await asyncio.gather(
            *(auth.get_valid_access_token() for _ in range(3)),
            return_exceptions=True,
        )

        assert all(isinstance(r, SessionExpiredError) for r in results)
        assert len(server.calls_to("POST", "/auth/refresh")) == 1

    @pytest.mark.asyncio
    async def test_a_new_refresh_starts_after_the_previous_one_settled(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        server.add(
            "POST", "/auth/refresh",
            make_response(200, auth_payload("first", expires_at=NOW + 100)),
            make_response(200, auth_payload("second", expires_at=NOW + 3600)),
        )

        assert await auth.get_valid_access_token() == "first"
        await asyncio.sleep(0)
        # NOW + 100 is inside the refresh window, so the next call refreshes again
        assert await auth.get_valid_access_token() == "second"
        assert len(server.calls_to("POST", "/auth/refresh")) == 2

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_the_refresh(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        server.add("POST", "/auth/refresh", make_response(200, auth_payload("survivor")))

        first = asyncio.ensure_future(auth.get_valid_access_token())
        second = asyncio.ensure_future(auth.get_valid_access_token())
        await asyncio.sleep(0)
        first.cancel()

        assert await second == "survivor"
        assert first.cancelled()


class TestSignIn:
    @pytest.mark.asyncio
    async def test_sign_in_stores_identity_and_tokens(self, auth, secret_store, server):
        server.add("POST", "/auth/signin", make_response(200, auth_payload("a-1", "r-1")))

        state = await auth.sign_in("id-token", "apple-user", given_name="Ada", family_name="Lovelace", email="ada@example.com")

        assert state is AuthState.AUTHENTICATED
        assert server.calls[0].body == {
            "provider": "apple",
            "idToken": "id-token",
            "fullName": {"givenName": "Ada", "familyName": "Lovelace"},
        }
        assert secret_store.get_string(APPLE_USER_IDENTIFIER) == "apple-user"
        assert secret_store.get_string(APPLE_USER_FULL_NAME) == "Ada Lovelace"
        assert secret_store.get_string(APPLE_USER_EMAIL) == "ada@example.com"
        assert secret_store.get_string(ACCESS_TOKEN) == "a-1"
        assert auth.user_display_name == "Ada Lovelace"
        assert auth.is_loading is False

    @pytest.mark.asyncio
    async def test_returning_user_sends_no_full_name(self, auth, secret_store, server):
        secret_store.put_string(APPLE_USER_FULL_NAME, "Ada Lovelace")
        server.add("POST", "/auth/signin", make_response(200, auth_payload()))

        await auth.sign_in("id-token", "apple-user")

        assert "fullName" not in server.calls[0].body
        assert auth.user_display_name == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_missing_identity_token(self, auth, server):
        with pytest.raises(MissingIdentityTokenError):
            await auth.sign_in(None, "apple-user")

        assert auth.error_message == "Failed to get identity token from Apple"
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_backend_failure_clears_secrets(self, auth, secret_store, server):
        auth.state = AuthState.SIGNED_OUT
        server.add("POST", "/auth/signin", make_response(400, {"error": "Invalid identity token"}))

        with pytest.raises(BackendAuthFailedError) as exc_info:
            await auth.sign_in("bad-token", "apple-user", email="ada@example.com")

        assert str(exc_info.value) == "Invalid identity token"
        assert auth.error_message == "Invalid identity token"
        assert auth.state is AuthState.SIGNED_OUT
        assert auth.is_loading is False
        assert_secrets_cleared(secret_store)

    @pytest.mark.asyncio
    async def test_sign_in_while_loading_is_a_no_op(self, auth, server):
        auth.is_loading = True

        await auth.sign_in("id-token", "apple-user")

        assert server.calls == []


class TestSignOut:
    @pytest.mark.asyncio
    async def test_sign_out_clears_secrets_then_notifies_backend(self, signed_in_auth, secret_store, server):
        server.add("POST", "/auth/signout", make_response(200, {"success": True}))

        await signed_in_auth.sign_out()

        assert signed_in_auth.state is AuthState.SIGNED_OUT
        assert_secrets_cleared(secret_store)
        call = server.calls_to("POST", "/auth/signout")[0]
        assert call.headers["Authorization"] == "Bearer access-1"
        assert call.body == {}

    @pytest.mark.asyncio
    async def test_backend_failure_is_swallowed(self, signed_in_auth, secret_store, server):
        server.add("POST", "/auth/signout", make_response(500, {"error": "boom"}))

        await signed_in_auth.sign_out()

        assert signed_in_auth.state is AuthState.SIGNED_OUT
        assert_secrets_cleared(secret_store)

    @pytest.mark.asyncio
    async def test_sign_out_without_token_skips_backend(self, auth, server):
        await auth.sign_out()

        assert auth.state is AuthState.SIGNED_OUT
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_refresh_landing_after_sign_out_is_discarded(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        server.add("POST", "/auth/refresh", make_response(200, auth_payload("late")))
        server.add("POST", "/auth/signout", make_response(200, {"success": True}))

        pending = asyncio.ensure_future(auth.get_valid_access_token())
        await asyncio.sleep(0)
        await auth.sign_out()

        with pytest.raises(NotLoggedInError):
            await pending
        assert_secrets_cleared(secret_store)


class TestCheckExistingCredentials:
    @pytest.mark.asyncio
    async def test_no_stored_identifier(self, auth, identity_provider):
        assert await auth.check_existing_credentials() is AuthState.SIGNED_OUT
        identity_provider.credential_state.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credential_state", [CredentialState.REVOKED, CredentialState.NOT_FOUND, CredentialState.TRANSFERRED])
    async def test_invalid_apple_credential(self, auth, secret_store, identity_provider, credential_state):
        store_session(secret_store)
        identity_provider.credential_state.return_value = credential_state

        assert await auth.check_existing_credentials() is AuthState.SIGNED_OUT
        assert_secrets_cleared(secret_store)

    @pytest.mark.asyncio
    async def test_identity_provider_failure(self, auth, secret_store, identity_provider):
        store_session(secret_store)
        identity_provider.credential_state.side_effect = RuntimeError("offline")

        assert await auth.check_existing_credentials() is AuthState.SIGNED_OUT
        assert_secrets_cleared(secret_store)

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self, auth, secret_store):
        store_session(secret_store, refresh_token=None)

        assert await auth.check_existing_credentials() is AuthState.SIGNED_OUT
        assert_secrets_cleared(secret_store)

    @pytest.mark.asyncio
    async def test_fresh_tokens_authenticate(self, auth, secret_store, identity_provider, server):
        store_session(secret_store, user_identifier="apple-42")
        secret_store.put_string(APPLE_USER_FULL_NAME, "Ada Lovelace")
        secret_store.put_string(APPLE_USER_EMAIL, "ada@example.com")

        assert await auth.check_existing_credentials() is AuthState.AUTHENTICATED
        identity_provider.credential_state.assert_awaited_once_with("apple-42")
        assert auth.user_display_name == "Ada Lovelace"
        assert auth.user_email == "ada@example.com"
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_stale_tokens_are_refreshed(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        server.add("POST", "/auth/refresh", make_response(200, auth_payload()))

        assert await auth.check_existing_credentials() is AuthState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_rejected_refresh_signs_out_once(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        server.add("POST", "/auth/refresh", make_response(401, {"error": "Refresh token revoked"}))
        seen = []
        auth.subscribe(lambda manager: seen.append(manager.state))

        with patch.object(secret_store, "clear_all", wraps=secret_store.clear_all) as clear_all:
            assert await auth.check_existing_credentials() is AuthState.SIGNED_OUT

        clear_all.assert_called_once()
        assert seen.count(AuthState.SIGNED_OUT) == 1
        assert_secrets_cleared(secret_store)

    @pytest.mark.asyncio
    async def test_failed_refresh_signs_out(self, auth, secret_store, server):
        store_session(secret_store, expires_at=NOW - 1)
        server.add("POST", "/auth/refresh", make_response(500, {"error": "boom"}))

        assert await auth.check_existing_credentials() is AuthState.SIGNED_OUT
        assert_secrets_cleared(secret_store)


class TestModels:
    def test_auth_response_accepts_snake_case(self):
        response = AuthResponse.from_dict({
            "access_token": "a",
            "refresh_token": "r",
            "expires_in": 3600,
            "expires_at": NOW + 3600,
            "user": {"id": 7, "created_at": "2026-01-01"},
        })

        assert response.expires_at == NOW + 3600
        assert response.user.id == "7"

    def test_auth_response_repr_hides_tokens(self):
        response = AuthResponse.from_dict(auth_payload("access-secret", "refresh-secret"))

        assert "access-secret" not in repr(response)
        assert "refresh-secret" not in repr(response)


class TestProfile:
    @pytest.mark.asyncio
    async def test_no_public_attribute_holds_a_token(self, auth, server):
        server.add("POST", "/auth/signin", make_response(200, auth_payload("access-secret", "refresh-secret")))
        await auth.sign_in("id-token", "apple-user", email="ada@example.com")

        public = {name: getattr(auth, name) for name in dir(auth) if not name.startswith("_")}

        for name, value in public.items():
            if callable(value):
                continue
            assert "access-secret" not in repr(value), name
            assert "refresh-secret" not in repr(value), name

    @pytest.mark.asyncio
    async def test_profile_after_sign_in(self, auth, server):
        server.add("POST", "/auth/signin", make_response(200, auth_payload()))

        await auth.sign_in("id-token", "apple-user", given_name="Ada", email="ada@example.com")

        assert auth.profile == AuthProfile(
            apple_user_identifier="apple-user",
            user_id="user-1",
            display_name="Ada",
            email="ada@example.com",
        )

    @pytest.mark.asyncio
    async def test_profile_after_cold_start_with_fresh_tokens(self, auth, secret_store, server):
        store_session(secret_store, user_identifier="apple-42")
        secret_store.put_string(APPLE_USER_EMAIL, "ada@example.com")

        await auth.check_existing_credentials()

        assert auth.profile.apple_user_identifier == "apple-42"
        assert auth.profile.email == "ada@example.com"
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_no_profile_when_signed_out(self, signed_in_auth, server):
        server.add("POST", "/auth/signout", make_response(200, {"success": True}))

        await signed_in_auth.sign_out()

        assert signed_in_auth.profile is None

    @pytest.mark.asyncio
    async def test_state_changes_notify_subscribers(self, signed_in_auth, server):
        server.add("POST", "/auth/signout", make_response(200, {"success": True}))
        seen = []
        signed_in_auth.subscribe(lambda manager: seen.append(manager.state))

        await signed_in_auth.sign_out()

        assert AuthState.SIGNED_OUT in seen

    def test_starts_in_checking(self, api, secret_store, identity_provider):
        assert AuthManager(api, secret_store, identity_provider).state is AuthState.CHECKING

    def test_identity_provider_is_abstract(self):
        with pytest.raises(TypeError):
            IdentityProvider()
