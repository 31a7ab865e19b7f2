"""HTTP transport for the whatEat backend.

Wraps a ``requests.Session``: JSON bodies in and out, bearer auth, status code to
exception mapping, and a structured log record for every failed call. Calls are
blocking under the hood and run in a worker thread so the event loop that owns
the stores is never blocked.
"""

import asyncio
import json
import logging
from typing import Any

import requests

from whateat import config
from whateat.logging_config import redact_body, redact_headers

logger = logging.getLogger(__name__)

# Longest response/request body echoed into a failure log record
_LOG_BODY_LIMIT = 4000


class APIError(Exception):
    """Base class for every transport-level failure."""

    status_code: int | None = None

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidURLError(APIError):
    def __init__(self, url: str = ""):
        super().__init__("Invalid URL")
        self.url = url


class InvalidResponseError(APIError):
    def __init__(self, detail: str | None = None):
        super().__init__("Invalid response from server")
        self.detail = detail


class DecodeError(APIError):
    """A 2xx body (or a payload element) did not have the expected shape."""

    def __init__(self, cause):
        super().__init__(f"Failed to decode response: {cause}")
        self.cause = cause


class BadRequestError(APIError):
    status_code = 400


class UnauthorizedError(APIError):
    status_code = 401


class ServerError(APIError):
    pass


class HTTPStatusError(APIError):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP error: {status_code}", status_code=status_code)


def _error_message(response: requests.Response, fallback: str) -> str:
    """Pull ``error`` out of the ``{error, code?}`` envelope if there is one."""
    try:
        payload = response.json()
    except ValueError:
        return fallback
    if isinstance(payload, dict) and isinstance(payload.get("error"), str) and payload["error"]:
        return payload["error"]
    return fallback


def _truncate(text: str | None) -> str | None:
    if text is None:
        return None
    if len(text) > _LOG_BODY_LIMIT:
        return text[:_LOG_BODY_LIMIT] + "...<truncated>"
    return text


class APIClient:
    """Client for the whatEat REST API."""

    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        timeout: float = config.REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        """Initialize the API client.

        Args:
            base_url: Backend root including ``/api/v1``; endpoint paths are appended.
            timeout: Per-request timeout in seconds.
            session: Optional ``requests.Session`` to reuse (tests patch its ``request``).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    async def get(
        self,
        path: str,
        access_token: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """GET *path*.

        Args:
            path: Endpoint path, e.g. ``/recipe-saves``.
            access_token: Bearer token; omitted when None.
            params: Query string parameters.

        Returns:
            The decoded JSON body, or None for an empty body.

        Raises:
            APIError: One of its subclasses, mapped from the status code or transport failure.
        """
        return await self._request("GET", path, access_token=access_token, params=params)

    async def post(self, path: str, body: Any = None, access_token: str | None = None) -> Any:
        """POST *body* as JSON to *path*. Same return value and errors as `get`."""
        return await self._request("POST", path, access_token=access_token, body=body if body is not None else {})

    async def patch(self, path: str, body: Any = None, access_token: str | None = None) -> Any:
        return await self._request("PATCH", path, access_token=access_token, body=body if body is not None else {})

    async def delete(self, path: str, access_token: str | None = None) -> Any:
        return await self._request("DELETE", path, access_token=access_token)

    async def upload(self, method: str, url: str, data: bytes, headers: dict[str, str]) -> int:
        """Send raw bytes to an absolute URL (pre-signed upload). Returns the status code."""
        try:
            response = await asyncio.to_thread(
                self.session.request,
                method.upper(),
                url,
                headers=dict(headers),
                data=data,
                timeout=self.timeout,
            )
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            raise InvalidURLError(url) from e
        except requests.RequestException as e:
            logger.warning("Upload transport failure", extra={"method": method, "url": url, "error": str(e)})
            raise InvalidResponseError(str(e)) from e

        logger.debug("Upload finished", extra={"method": method, "status": response.status_code, "size_bytes": len(data)})
        return response.status_code

    def build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str | None = None,
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = self.build_url(path)
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        data = json.dumps(body) if body is not None else None

        try:
            response = await asyncio.to_thread(
                self.session.request,
                method,
                url,
                headers=headers,
                data=data,
                params=params,
                timeout=self.timeout,
            )
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            raise InvalidURLError(url) from e
        except requests.RequestException as e:
            logger.warning("API transport failure", extra={"method": method, "url": url, "error": str(e)})
            raise InvalidResponseError(str(e)) from e

        status = response.status_code
        logger.debug("API %s %s -> %s", method, path, status)

        if 200 <= status < 300:
            if status == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                self._log_failure("API response decode failed", method, url, headers, data, params, response)
                raise DecodeError(e) from e

        self._log_failure("API request failed", method, url, headers, data, params, response)

        if status == 400:
            raise BadRequestError(_error_message(response, "Bad request"))
        if status == 401:
            raise UnauthorizedError(_error_message(response, "Unauthorized"))
        if 500 <= status < 600:
            raise ServerError(_error_message(response, "Server error"), status_code=status)
        raise HTTPStatusError(status)

    def _log_failure(
        self,
        message: str,
        method: str,
        url: str,
        headers: dict[str, str],
        data: str | None,
        params: dict[str, Any] | None,
        response: requests.Response,
    ) -> None:
        logger.error(
            message,
            extra={
                "method": method,
                "url": url,
                "params": params,
                "request_headers": redact_headers(headers),
                "request_body": _truncate(redact_body(data)),
                "status": response.status_code,
                "response_headers": dict(response.headers),
                "response_body": _truncate(redact_body(response.text)),
            },
        )
