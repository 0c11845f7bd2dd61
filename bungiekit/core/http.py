"""
BungieKit - HTTP request pipeline

Async HTTP layer shared by every service in the SDK:
- httpx.AsyncClient with connection pooling
- API key / user agent / bearer token headers
- Bungie response envelope unwrapping (Response, ErrorCode, Message...)
- Exponential backoff retry for throttling, server and network errors
- Client-side rate limiting
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from .config import Settings, get_settings
from .errors import (
    BungieAPIError,
    DecodingError,
    EmptyResponseError,
    HTTPStatusError,
    InvalidURLError,
    NetworkError,
)
from .rate_limit import RateLimiter

logger = logging.getLogger("bungiekit.http")

# PlatformErrorCodes.Success
SUCCESS_CODE = 1


class HTTPMethod(str, Enum):
    """HTTP methods used by the API."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class _Retryable(Exception):
    """Internal marker for a failed attempt that may be retried."""

    def __init__(self, error: Exception, delay: Optional[float] = None):
        super().__init__(str(error))
        self.error = error
        self.delay = delay


class APIService:
    """Makes requests to the Bungie.net platform API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings or get_settings()
        self.rate_limiter = rate_limiter or RateLimiter(
            self.settings.requests_per_second,
            self.settings.requests_per_minute,
        )
        self._http_client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "APIService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def build_url(self, endpoint: str) -> str:
        """Join an endpoint path to the configured platform root."""
        if not endpoint or "://" in endpoint:
            raise InvalidURLError(f"Invalid endpoint: {endpoint!r}")
        return f"{self.settings.base_url}/{endpoint.lstrip('/')}"

    def _headers(self, access_token: Optional[str]) -> dict[str, str]:
        headers = {
            "X-API-Key": self.settings.api_key,
            "Accept": "application/json",
            "User-Agent": self.settings.user_agent,
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        delay = self.settings.base_retry_delay * (2 ** attempt)
        return min(delay, self.settings.max_retry_delay)

    async def request(
        self,
        endpoint: str,
        *,
        method: HTTPMethod | str = HTTPMethod.GET,
        json: Any = None,
        data: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        access_token: Optional[str] = None,
        response_model: Any = None,
    ) -> Any:
        """
        Make a request to the API and return the unwrapped payload.

        Args:
            endpoint: Path relative to the platform root, e.g. "Destiny2/Manifest/"
            method: HTTP method
            json: Optional JSON request body
            data: Optional form-encoded request body
            params: Optional query parameters
            access_token: Optional OAuth access token
            response_model: Type to validate the payload into (raw JSON if None)

        Returns:
            The decoded payload
        """
        client = await self._get_http_client()
        url = self.build_url(endpoint)
        if not isinstance(method, HTTPMethod):
            method = HTTPMethod(method.upper())
        method = method.value
        headers = self._headers(access_token)

        last_exception: Optional[Exception] = None
        attempts = max(1, self.settings.max_retries)

        for attempt in range(attempts):
            await self.rate_limiter.acquire()
            logger.debug(f"{method} {url} (attempt {attempt + 1}/{attempts})")

            try:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    json=json,
                    data=data,
                    params=params,
                )
                return self._handle_response(response, response_model)

            except _Retryable as e:
                last_exception = e.error
                if attempt + 1 >= attempts:
                    break
                wait_time = e.delay if e.delay is not None else self._calculate_backoff(attempt)
                logger.warning(f"{method} {endpoint} failed ({e.error}), retry in {wait_time}s")
                await asyncio.sleep(wait_time)

            except httpx.RequestError as e:
                last_exception = NetworkError(f"Network error for {method} {endpoint}: {e}")
                if attempt + 1 >= attempts:
                    break
                wait_time = self._calculate_backoff(attempt)
                logger.warning(f"Network error: {e}, retry in {wait_time}s")
                await asyncio.sleep(wait_time)

        raise last_exception or NetworkError("Max retries exceeded")

    def _handle_response(self, response: httpx.Response, response_model: Any) -> Any:
        """Map a response to a payload or raise the matching error."""
        status = response.status_code
        logger.debug(f"API response: {status} for {response.request.url.path}")

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            delay = float(retry_after) if retry_after and retry_after.isdigit() else None
            raise _Retryable(self._error_from_response(response), delay=delay)

        if status >= 500:
            raise _Retryable(self._error_from_response(response))

        if not 200 <= status < 300:
            raise self._error_from_response(response)

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodingError(f"Response is not valid JSON: {e}") from e

        payload = self._unwrap(body, status)
        if response_model is None:
            return payload

        try:
            return TypeAdapter(response_model).validate_python(payload)
        except ValidationError as e:
            logger.error(f"Failed to decode response: {e}")
            raise DecodingError(f"Failed to decode response: {e}") from e

    def _unwrap(self, body: Any, status: int) -> Any:
        """Return the Response member of an API envelope, or the body itself."""
        if not isinstance(body, dict) or "ErrorCode" not in body:
            return body

        error_code = body.get("ErrorCode")
        if error_code != SUCCESS_CODE:
            raise BungieAPIError(
                error_code=error_code or 0,
                message=body.get("Message") or "Unknown error",
                error_status=body.get("ErrorStatus"),
                throttle_seconds=body.get("ThrottleSeconds") or 0,
                status_code=status,
            )

        if body.get("Response") is None:
            raise EmptyResponseError("API envelope contained no Response")
        return body["Response"]

    def _error_from_response(self, response: httpx.Response) -> Exception:
        """Build an error from a non-success response."""
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None

        if isinstance(body, dict) and "ErrorCode" in body:
            return BungieAPIError(
                error_code=body.get("ErrorCode") or 0,
                message=body.get("Message") or "Unknown error",
                error_status=body.get("ErrorStatus"),
                throttle_seconds=body.get("ThrottleSeconds") or 0,
                status_code=response.status_code,
            )
        return HTTPStatusError(response.status_code)
