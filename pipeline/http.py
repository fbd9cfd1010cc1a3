"""
HTTP access to upstream APIs with timeouts, retry logic and error mapping.

This module provides the request layer shared by all fetchers:
- Every request is bounded by a timeout; a timeout counts as a network failure
- Exponential backoff retry for transient failures (timeouts, 429, 5xx)
- Immediate failure for authentication and not-found responses
- HTTP failures mapped onto the core.exceptions hierarchy with context
"""

import asyncio
import httpx
from typing import Any, Dict, Optional
from core.exceptions import (
    APIRequestError,
    NetworkError,
    RateLimitError,
    AuthenticationError,
    ResourceNotFoundError,
)
import logging

logger = logging.getLogger(__name__)


class APIClient:
    """
    Thin JSON client over a shared httpx.AsyncClient.

    Attributes:
        source_name: Label used in logs and error context
        headers: Authentication headers sent with every request
        max_retries: Retries after the first attempt for transient failures
        retry_delay: Initial retry delay in seconds, doubled per attempt
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        source_name: str,
        headers: Optional[Dict[str, str]] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        timeout: float = 30.0
    ):
        self.client = client
        self.source_name = source_name
        self.headers = headers or {}
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", url, params=params)

    async def post_json(self, url: str, body: Dict[str, Any]) -> Any:
        return await self.request("POST", url, json=body)

    def _backoff(self, attempt: int) -> float:
        return self.retry_delay * (2 ** attempt)

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make an HTTP request with retry logic and return the decoded JSON body.

        Raises:
            AuthenticationError: 401/403, never retried
            ResourceNotFoundError: 404, never retried
            RateLimitError: 429 after all retries
            NetworkError: timeouts, transport errors or 5xx after all retries
            APIRequestError: other 4xx responses or an undecodable body
        """
        attempts = self.max_retries + 1
        context = {"source_name": self.source_name, "method": method, "url": url}

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1

            try:
                logger.debug(f"{method} {url} attempt {attempt + 1}/{attempts}")
                response = await self.client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self.headers,
                    timeout=self.timeout
                )

            except httpx.TimeoutException as e:
                if not last_attempt:
                    delay = self._backoff(attempt)
                    logger.warning(f"Request timeout for {url}. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(
                    f"Request timeout after {attempts} attempts",
                    context={**context, "timeout": self.timeout, "attempts": attempts},
                    original_exception=e
                )

            except httpx.TransportError as e:
                if not last_attempt:
                    delay = self._backoff(attempt)
                    logger.warning(f"Network error for {url}. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(
                    f"Network error after {attempts} attempts",
                    context={**context, "attempts": attempts},
                    original_exception=e
                )

            status = response.status_code

            if status in (401, 403):
                raise AuthenticationError(
                    f"Authentication failed for {url}",
                    context={**context, "status_code": status}
                )

            if status == 404:
                raise ResourceNotFoundError(
                    f"Resource not found: {url}",
                    context={**context, "status_code": 404}
                )

            if status == 429:
                retry_after = self._retry_after(response, attempt)
                if not last_attempt:
                    logger.warning(f"Rate limited by {self.source_name}. Retrying after {retry_after} seconds")
                    await asyncio.sleep(retry_after)
                    continue
                raise RateLimitError(
                    f"Rate limit exceeded for {url}",
                    context={**context, "status_code": 429, "attempts": attempts},
                    retry_after=retry_after
                )

            if status >= 500:
                if not last_attempt:
                    delay = self._backoff(attempt)
                    logger.warning(
                        f"Server error {status} from {url}. "
                        f"Retrying in {delay} seconds (attempt {attempt + 1}/{attempts})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(
                    f"Server error {status} after {attempts} attempts",
                    context={
                        **context,
                        "status_code": status,
                        "attempts": attempts,
                        "response_body": response.text[:500]
                    }
                )

            if status >= 400:
                raise APIRequestError(
                    f"Request rejected with HTTP {status}",
                    context={**context, "status_code": status, "response_body": response.text[:500]}
                )

            try:
                return response.json()
            except ValueError as e:
                raise APIRequestError(
                    "Failed to parse JSON response",
                    context={**context, "response_body": response.text[:500]},
                    original_exception=e
                )

        # Unreachable: the last attempt either returns or raises
        raise APIRequestError("Max retries exceeded", context=context)

    def _retry_after(self, response: httpx.Response, attempt: int) -> float:
        header = response.headers.get("Retry-After")
        if header:
            try:
                return float(header)
            except ValueError:
                pass
        return self._backoff(attempt)
