import asyncio
import types
from typing import Any, Self

import httpx
from loguru import logger

from cryptoglance.errors import (
    FetchError,
    MalformedResponseError,
    TransientNetworkError,
)
from cryptoglance.models import Failure, FetchOutcome, Success

# --- Retry defaults ---
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_TIMEOUT_S = 20.0


def backoff_delay_ms(attempt: int, base_delay_ms: int) -> int:
    """Returns the wait before a 1-based attempt number.

    Attempt 1 fires immediately; attempt k >= 2 waits base * 2**(k-2).
    """
    if attempt <= 1:
        return 0
    return base_delay_ms * 2 ** (attempt - 2)


class RetryingFetcher:
    """Performs logical HTTP GETs with bounded, sequential retries.

    Every failure (non-2xx status, transport error, undecodable body) is
    retried with exponential backoff. When the attempt budget is spent the
    caller receives a `Failure` carrying only the last error; nothing is
    raised past `fetch`.

    The fetcher shares one `httpx.AsyncClient`. A client passed in by the
    caller is left open; a client created here is closed by `aclose()`.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        api_key: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    ) -> None:
        """Initializes the fetcher.

        Args:
            http_client: A shared client. If None, one is created and owned.
            api_key: Optional CryptoCompare key, sent as an Authorization header.
            timeout_s: Per-request timeout for an owned client.
            max_attempts: Default attempt budget for `fetch`.
            base_delay_ms: Default backoff base for `fetch`.
        """
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            http2=True, timeout=timeout_s, follow_redirects=True
        )
        self._headers = {"Authorization": f"Apikey {api_key}"} if api_key else {}
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms

    async def fetch(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        max_attempts: int | None = None,
        base_delay_ms: int | None = None,
    ) -> FetchOutcome[Any]:
        """Fetches a URL and decodes its JSON body, retrying on failure.

        Args:
            url: The absolute URL to GET.
            params: Optional query parameters.
            max_attempts: Attempt budget, overriding the fetcher default.
            base_delay_ms: Backoff base, overriding the fetcher default.

        Returns:
            `Success` with the decoded JSON, or `Failure` with the last error.

        Raises:
            ValueError: If the attempt budget is smaller than one.
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        base_delay = self.base_delay_ms if base_delay_ms is None else base_delay_ms
        if attempts < 1:
            err_msg = f"max_attempts must be at least 1, got {attempts}."
            raise ValueError(err_msg)

        last_error: FetchError | None = None
        for attempt in range(1, attempts + 1):
            delay_ms = backoff_delay_ms(attempt, base_delay)
            if delay_ms:
                logger.debug(f"Waiting {delay_ms}ms before retry {attempt}")
                await asyncio.sleep(delay_ms / 1000)

            logger.debug(f"Fetching (attempt {attempt}/{attempts}): {url}")
            try:
                data = await self._get_json(url, params)
            except FetchError as e:
                last_error = e
                logger.warning(f"Fetch attempt {attempt}/{attempts} failed: {e}")
                continue

            logger.debug(f"Fetch successful: {url}")
            return Success(data)

        if last_error is None:
            err_msg = f"No attempt was made to fetch {url}."
            raise RuntimeError(err_msg)
        logger.error(f"Giving up on {url} after {attempts} attempts: {last_error}")
        return Failure(last_error, attempts=attempts)

    async def _get_json(self, url: str, params: dict[str, Any] | None) -> Any:
        try:
            response = await self.http_client.get(
                url, params=params, headers=self._headers
            )
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise TransientNetworkError(response.reason_phrase, response.status_code)

        try:
            return response.json()
        except ValueError as e:
            err_msg = f"Response from {url} is not valid JSON: {e}"
            raise MalformedResponseError(err_msg) from e

    async def aclose(self) -> None:
        """Closes the HTTP client if this fetcher created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.aclose()
