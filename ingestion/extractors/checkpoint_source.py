"""
Checkpoint source client with retry logic.

This module fetches numbered checkpoints from the upstream checkpoint
service with:
- Exponential backoff retry logic for transient failures
- Rate limiting protection (HTTP 429, honouring Retry-After)
- A distinct signal for checkpoints the chain has not produced yet
- Envelope validation of the returned checkpoint
"""

import asyncio
from typing import Optional

import httpx
from pydantic import ValidationError

from core.config import settings
from core.exceptions import (
    CheckpointFetchError,
    CheckpointNotAvailableError,
    NetworkError,
)
from schemas.checkpoint import Checkpoint
import logging

logger = logging.getLogger(__name__)


class CheckpointSourceClient:
    """
    Fetch checkpoint N from the upstream checkpoint service.

    Outcomes of fetch():
    - Checkpoint: the validated envelope
    - CheckpointNotAvailableError: N is beyond the chain tip (HTTP 404); the
      caller backs off and asks again, this is never a failure
    - CheckpointFetchError: retries exhausted, unexpected status, or a
      malformed body; fatal for the caller

    Attributes:
        max_retries: Maximum number of attempts per checkpoint (default: 5)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 30.0)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.CHECKPOINT_SOURCE_URL).rstrip("/")
        self.max_retries = max(1, max_retries if max_retries is not None else settings.MAX_RETRIES)
        self.retry_delay = retry_delay if retry_delay is not None else settings.RETRY_DELAY_SECONDS
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def __aenter__(self) -> "CheckpointSourceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    def checkpoint_url(self, sequence_number: int) -> str:
        return f"{self.base_url}/checkpoints/{sequence_number}"

    async def _get_with_retry(self, url: str, sequence_number: int) -> httpx.Response:
        """
        GET with exponential backoff on transient failures.

        Returns:
            A 2xx HTTP response

        Raises:
            CheckpointNotAvailableError: HTTP 404
            CheckpointFetchError: Non-retryable status or retries exhausted
        """
        context = {"source_url": url, "checkpoint": sequence_number}
        last_error: Optional[NetworkError] = None

        for attempt in range(self.max_retries):
            delay = self.retry_delay * (2 ** attempt)
            try:
                logger.debug(f"Request attempt {attempt + 1}/{self.max_retries} to {url}")
                response = await self._client.get(url)

                if response.status_code == 404:
                    raise CheckpointNotAvailableError(
                        f"Checkpoint {sequence_number} not yet available",
                        context={**context, "status_code": 404},
                    )

                if response.status_code == 429:
                    retry_after = response.headers.get("Retry-After")
                    if retry_after is not None and retry_after.isdigit():
                        delay = float(retry_after)
                    last_error = NetworkError(
                        f"Rate limited fetching checkpoint {sequence_number}",
                        context={**context, "status_code": 429, "retry_count": attempt + 1},
                    )
                elif response.status_code >= 500:
                    last_error = NetworkError(
                        f"Server error {response.status_code} fetching checkpoint {sequence_number}",
                        context={
                            **context,
                            "status_code": response.status_code,
                            "retry_count": attempt + 1,
                            "response_body": response.text[:500],
                        },
                    )
                elif response.status_code >= 400:
                    raise CheckpointFetchError(
                        f"Unexpected status {response.status_code} for checkpoint {sequence_number}",
                        context={
                            **context,
                            "status_code": response.status_code,
                            "response_body": response.text[:500],
                        },
                    )
                else:
                    return response

            except httpx.TimeoutException as e:
                last_error = NetworkError(
                    f"Request timeout fetching checkpoint {sequence_number}",
                    context={**context, "timeout": self.timeout, "retry_count": attempt + 1},
                    original_exception=e,
                )

            except httpx.TransportError as e:
                last_error = NetworkError(
                    f"Network error fetching checkpoint {sequence_number}",
                    context={**context, "retry_count": attempt + 1},
                    original_exception=e,
                )

            if attempt < self.max_retries - 1:
                logger.warning(
                    f"{last_error.message}. Retrying in {delay} seconds "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)

        raise CheckpointFetchError(
            f"Checkpoint {sequence_number} could not be fetched after {self.max_retries} attempts",
            context={**context, "retry_count": self.max_retries},
            original_exception=last_error,
        )

    async def fetch(self, sequence_number: int) -> Checkpoint:
        """
        Fetch and validate checkpoint ``sequence_number``.

        Raises:
            CheckpointNotAvailableError: The chain has not produced it yet
            CheckpointFetchError: Fatal fetch or decode failure
        """
        url = self.checkpoint_url(sequence_number)
        response = await self._get_with_retry(url, sequence_number)

        try:
            data = response.json()
        except ValueError as e:
            raise CheckpointFetchError(
                "Failed to parse JSON response",
                context={
                    "source_url": url,
                    "checkpoint": sequence_number,
                    "response_body": response.text[:500],
                },
                original_exception=e,
            )

        try:
            checkpoint = Checkpoint.model_validate(data)
        except ValidationError as e:
            raise CheckpointFetchError(
                f"Malformed checkpoint envelope for {sequence_number}",
                context={"source_url": url, "checkpoint": sequence_number},
                original_exception=e,
            )

        if checkpoint.sequence_number != sequence_number:
            raise CheckpointFetchError(
                f"Requested checkpoint {sequence_number}, received {checkpoint.sequence_number}",
                context={"source_url": url, "checkpoint": sequence_number},
            )

        logger.debug(
            f"Fetched checkpoint {sequence_number} "
            f"({len(checkpoint.transactions)} transactions)"
        )
        return checkpoint
