"""Rate-limited, retrying client for the Gemini embedding API.

The upstream free tier allows 60 requests per minute, so every attempt
(including retries) goes through a shared :class:`RateLimiter` that enforces
both a minimum gap between calls and a sliding-window cap. Rate-limit (429)
responses and transport failures are retried with exponential backoff; any
other error status fails immediately.
"""

from __future__ import annotations

import os
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

import requests

from hybrid_kb.core.config import GEMINI_EMBED_URL, VALID_DIMENSIONS, Settings
from hybrid_kb.core.errors import EmbeddingError
from hybrid_kb.core.logging import get_logger, log_context
from hybrid_kb.core.metrics import EMBEDDING_REQUESTS, EMBEDDING_RETRIES

logger = get_logger(__name__)

DEFAULT_DIMENSION = 768
DEFAULT_MODEL = "models/gemini-embedding-001"
RATE_LIMIT_STATUS = 429
API_KEY_ENV_VARS = ("HKB_EMBEDDING_API_KEY", "GEMINI_API_KEY", "GOOGLE_AI_API_KEY")

TASK_DOCUMENT = "RETRIEVAL_DOCUMENT"
TASK_QUERY = "RETRIEVAL_QUERY"


class Embedder(Protocol):
    """Anything that turns text into fixed-length vectors."""

    @property
    def dimension(self) -> int: ...

    @property
    def name(self) -> str: ...

    def embed(self, text: str) -> list[float]: ...

    def embed_query(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]: ...

    def close(self) -> None: ...


class RateLimiter:
    """Minimum-delay plus sliding-window limiter shared by embedding calls.

    The lock guards the timestamp window and is held while pacing waits run,
    so concurrent callers are serialized (no ordering guarantee). A timestamp
    is recorded only once all waits have completed.
    """

    def __init__(
        self,
        max_requests: int = 60,
        window: float = 60.0,
        min_delay: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window <= 0:
            raise ValueError("window must be positive")
        self.max_requests = max_requests
        self.window = window
        self.min_delay = min_delay
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._requests: deque[float] = deque()
        self._last_request: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(
            max_requests=settings.rate_limit_requests,
            window=settings.rate_limit_window,
            min_delay=settings.rate_limit_min_delay,
        )

    def acquire(self) -> float:
        """Block until a call may be issued; return the seconds spent waiting."""
        waited = 0.0
        with self._lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self.min_delay:
                    wait_time = self.min_delay - elapsed
                    logger.debug("Min delay: waiting %.3fs", wait_time)
                    self._sleep(wait_time)
                    waited += wait_time

            self._prune(self._clock())
            while len(self._requests) >= self.max_requests:
                wait_time = self.window - (self._clock() - self._requests[0])
                if wait_time > 0:
                    logger.debug("Rate limit reached, waiting %.3fs", wait_time)
                    self._sleep(wait_time)
                    waited += wait_time
                self._prune(self._clock())

            now = self._clock()
            self._requests.append(now)
            self._last_request = now
        return waited

    def pending(self) -> int:
        """Number of calls recorded inside the current window."""
        with self._lock:
            self._prune(self._clock())
            return len(self._requests)

    def _prune(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self.window:
            self._requests.popleft()


@dataclass(slots=True)
class RetryState:
    """Retry bookkeeping for one embedding call.

    ``record_failure`` returns the backoff to sleep before the next attempt,
    or ``None`` once ``max_retries`` retries have been used.
    """

    max_retries: int = 3
    base_backoff: float = 2.0
    attempt: int = 0
    last_error: EmbeddingError | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_retries

    def next_delay(self) -> float:
        return self.base_backoff * (2**self.attempt)

    def record_failure(self, error: EmbeddingError) -> float | None:
        self.last_error = error
        if self.exhausted:
            return None
        delay = self.next_delay()
        self.attempt += 1
        return delay


class EmbeddingClient:
    """Gemini ``embedContent`` client with pacing and retry."""

    def __init__(
        self,
        api_key: str,
        rate_limiter: RateLimiter,
        dimension: int = DEFAULT_DIMENSION,
        model: str = DEFAULT_MODEL,
        endpoint: str = GEMINI_EMBED_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_backoff: float = 2.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if dimension not in VALID_DIMENSIONS:
            raise ValueError(f"Invalid dimension: {dimension}. Must be 768, 1536, or 3072")
        self.api_key = api_key
        self.rate_limiter = rate_limiter
        self._dimension = dimension
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_backoff = base_backoff
        self.session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, rate_limiter: RateLimiter | None = None) -> "EmbeddingClient":
        api_key = resolve_api_key(settings.embedding_api_key)
        if not api_key:
            raise EmbeddingError(
                "API key not found. Set GEMINI_API_KEY or GOOGLE_AI_API_KEY.",
                kind=EmbeddingError.CONFIGURATION,
            )
        return cls(
            api_key=api_key,
            rate_limiter=rate_limiter or RateLimiter.from_settings(settings),
            dimension=settings.embedding_dimension,
            model=settings.embedding_model,
            endpoint=settings.embedding_endpoint,
            timeout=settings.embedding_timeout,
            max_retries=settings.max_retries,
            base_backoff=settings.retry_base_backoff,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def name(self) -> str:
        return self.model.rsplit("/", 1)[-1]

    def embed(self, text: str, task_type: str = TASK_DOCUMENT) -> list[float]:
        if not text.strip():
            return [0.0] * self._dimension

        payload = self._build_request(text, task_type)
        state = RetryState(max_retries=self.max_retries, base_backoff=self.base_backoff)
        while True:
            self.rate_limiter.acquire()
            try:
                response = self.session.post(
                    self.endpoint,
                    headers={"x-goog-api-key": self.api_key},
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                EMBEDDING_REQUESTS.labels(outcome="transport_error").inc()
                error = EmbeddingError(
                    f"Failed to send embedding request: {exc}",
                    kind=EmbeddingError.TRANSPORT,
                )
            else:
                if 200 <= response.status_code < 300:
                    EMBEDDING_REQUESTS.labels(outcome="success").inc()
                    return self._parse_response(response)
                if response.status_code != RATE_LIMIT_STATUS:
                    EMBEDDING_REQUESTS.labels(outcome="upstream_error").inc()
                    raise _upstream_error(response)
                EMBEDDING_REQUESTS.labels(outcome="rate_limited").inc()
                error = EmbeddingError(
                    "Rate limit exceeded (429)",
                    kind=EmbeddingError.RATE_LIMITED,
                    status_code=RATE_LIMIT_STATUS,
                )

            delay = state.record_failure(error)
            if delay is None:
                raise EmbeddingError(
                    f"Embedding failed after {self.max_retries} retries: {error}",
                    kind=error.kind,
                    status_code=error.status_code,
                ) from error
            EMBEDDING_RETRIES.labels(reason=error.kind).inc()
            logger.warning(
                "%s, retrying in %.1fs (attempt %s/%s)",
                error,
                delay,
                state.attempt,
                self.max_retries,
                extra=log_context(attempt=state.attempt, reason=error.kind),
            )
            self._sleep(delay)

    def embed_query(self, text: str) -> list[float]:
        return self.embed(text, task_type=TASK_QUERY)

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        # No batch endpoint; the rate limiter paces the sequence.
        vectors: list[list[float]] = []
        for idx, text in enumerate(texts):
            logger.debug("Embedding batch %s/%s", idx + 1, len(texts))
            vectors.append(self.embed(text))
        return vectors

    def close(self) -> None:
        self.session.close()

    def _build_request(self, text: str, task_type: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "content": {"parts": [{"text": text}]},
            "taskType": task_type,
            "outputDimensionality": self._dimension,
        }

    def _parse_response(self, response: requests.Response) -> list[float]:
        try:
            values = [float(value) for value in response.json()["embedding"]["values"]]
        except (ValueError, KeyError, TypeError) as exc:
            raise EmbeddingError(f"Failed to parse embedding response: {exc}") from exc
        if len(values) != self._dimension:
            raise EmbeddingError(
                f"Embedding has {len(values)} values, expected {self._dimension}",
            )
        return values


def _upstream_error(response: requests.Response) -> EmbeddingError:
    status_code = response.status_code
    try:
        detail = response.json()["error"]
        message = f"Gemini API error ({detail.get('status') or status_code}): {detail['message']}"
    except (ValueError, KeyError, TypeError, AttributeError):
        message = f"Gemini API error ({status_code}): {response.text}"
    return EmbeddingError(message, kind=EmbeddingError.UPSTREAM, status_code=status_code)


def resolve_api_key(explicit: str | None = None) -> str | None:
    """Return the first non-empty API key from the argument or the environment."""
    if explicit:
        return explicit
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name)
        if value:
            logger.debug("Using API key from %s", name)
            return value
    return None


def has_api_key(explicit: str | None = None) -> bool:
    return resolve_api_key(explicit) is not None


__all__ = [
    "Embedder",
    "RateLimiter",
    "RetryState",
    "EmbeddingClient",
    "resolve_api_key",
    "has_api_key",
    "TASK_DOCUMENT",
    "TASK_QUERY",
]
