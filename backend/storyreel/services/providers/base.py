from __future__ import annotations
"""Provider adapter interface — uniform create / poll / download over every backend.

Adapters translate one external API into three calls:

- ``create`` submits the job and returns either a provider job handle or,
  for synchronous backends, the finished result;
- ``check`` reads the job status once, normalized to :class:`PollStatus`;
- ``download`` fetches the produced media.

``poll`` (shared) loops over ``check`` until a terminal status or the
overall ceiling.
"""

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from storyreel.config import Settings, get_settings
from storyreel.errors import (
    ConfigurationError,
    PollTimeout,
    ProviderReportedFailure,
    ProviderRequestRejected,
    TransientProviderError,
)
from storyreel.models.task import TaskKind
from storyreel.schemas.task import TaskCreate
from storyreel.services.model_catalog import ModelBinding

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class PollState(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PollStatus:
    """One status reading, normalized across providers."""
    state: PollState
    progress: Optional[int] = None
    locator: Optional[str] = None  # output URL or provider output id
    message: Optional[str] = None


@dataclass
class GenerationResult:
    """Raw provider output: inline media (optionally with its remote URL) or text."""
    data: Optional[bytes] = None
    mime: Optional[str] = None
    url: Optional[str] = None
    text: Optional[str] = None

    @property
    def is_media(self) -> bool:
        return self.data is not None or (self.url is not None and self.text is None)


@dataclass
class CreateResult:
    handle: Optional[str] = None
    result: Optional[GenerationResult] = None


@dataclass(frozen=True)
class RetryPolicy:
    """Per-request retry budget: ``max_retries`` retries after the first attempt."""
    max_retries: int = 3
    base_delay: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(max_retries=settings.HTTP_MAX_RETRIES, base_delay=settings.HTTP_RETRY_BASE_DELAY)


@dataclass(frozen=True)
class PollPolicy:
    timeout: float = 1200.0
    min_interval: float = 5.0
    max_interval: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> PollPolicy:
        return cls(
            timeout=settings.POLL_TIMEOUT_SECONDS,
            min_interval=settings.POLL_INTERVAL_MIN_SECONDS,
            max_interval=settings.POLL_INTERVAL_MAX_SECONDS,
        )

    def clamp(self, interval: float) -> float:
        return max(self.min_interval, min(interval, self.max_interval))


# ---------------------------------------------------------------------------
# HTTP with bounded retry
# ---------------------------------------------------------------------------

def error_message(response: httpx.Response) -> str:
    """Best-effort error text from a provider error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        for key in ("message", "code"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {response.status_code}"


class ProviderHttp:
    """Thin wrapper over a shared ``httpx.AsyncClient`` with transient-error retry.

    Timeouts, connection errors, 429 and 5xx are retried with doubling
    backoff; 401/403 raise :class:`ConfigurationError`; other 4xx raise
    :class:`ProviderRequestRejected`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry: RetryPolicy | None = None,
        timeout: float = 60.0,
        media_timeout: float = 1200.0,
    ):
        self.client = client
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self.media_timeout = media_timeout

    async def request(
        self,
        method: str,
        url: str,
        *,
        retry: bool = True,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        attempts = self.retry.max_retries + 1 if retry else 1
        last_error: TransientProviderError | None = None

        for attempt in range(attempts):
            try:
                response = await self.client.request(
                    method, url, timeout=timeout or self.timeout, **kwargs
                )
            except httpx.TransportError as e:
                last_error = TransientProviderError(
                    f"{method} {url}: {e.__class__.__name__}: {e}"
                )
            else:
                status = response.status_code
                if status == 429 or status >= 500:
                    last_error = TransientProviderError(
                        f"{method} {url}: HTTP {status}: {error_message(response)}"
                    )
                elif status in (401, 403):
                    raise ConfigurationError(
                        f"Provider rejected credentials (HTTP {status}): {error_message(response)}"
                    )
                elif status >= 400:
                    raise ProviderRequestRejected(status, error_message(response))
                else:
                    return response

            if attempt < attempts - 1:
                delay = self.retry.base_delay * (2 ** attempt)
                logger.warning(
                    "Provider request attempt %d/%d failed: %s (retrying in %.1fs)",
                    attempt + 1, attempts, last_error, delay,
                )
                await asyncio.sleep(delay)

        assert last_error is not None
        raise last_error

    async def download(self, url: str, default_mime: str, headers: dict | None = None) -> GenerationResult:
        """Fetch binary media (no credentials unless ``headers`` given)."""
        response = await self.request("GET", url, timeout=self.media_timeout, headers=headers)
        content_type = response.headers.get("content-type", "")
        mime = default_mime
        if content_type.startswith(("video/", "image/")):
            mime = content_type.split(";")[0].strip()
        return GenerationResult(data=response.content, mime=mime)


def bearer(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}


def json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise ProviderReportedFailure(f"Provider returned non-JSON response: {e}") from e
    if not isinstance(data, dict):
        raise ProviderReportedFailure("Provider returned an unexpected JSON shape")
    return data


# ---------------------------------------------------------------------------
# Adapter base
# ---------------------------------------------------------------------------

class ProviderAdapter(ABC):
    """Abstract base class for all provider adapters."""

    name: str = "unknown"
    kind: TaskKind = TaskKind.VIDEO
    poll_interval: float = 5.0

    def __init__(
        self,
        http: ProviderHttp,
        poll_policy: PollPolicy | None = None,
        settings: Settings | None = None,
    ):
        self.http = http
        self.poll_policy = poll_policy or PollPolicy()
        self.settings = settings or get_settings()

    @abstractmethod
    async def create(self, binding: ModelBinding, request: TaskCreate) -> CreateResult:
        """Submit the job. Returns a handle (async backends) or the result."""
        ...

    async def check(self, binding: ModelBinding, handle: str) -> PollStatus:
        raise NotImplementedError(f"{self.name} does not support polling")

    async def download(self, binding: ModelBinding, locator: str) -> GenerationResult:
        return await self.http.download(locator, "video/mp4")

    @property
    def supports_polling(self) -> bool:
        return type(self).check is not ProviderAdapter.check

    async def poll(
        self,
        binding: ModelBinding,
        handle: str,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationResult:
        """Poll ``handle`` until it succeeds, fails, or the ceiling passes.

        HTTP errors while reading status are logged and polling continues.
        ``on_progress`` may raise to stop the loop.
        """
        policy = self.poll_policy
        interval = policy.clamp(self.poll_interval)
        loop = asyncio.get_running_loop()
        started = loop.time()

        while True:
            remaining = policy.timeout - (loop.time() - started)
            if remaining <= 0:
                break
            await asyncio.sleep(min(interval, remaining))
            elapsed = loop.time() - started
            if elapsed >= policy.timeout:
                break

            try:
                status = await self.check(binding, handle)
            except (TransientProviderError, ProviderRequestRejected) as e:
                logger.warning("%s status check for %s failed, continuing: %s", self.name, handle, e)
                continue

            progress = status.progress
            if progress is None:
                progress = min(int(elapsed / policy.timeout * 90), 90)
            logger.debug("%s job %s: %s (%d%%)", self.name, handle, status.state.value, progress)
            if on_progress is not None:
                await on_progress(progress)

            if status.state is PollState.SUCCEEDED:
                if not status.locator:
                    raise ProviderReportedFailure(
                        f"{self.name} job {handle} succeeded without an output reference"
                    )
                return await self.download(binding, status.locator)
            if status.state is PollState.FAILED:
                raise ProviderReportedFailure(
                    f"{self.name} job {handle} failed: {status.message or 'unknown error'}"
                )

        raise PollTimeout(
            f"{self.name} job {handle} did not finish within {policy.timeout:g}s"
        )
