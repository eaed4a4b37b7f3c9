"""OpenAI-style asynchronous video provider (Sora, Veo fast, Kling, Vidu via gateway).

Create is a multipart POST to ``/v1/videos``; status is read from
``/v1/videos/{id}`` and the clip is fetched from ``/v1/videos/{id}/content``
unless the status payload already carries a video URL.
"""

from __future__ import annotations

import logging
from typing import Any

from storyreel.errors import ProviderReportedFailure
from storyreel.models.task import TaskKind
from storyreel.schemas.task import TaskCreate
from storyreel.services.model_catalog import ModelBinding
from storyreel.services.providers.base import (
    CreateResult,
    GenerationResult,
    PollState,
    PollStatus,
    ProviderAdapter,
    bearer,
    json_body,
)
from storyreel.services.storage import as_image_data_uri, parse_data_uri

logger = logging.getLogger(__name__)

VIDEO_SIZES = {
    "16:9": "1280x720",
    "9:16": "720x1280",
    "1:1": "720x720",
}


def video_size(aspect_ratio: str) -> str:
    return VIDEO_SIZES.get(aspect_ratio, "1280x720")


def _reference_file(image: str, filename: str) -> tuple[str, bytes, str] | None:
    decoded = parse_data_uri(as_image_data_uri(image))
    if decoded is None:
        return None
    return filename, decoded.data, decoded.mime


class GenericAsyncVideoAdapter(ProviderAdapter):
    name = "generic-async"
    kind = TaskKind.VIDEO
    poll_interval = 5.0

    async def create(self, binding: ModelBinding, request: TaskCreate) -> CreateResult:
        model = binding.api_model
        data = {
            "model": model,
            "prompt": request.prompt,
            "seconds": str(request.duration),
            "size": video_size(request.aspect_ratio),
        }

        references = [img for img in (request.start_image, request.end_image) if img]
        files: list[tuple[str, tuple[str, bytes, str]]] = []
        if model.lower().startswith("veo_3_1-fast") and len(references) >= 2:
            for name, image in zip(("reference-start.png", "reference-end.png"), references):
                ref = _reference_file(image, name)
                if ref:
                    files.append(("input_reference[]", ref))
        elif references:
            ref = _reference_file(references[0], "reference.png")
            if ref:
                files.append(("input_reference", ref))

        logger.info(
            "Creating async video job (model=%s, %s, %ss, %d reference(s))",
            model, request.aspect_ratio, request.duration, len(files),
        )
        response = await self.http.request(
            "POST",
            f"{binding.api_base}/v1/videos",
            headers=bearer(binding.api_key),
            data=data,
            files=files or None,
        )
        body = json_body(response)
        job_id = body.get("id") or body.get("task_id")
        if not job_id:
            raise ProviderReportedFailure(f"Video job creation returned no id: {body}")
        logger.info("Async video job created: %s", job_id)
        return CreateResult(handle=str(job_id))

    async def check(self, binding: ModelBinding, handle: str) -> PollStatus:
        response = await self.http.request(
            "GET",
            f"{binding.api_base}/v1/videos/{handle}",
            retry=False,
            headers={"Accept": "application/json", **bearer(binding.api_key)},
        )
        body = json_body(response)
        status = str(body.get("status") or "").lower()
        progress = body.get("progress")
        progress = int(progress) if isinstance(progress, (int, float)) else None

        if status in ("completed", "succeeded"):
            return PollStatus(PollState.SUCCEEDED, progress=progress, locator=_output_locator(body))
        if status in ("failed", "error"):
            err = body.get("error") or {}
            message = (
                (err.get("message") or err.get("code")) if isinstance(err, dict) else err
            ) or body.get("message")
            return PollStatus(PollState.FAILED, progress=progress, message=message)
        return PollStatus(PollState.PENDING, progress=progress)

    async def download(self, binding: ModelBinding, locator: str) -> GenerationResult:
        if locator.startswith(("http://", "https://")):
            return await self.http.download(locator, "video/mp4")

        response = await self.http.request(
            "GET",
            f"{binding.api_base}/v1/videos/{locator}/content",
            timeout=self.http.media_timeout,
            headers={"Accept": "*/*", **bearer(binding.api_key)},
        )
        content_type = response.headers.get("content-type", "")
        if "video" in content_type:
            return GenerationResult(data=response.content, mime=content_type.split(";")[0].strip())

        body = json_body(response)
        url = body.get("url") or body.get("video_url") or body.get("download_url")
        if not url:
            raise ProviderReportedFailure(f"No download location for video {locator}")
        return await self.http.download(url, "video/mp4")


def _output_locator(body: dict[str, Any]) -> str | None:
    """Video URL if present, else the id the content endpoint expects."""
    url = body.get("video_url") or body.get("videoUrl")
    if url:
        return url
    job_id = body.get("id")
    if isinstance(job_id, str) and job_id.startswith("video_"):
        return job_id
    outputs = body.get("outputs") or []
    first = outputs[0] if outputs else None
    if isinstance(first, dict):
        first = first.get("id")
    return body.get("output_video") or body.get("video_id") or first or job_id
