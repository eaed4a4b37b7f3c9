"""DashScope (Alibaba Bailian / Wan) video provider.

Jobs are created with ``X-DashScope-Async: enable`` and polled via
``/api/v1/tasks/{id}``, whose ``output.task_status`` is an explicit enum:
PENDING / RUNNING / SUCCEEDED / FAILED / UNKNOWN (expired or missing).
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
    PollState,
    PollStatus,
    ProviderAdapter,
    bearer,
    json_body,
)

logger = logging.getLogger(__name__)


def _normalize_image(image: str) -> str:
    if image.lower().startswith(("http://", "https://", "data:image/")):
        return image
    return f"data:image/png;base64,{image}"


def is_kf2v(model: str) -> bool:
    return "kf2v" in model


def is_text_to_video(model: str, has_image: bool) -> bool:
    if "t2v" in model:
        return True
    if "i2v" in model or "kf2v" in model:
        return False
    return not has_image


class DashScopeVideoAdapter(ProviderAdapter):
    name = "dashscope"
    kind = TaskKind.VIDEO
    poll_interval = 10.0

    @property
    def endpoint(self) -> str:
        return self.settings.DASHSCOPE_ENDPOINT.rstrip("/")

    async def create(self, binding: ModelBinding, request: TaskCreate) -> CreateResult:
        model = binding.api_model
        kf2v = is_kf2v(model)
        t2v = is_text_to_video(model, bool(request.start_image))

        input_data: dict[str, Any] = {"prompt": request.prompt}
        if kf2v:
            if request.start_image:
                input_data["first_frame_url"] = _normalize_image(request.start_image)
            if request.end_image:
                input_data["last_frame_url"] = _normalize_image(request.end_image)
        elif not t2v and request.start_image:
            input_data["img_url"] = _normalize_image(request.start_image)

        parameters: dict[str, Any] = {"resolution": "720P", "prompt_extend": True}
        if not kf2v and request.duration:
            parameters["duration"] = request.duration

        api_path = (
            "/api/v1/services/aigc/image2video/video-synthesis"
            if kf2v
            else "/api/v1/services/aigc/video-generation/video-synthesis"
        )

        logger.info("Creating DashScope job (model=%s, path=%s)", model, api_path)
        response = await self.http.request(
            "POST",
            f"{self.endpoint}{api_path}",
            headers={**bearer(binding.api_key), "X-DashScope-Async": "enable"},
            json={"model": model, "input": input_data, "parameters": parameters},
        )
        body = json_body(response)
        job_id = (body.get("output") or {}).get("task_id")
        if not job_id:
            raise ProviderReportedFailure(f"DashScope job creation returned no task_id: {body}")
        logger.info("DashScope job created: %s", job_id)
        return CreateResult(handle=job_id)

    async def check(self, binding: ModelBinding, handle: str) -> PollStatus:
        response = await self.http.request(
            "GET",
            f"{self.endpoint}/api/v1/tasks/{handle}",
            retry=False,
            headers=bearer(binding.api_key),
        )
        output = json_body(response).get("output") or {}
        status = output.get("task_status")

        if status == "SUCCEEDED":
            url = output.get("video_url")
            if not url:
                results = output.get("results") or []
                url = results[0].get("url") if results and isinstance(results[0], dict) else None
            return PollStatus(PollState.SUCCEEDED, locator=url)
        if status == "FAILED":
            return PollStatus(PollState.FAILED, message=output.get("message"))
        if status == "UNKNOWN":
            return PollStatus(PollState.FAILED, message="task does not exist or has expired")
        return PollStatus(PollState.PENDING)
