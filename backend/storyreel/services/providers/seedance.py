"""Volcengine Ark Seedance video provider (direct connection).

Status enum: queued / running / succeeded (or completed) / failed / error /
cancelled. The clip URL lives in ``content[0].video_url``.
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


class SeedanceVideoAdapter(ProviderAdapter):
    name = "seedance"
    kind = TaskKind.VIDEO
    poll_interval = 10.0

    @property
    def tasks_url(self) -> str:
        return f"{self.settings.ARK_ENDPOINT.rstrip('/')}/contents/generations/tasks"

    async def create(self, binding: ModelBinding, request: TaskCreate) -> CreateResult:
        images = [
            img if img.startswith("data:") else f"data:image/png;base64,{img}"
            for img in (request.start_image, request.end_image)
            if img
        ]
        body: dict[str, Any] = {
            "model": binding.api_model,
            "prompt": request.prompt,
            "duration": request.duration,
            "resolution": "720p",
            "ratio": request.aspect_ratio or "16:9",
        }
        if images:
            body["images"] = images

        logger.info("Creating Seedance job (model=%s)", binding.api_model)
        response = await self.http.request(
            "POST", self.tasks_url, headers=bearer(binding.api_key), json=body
        )
        data = json_body(response)
        job_id = data.get("id") or data.get("task_id")
        if not job_id:
            raise ProviderReportedFailure(f"Seedance job creation returned no id: {data}")
        logger.info("Seedance job created: %s", job_id)
        return CreateResult(handle=str(job_id))

    async def check(self, binding: ModelBinding, handle: str) -> PollStatus:
        response = await self.http.request(
            "GET", f"{self.tasks_url}/{handle}", retry=False, headers=bearer(binding.api_key)
        )
        data = json_body(response)
        status = data.get("status")

        if status in ("succeeded", "completed"):
            content = data.get("content")
            first = content[0] if isinstance(content, list) and content else content
            first = first if isinstance(first, dict) else {}
            url = (
                first.get("video_url")
                or first.get("url")
                or data.get("video_url")
                or (data.get("output") or {}).get("video_url")
            )
            return PollStatus(PollState.SUCCEEDED, locator=url)
        if status in ("failed", "error", "cancelled"):
            err = data.get("error") or {}
            message = err.get("message") if isinstance(err, dict) else str(err)
            return PollStatus(PollState.FAILED, message=message or status)
        return PollStatus(PollState.PENDING)
