"""Veo synchronous video via chat completions.

The gateway holds the request open until the clip is rendered and answers
with a message whose text contains the mp4 URL. There is no job handle, so
an interrupted call cannot be resumed.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from storyreel.errors import ProviderReportedFailure
from storyreel.models.task import TaskKind
from storyreel.schemas.task import TaskCreate
from storyreel.services.model_catalog import ModelBinding
from storyreel.services.providers.base import (
    CreateResult,
    ProviderAdapter,
    bearer,
    json_body,
)

logger = logging.getLogger(__name__)

_MP4_URL_RE = re.compile(r"(https?://\S+?\.mp4)")
_IMAGE_PREFIX_RE = re.compile(r"^data:image/(png|jpeg|jpg);base64,")


def veo_model_name(has_reference: bool, aspect_ratio: str) -> str:
    orientation = "portrait" if aspect_ratio == "9:16" else "landscape"
    if has_reference:
        return f"veo_3_1_i2v_s_fast_fl_{orientation}"
    return f"veo_3_1_t2v_fast_{orientation}"


class VeoSyncVideoAdapter(ProviderAdapter):
    name = "veo-sync"
    kind = TaskKind.VIDEO

    async def create(self, binding: ModelBinding, request: TaskCreate) -> CreateResult:
        model = veo_model_name(bool(request.start_image), request.aspect_ratio)
        logger.info("Veo sync generation: %s", model)

        content: Any = request.prompt
        if request.start_image:
            content = [{"type": "text", "text": request.prompt}]
            for image in (request.start_image, request.end_image):
                if image:
                    clean = _IMAGE_PREFIX_RE.sub("", image)
                    content.append({
                        "type": "image_url",
                        "image_url": {"url": f"data:image/png;base64,{clean}"},
                    })

        response = await self.http.request(
            "POST",
            f"{binding.api_base}/v1/chat/completions",
            timeout=self.http.media_timeout,
            headers=bearer(binding.api_key),
            json={
                "model": model,
                "messages": [{"role": "user", "content": content}],
                "stream": False,
                "temperature": 0.7,
            },
        )
        body = json_body(response)
        choices = body.get("choices") or [{}]
        text = ((choices[0] or {}).get("message") or {}).get("content") or ""
        match = _MP4_URL_RE.search(text)
        if not match:
            raise ProviderReportedFailure("Video generation returned no video URL")

        result = await self.http.download(match.group(1), "video/mp4")
        return CreateResult(result=result)
