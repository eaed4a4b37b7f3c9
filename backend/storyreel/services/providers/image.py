"""Image providers.

- Gemini ``generateContent`` format: reference images go in as ``inlineData``
  parts and the image comes back inline.
- OpenAI / Volcengine ``images/generations`` format: the image comes back as
  ``b64_json`` or as a URL, which is downloaded and also kept as a remote
  reference (some providers only accept URLs as later reference input).
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any

from storyreel.errors import GenerationError, ProviderReportedFailure
from storyreel.models.task import TaskKind
from storyreel.schemas.task import TaskCreate
from storyreel.services.model_catalog import ModelBinding
from storyreel.services.providers.base import (
    CreateResult,
    GenerationResult,
    ProviderAdapter,
    bearer,
    json_body,
)
from storyreel.services.storage import as_image_data_uri, is_remote_url, to_data_uri

logger = logging.getLogger(__name__)

_INLINE_IMAGE_RE = re.compile(r"^data:(image/[a-zA-Z+.-]+);base64,(.+)$", re.DOTALL)


def _decode_b64(payload: str) -> bytes:
    try:
        return base64.b64decode(payload)
    except (binascii.Error, ValueError) as e:
        raise ProviderReportedFailure(f"Provider returned undecodable image data: {e}") from e


class GeminiImageAdapter(ProviderAdapter):
    name = "gemini-image"
    kind = TaskKind.IMAGE

    async def _inline_references(self, references: list[str]) -> list[str]:
        """Convert references to data URIs, downloading remote ones; failures are skipped."""
        inline: list[str] = []
        for image in references:
            if not image:
                continue
            if is_remote_url(image):
                try:
                    downloaded = await self.http.download(image, "image/png")
                except GenerationError as e:
                    logger.warning("Reference image download failed, skipped: %s", e)
                    continue
                inline.append(to_data_uri(downloaded.data or b"", downloaded.mime or "image/png"))
            else:
                inline.append(as_image_data_uri(image))
        return inline

    async def create(self, binding: ModelBinding, request: TaskCreate) -> CreateResult:
        references = await self._inline_references(request.reference_images)
        logger.info(
            "Gemini image generation: %d/%d reference image(s) usable",
            len(references), len(request.reference_images),
        )

        parts: list[dict[str, Any]] = [{"text": request.prompt}]
        for image in references:
            match = _INLINE_IMAGE_RE.match(image)
            if match:
                parts.append({"inlineData": {"mimeType": match.group(1), "data": match.group(2)}})

        generation_config: dict[str, Any] = {"responseModalities": ["TEXT", "IMAGE"]}
        if request.aspect_ratio != "16:9":
            generation_config["imageConfig"] = {"aspectRatio": request.aspect_ratio}

        endpoint = binding.endpoint or f"/v1beta/models/{binding.api_model}:generateContent"
        response = await self.http.request(
            "POST",
            f"{binding.api_base}{endpoint}",
            headers={**bearer(binding.api_key), "Accept": "*/*"},
            json={
                "contents": [{"role": "user", "parts": parts}],
                "generationConfig": generation_config,
            },
        )

        for candidate in json_body(response).get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                inline = part.get("inlineData")
                if inline and inline.get("data"):
                    return CreateResult(result=GenerationResult(
                        data=_decode_b64(inline["data"]),
                        mime=inline.get("mimeType") or "image/png",
                    ))
            break
        raise ProviderReportedFailure("Image generation returned no image data")


class OpenAIImageAdapter(ProviderAdapter):
    name = "openai-image"
    kind = TaskKind.IMAGE

    async def create(self, binding: ModelBinding, request: TaskCreate) -> CreateResult:
        body: dict[str, Any] = {
            "model": binding.api_model,
            "prompt": request.prompt,
            "size": "2K",
            "response_format": "url",
            "sequential_image_generation": "disabled",
            "stream": False,
            "watermark": False,
        }

        # URLs and data URIs only; bare payloads are not accepted here
        images = [
            img for img in request.reference_images
            if img and (is_remote_url(img) or re.match(r"^data:image/[a-z]+;base64,", img, re.I))
        ]
        if images:
            body["image"] = images
        elif request.reference_images:
            logger.warning(
                "No usable reference images among %d supplied", len(request.reference_images)
            )

        api_key = re.sub(r"^Bearer\s+", "", binding.api_key, flags=re.I)
        endpoint = binding.endpoint or "/v1/images/generations"
        response = await self.http.request(
            "POST", f"{binding.api_base}{endpoint}", headers=bearer(api_key), json=body
        )

        items = json_body(response).get("data")
        if isinstance(items, list) and items:
            first = items[0] or {}
            if first.get("b64_json"):
                return CreateResult(result=GenerationResult(
                    data=_decode_b64(first["b64_json"]), mime="image/png"
                ))
            if first.get("url"):
                downloaded = await self.http.download(first["url"], "image/png")
                downloaded.url = first["url"]
                return CreateResult(result=downloaded)
        raise ProviderReportedFailure("Image generation returned no image data")
