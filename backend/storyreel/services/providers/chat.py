"""OpenAI-compatible chat completion (text tasks)."""

from __future__ import annotations

import logging
from typing import Any

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

logger = logging.getLogger(__name__)

# Long prompts (script parsing) can take minutes
CHAT_TIMEOUT_SECONDS = 600.0


class ChatCompletionAdapter(ProviderAdapter):
    name = "chat"
    kind = TaskKind.TEXT

    async def create(self, binding: ModelBinding, request: TaskCreate) -> CreateResult:
        body: dict[str, Any] = {
            "model": binding.api_model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature if request.temperature is not None else 0.7,
        }
        if request.max_tokens:
            body["max_tokens"] = request.max_tokens
        if request.response_format == "json_object":
            body["response_format"] = {"type": "json_object"}

        endpoint = binding.endpoint or "/v1/chat/completions"
        response = await self.http.request(
            "POST",
            f"{binding.api_base}{endpoint}",
            timeout=CHAT_TIMEOUT_SECONDS,
            headers=bearer(binding.api_key),
            json=body,
        )
        choices = json_body(response).get("choices") or [{}]
        text = ((choices[0] or {}).get("message") or {}).get("content") or ""
        logger.debug("Chat completion returned %d chars", len(text))
        return CreateResult(result=GenerationResult(text=text))
