"""OpenRouter upstream adapter (OpenAI-compatible chat completions over httpx)."""

from __future__ import annotations

import json
from typing import Any

import httpx

from src.core.exceptions import (
    UpstreamEmptyResponseError,
    UpstreamError,
    UpstreamUnreachableError,
)
from src.core.interfaces import UpstreamProvider
from src.core.logging import get_logger
from src.core.types import (
    ImagePart,
    TextPart,
    UpstreamCompletion,
    UpstreamRequest,
    UserContent,
)

log = get_logger(__name__)


def build_messages(system_prompt: str, user_content: UserContent) -> list[dict[str, Any]]:
    """Role-tagged message sequence in the OpenAI chat format."""
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]

    if isinstance(user_content, str):
        messages.append({"role": "user", "content": user_content})
        return messages

    parts: list[dict[str, Any]] = []
    for part in user_content:
        if isinstance(part, TextPart):
            parts.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{part.media_type};base64,{part.data}"},
            })
        else:
            msg = f"unsupported content part: {type(part).__name__}"
            raise TypeError(msg)
    messages.append({"role": "user", "content": parts})
    return messages


class OpenRouterProvider(UpstreamProvider):
    """Forward completions to OpenRouter with the gateway's master key.

    Every call has a bounded timeout. Transport failures and timeouts raise
    ``UpstreamUnreachableError``; error envelopes and malformed payloads raise
    ``UpstreamError``; a success without text raises
    ``UpstreamEmptyResponseError``.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout_seconds: float = 120.0,
        referer: str = "",
        title: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if referer:
            headers["HTTP-Referer"] = referer
        if title:
            headers["X-Title"] = title

        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )
        self._timeout = timeout_seconds

    async def complete(self, request: UpstreamRequest) -> UpstreamCompletion:
        payload = {
            "model": request.model_id,
            "max_tokens": request.max_tokens,
            "messages": build_messages(request.system_prompt, request.user_content),
        }

        try:
            resp = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as exc:
            log.warning("upstream_timeout", model=request.model_id, timeout=self._timeout)
            raise UpstreamUnreachableError(
                f"Upstream provider timed out after {self._timeout:g}s",
                context={"model": request.model_id},
            ) from exc
        except httpx.TransportError as exc:
            log.warning("upstream_unreachable", model=request.model_id, error=str(exc))
            raise UpstreamUnreachableError(
                "Could not reach the upstream provider",
                context={"model": request.model_id},
            ) from exc

        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            log.error("upstream_malformed", model=request.model_id, status=resp.status_code)
            raise UpstreamError(
                f"Malformed response from upstream provider (HTTP {resp.status_code})",
                context={"model": request.model_id},
            ) from exc

        return self._parse_completion(request.model_id, resp.status_code, data)

    @staticmethod
    def _parse_completion(model_id: str, status_code: int, data: object) -> UpstreamCompletion:
        if not isinstance(data, dict):
            raise UpstreamError(
                "Malformed response from upstream provider",
                context={"model": model_id},
            )

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                message = str(error.get("message") or json.dumps(error))
            else:
                message = str(error)
            log.error("upstream_error", model=model_id, status=status_code, error=message)
            raise UpstreamError(f"Model error: {message}", context={"model": model_id})

        if status_code >= 400:
            log.error("upstream_http_error", model=model_id, status=status_code)
            raise UpstreamError(
                f"Upstream provider returned HTTP {status_code}",
                context={"model": model_id},
            )

        text = ""
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            message_obj = choices[0].get("message") if isinstance(choices[0], dict) else None
            if isinstance(message_obj, dict):
                text = message_obj.get("content") or ""
        if not isinstance(text, str) or not text:
            log.warning("upstream_empty_response", model=model_id)
            raise UpstreamEmptyResponseError(
                "The model returned an empty response. Try again.",
                context={"model": model_id},
            )

        usage = data.get("usage")
        if not isinstance(usage, dict):
            log.error("upstream_usage_missing", model=model_id)
            raise UpstreamError(
                "Upstream response carried no usage counts",
                context={"model": model_id},
            )

        try:
            input_tokens = int(usage.get("prompt_tokens") or 0)
            output_tokens = int(usage.get("completion_tokens") or 0)
        except (TypeError, ValueError) as exc:
            raise UpstreamError(
                "Upstream response carried unreadable usage counts",
                context={"model": model_id},
            ) from exc

        return UpstreamCompletion(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
