"""OpenAI 兼容接口的 Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 ``/chat/completions`` 的 HTTP 请求格式。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 将响应 JSON 解析为统一的 ChatResult / ChatStreamChunk。

凭据来自调用方传入的 ApiSettings，而不是全局配置。
"""

import json
from typing import Any, AsyncIterator, Dict

import httpx

from message_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from message_core.domain.models import (
    ApiSettings,
    ChatRequest,
    ChatResult,
    ChatStreamChunk,
    ChatUsage,
)


class OpenAICompatibleClient:
    """OpenAI 兼容 Provider 客户端。"""

    name = "openai-compatible"

    def __init__(self, api_settings: ApiSettings, base_url: str, timeout: float = 30.0):
        self._api_settings = api_settings
        self._base_url = (api_settings.base_url or base_url).rstrip("/")
        self._timeout = timeout

    def _headers(self) -> Dict[str, str]:
        if not self._api_settings.api_key:
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(code="MISSING_API_KEY", message="api_key not set")
        return {
            "Authorization": f"Bearer {self._api_settings.api_key}",
            "Content-Type": "application/json",
        }

    async def chat(self, req: ChatRequest) -> ChatResult:
        headers = self._headers()
        payload = self._build_payload(req)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(f"{self._base_url}/chat/completions", json=payload, headers=headers)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit")
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        return self._parse_response(resp.json(), req)

    async def chat_stream(self, req: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        """执行一次流式对话调用，逐步 yield ChatStreamChunk。"""

        headers = self._headers()
        payload = self._build_payload(req)
        payload["stream"] = True
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit")
                    if resp.status_code >= 400:
                        body = await resp.aread()
                        raise ApiError(
                            code="API_ERROR",
                            message=body.decode("utf-8", errors="replace"),
                            http_status=resp.status_code,
                        )
                    async for line in resp.aiter_lines():
                        data_str = line.strip()
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        if not data_str or data_str == "[DONE]":
                            continue
                        try:
                            data = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        yield self._parse_stream_chunk(data, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    def _build_payload(self, req: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": req.model,
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "temperature": req.temperature,
        }
        if req.max_tokens:
            payload["max_tokens"] = req.max_tokens
        return payload

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        choices = data.get("choices") or []
        first = choices[0] if choices else {}
        message = first.get("message") or {}
        usage_raw = data.get("usage") or {}
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
        return ChatResult(
            provider=self.name,
            model=req.model,
            content=message.get("content") or "",
            finish_reason=first.get("finish_reason"),
            usage=usage,
            raw=data,
        )

    def _parse_stream_chunk(self, data: dict, req: ChatRequest) -> ChatStreamChunk:
        choices = data.get("choices") or []
        first = choices[0] if choices else {}
        delta = first.get("delta") or {}
        return ChatStreamChunk(
            provider=self.name,
            model=req.model,
            delta=delta.get("content") or "",
            finish_reason=first.get("finish_reason"),
            raw=data,
        )
