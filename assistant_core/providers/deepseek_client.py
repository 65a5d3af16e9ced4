"""DeepSeek Provider 适配器。

接口风格与 OpenAI 兼容，使用 chat/completions 端点：
- URL: settings.deepseek_endpoint
- 认证: Authorization: Bearer <api_key>

本类只负责传输：发出流式 POST 并按到达顺序产出原始字节块，
`data: ...` 行的拆分与解析由 streaming.aggregator 完成。
"""

import asyncio
from typing import Any, AsyncIterator, Dict, Mapping, Optional

import httpx

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import ApiError, BusinessError, NetworkError, RateLimitError
from assistant_core.infrastructure.logging.logger import logger


class DeepSeekClient:
    """DeepSeek 流式传输实现。"""

    name = "deepseek"

    def __init__(self, cfg=settings):
        self._settings = cfg

    # ---- 流式 ----

    async def post_streaming_request(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Mapping[str, str],
        cancel_event: asyncio.Event,
    ) -> AsyncIterator[bytes]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout(), trust_env=False) as client:
                async with client.stream("POST", url, json=body, headers=dict(headers)) as resp:
                    if resp.status_code >= 400:
                        await resp.aread()
                        raise self._http_error(resp, headers)
                    async for chunk in resp.aiter_bytes():
                        if cancel_event.is_set():
                            return
                        if chunk:
                            yield chunk
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=_redact(str(e) or type(e).__name__, headers))

    # ---- 密钥校验 ----

    async def check_api_key(self, api_key: Optional[str] = None) -> bool:
        """通过余额接口校验密钥；任何失败都视为无效。"""

        key = api_key if api_key is not None else getattr(self._settings, "deepseek_api_key", None)
        if not key:
            return False
        try:
            async with httpx.AsyncClient(timeout=self._timeout(), trust_env=False) as client:
                resp = await client.get(
                    self._settings.deepseek_balance_url,
                    headers={
                        "Authorization": f"Bearer {key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.warning("API key check failed", extra={"extra": {"error": type(e).__name__}})
            return False
        return resp.status_code == 200

    # ---- 辅助方法 ----

    def _timeout(self) -> httpx.Timeout:
        # 读超时交给聚合器的看门狗，推理模型两段输出之间可能停顿很久
        return httpx.Timeout(self._settings.http_timeout, read=None)

    def _http_error(self, resp: httpx.Response, headers: Mapping[str, str]) -> BusinessError:
        message = _redact(_error_message(resp), headers)
        if resp.status_code == 429:
            return RateLimitError(code="RATE_LIMIT", message=message or "DeepSeek rate limit", http_status=429)
        return ApiError(code="API_ERROR", message=message, http_status=resp.status_code)


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return resp.text


def _redact(message: str, headers: Mapping[str, str]) -> str:
    auth = headers.get("Authorization") or ""
    if not auth:
        return message
    message = message.replace(auth, "***")
    token = auth.split(" ", 1)[-1]
    if token:
        message = message.replace(token, "***")
    return message
