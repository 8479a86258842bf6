"""
中心节点 HTTP 客户端

封装对 Collector 的所有请求。网络错误、超时和非 2xx 响应
统一转换为 TransportError，由调用方决定是否计入失败次数。
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import TransportError

logger = logging.getLogger(__name__)


class CollectorClient:
    """Collector API 客户端"""

    def __init__(
        self,
        server_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            server_url: Collector 地址，如 http://localhost:3000
            api_key: 注册后获得的凭据
            timeout: 默认请求超时（秒）
            transport: 自定义传输层（测试时传入 MockTransport / ASGITransport）
        """
        self.server_url = server_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.server_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CollectorClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise TransportError("No API key, register first")
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        发送请求并解析 JSON 响应

        Raises:
            TransportError: 网络错误、超时或非 2xx 响应
        """
        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise TransportError(
                f"{method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {path} returned invalid JSON") from e

    async def health(self) -> Dict[str, Any]:
        """探测 Collector 是否可用"""
        return await self._request("GET", "/api/health")

    async def register(self, name: str, pc_id: Optional[str] = None) -> Dict[str, Any]:
        """
        注册握手

        携带 pc_id 重注册时需附带当前凭据。

        Returns:
            {"id": ..., "apiKey": ..., "name": ..., "registrationDate": ..., "created": ...}
        """
        payload = {"name": name}
        if pc_id:
            payload["id"] = pc_id
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        data = await self._request("POST", "/api/pcs/register", json=payload, headers=headers)
        self.api_key = data["apiKey"]
        return data

    async def heartbeat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """发送心跳"""
        return await self._request("POST", "/api/heartbeat", json=payload, headers=self._auth_headers())

    async def report_error(
        self,
        error_type: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """上报错误"""
        payload = {"type": error_type, "message": message, "details": details}
        return await self._request("POST", "/api/report-error", json=payload, headers=self._auth_headers())

    async def apps_status(
        self,
        applications: List[Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """上报应用清单（整体替换）"""
        return await self._request(
            "POST",
            "/api/apps-status",
            json={"applications": applications},
            headers=self._auth_headers(),
            timeout=timeout,
        )
