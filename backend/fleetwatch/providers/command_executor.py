"""
伸缩命令执行器，支持 dry-run 模式。

执行器把期望实例数写入目标服务。失败通过 ScaleCommandResult(success=False) 带内返回，
不抛出异常。默认 executor=dry_run，只修改内存中的服务容量；生产环境通过配置切换到
HttpCommandExecutor 调用集群管理 API。
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import httpx

from fleetwatch.core.exceptions import TransientProviderFailure
from fleetwatch.models.scaling import ScaleCommandResult, ServiceState

logger = logging.getLogger(__name__)


class CommandExecutor(ABC):
    """伸缩命令执行器接口，记录每次执行结果。"""

    def __init__(self) -> None:
        self._execution_log: list[ScaleCommandResult] = []

    @property
    def execution_log(self) -> list[ScaleCommandResult]:
        return list(self._execution_log)

    def _record(self, result: ScaleCommandResult) -> ScaleCommandResult:
        self._execution_log.append(result)
        return result

    @abstractmethod
    async def describe_service(self, service_id: str) -> Optional[ServiceState]:
        """查询服务当前期望实例数；服务不存在或查询失败时返回 None。"""

    @abstractmethod
    async def set_desired_count(self, service_id: str, count: int) -> ScaleCommandResult:
        """把服务的期望实例数设置为 count。"""

    async def close(self) -> None:
        return None


class DryRunCommandExecutor(CommandExecutor):
    """内存中的服务容量表，只记录不调用任何外部系统。"""

    def __init__(self, services: Optional[dict[str, int]] = None) -> None:
        super().__init__()
        self.services: dict[str, int] = dict(services or {})

    async def describe_service(self, service_id: str) -> Optional[ServiceState]:
        if service_id not in self.services:
            return None
        return ServiceState(service_id=service_id, current_desired_count=self.services[service_id])

    async def set_desired_count(self, service_id: str, count: int) -> ScaleCommandResult:
        if service_id not in self.services:
            logger.warning("[DRY RUN] service not found: %s", service_id)
            return self._record(ScaleCommandResult(success=False, message=f"Service not found: {service_id}"))
        previous = self.services[service_id]
        self.services[service_id] = count
        logger.info("[DRY RUN] %s desired count %d -> %d", service_id, previous, count)
        return self._record(
            ScaleCommandResult(
                success=True,
                message=f"[DRY RUN] Service {service_id} scaled to {count} instances",
                previous_count=previous,
                new_count=count,
            )
        )


class HttpCommandExecutor(CommandExecutor):
    """通过集群管理 REST API 调整服务容量。

    GET  /api/v1/services/{service_id}                -> {"desired_count": int}
    PUT  /api/v1/services/{service_id}/desired-count  <- {"desired_count": int}
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__()
        self.base_url = base_url
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    @staticmethod
    def _path(service_id: str) -> str:
        return f"/api/v1/services/{quote(service_id, safe='')}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """发送请求；连接失败和 5xx 统一转成 TransientProviderFailure。404 原样返回。"""
        client = await self._get_client()
        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransientProviderFailure(f"{method} {path} failed: {e}") from e
        if resp.status_code >= 500:
            raise TransientProviderFailure(f"{method} {path} returned {resp.status_code}")
        return resp

    async def describe_service(self, service_id: str) -> Optional[ServiceState]:
        try:
            resp = await self._request("GET", self._path(service_id))
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            data = resp.json()
            return ServiceState(service_id=service_id, current_desired_count=int(data["desired_count"]))
        except (TransientProviderFailure, httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to describe service {service_id}: {e}")
            return None

    async def set_desired_count(self, service_id: str, count: int) -> ScaleCommandResult:
        state = await self.describe_service(service_id)
        if state is None:
            return self._record(ScaleCommandResult(success=False, message=f"Service not found: {service_id}"))

        try:
            resp = await self._request(
                "PUT", f"{self._path(service_id)}/desired-count", json={"desired_count": count}
            )
            resp.raise_for_status()
        except (TransientProviderFailure, httpx.HTTPError) as e:
            logger.warning(f"Failed to scale service {service_id}: {e}")
            return self._record(ScaleCommandResult(success=False, message=str(e), previous_count=state.current_desired_count))

        return self._record(
            ScaleCommandResult(
                success=True,
                message=f"Service {service_id} scaled to {count} instances",
                previous_count=state.current_desired_count,
                new_count=count,
            )
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
