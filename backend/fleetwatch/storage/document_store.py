"""
文档存储模块 (Document Store Module)

按名称保存整份 JSON 文档集合（规则、策略、告警），只提供整体加载和整体保存，
没有局部更新接口。集合不存在或无法解析时抛出 StoreError，由上层决定回退策略。

Stores whole named JSON collections (rules, policies, alerts) with load-all /
save-all semantics only. A missing or unreadable collection raises StoreError
and the caller decides the fallback.

Backends:
    - MemoryDocumentStore: 进程内字典，用于测试和 store_backend=memory
    - JsonFileDocumentStore: data_dir 下每个集合一个 JSON 文件
    - RedisDocumentStore: 每个集合一个 Redis 字符串键
"""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

Document = dict[str, Any]


class StoreError(Exception):
    """集合加载失败 (Collection could not be loaded)"""


class DocumentNotFound(StoreError):
    """集合尚未持久化 (Collection has never been persisted)"""


class DocumentStore(ABC):
    """文档存储接口。"""

    @abstractmethod
    async def load_all(self, name: str) -> list[Document]:
        """加载整个集合；不存在时抛出 DocumentNotFound。"""

    @abstractmethod
    async def save_all(self, name: str, documents: list[Document]) -> None:
        """用 documents 整体替换集合。"""

    async def close(self) -> None:
        return None


class MemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self._collections: dict[str, list[Document]] = {}

    async def load_all(self, name: str) -> list[Document]:
        if name not in self._collections:
            raise DocumentNotFound(name)
        return copy.deepcopy(self._collections[name])

    async def save_all(self, name: str, documents: list[Document]) -> None:
        self._collections[name] = copy.deepcopy(documents)


class JsonFileDocumentStore(DocumentStore):
    """data_dir/<name>.json，写入先落临时文件再原子替换。"""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)

    def _path(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def _read(self, name: str) -> list[Document]:
        path = self._path(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise DocumentNotFound(name) from None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise StoreError(f"{path} does not contain a JSON array")
        return data

    def _write(self, name: str, documents: list[Document]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(name)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(documents, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)

    async def load_all(self, name: str) -> list[Document]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read, name)

    async def save_all(self, name: str, documents: list[Document]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, name, documents)


class RedisDocumentStore(DocumentStore):
    """每个集合保存为一个 JSON 字符串键：<prefix>:<name>。"""

    def __init__(self, redis_client, key_prefix: str = "fleetwatch") -> None:
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}:{name}"

    async def load_all(self, name: str) -> list[Document]:
        raw = await self.redis.get(self._key(name))
        if raw is None:
            raise DocumentNotFound(name)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise StoreError(f"{self._key(name)} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise StoreError(f"{self._key(name)} does not contain a JSON array")
        return data

    async def save_all(self, name: str, documents: list[Document]) -> None:
        await self.redis.set(self._key(name), json.dumps(documents, ensure_ascii=False))
