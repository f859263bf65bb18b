"""
集合仓储 (Collection Repository)

在 DocumentStore 之上提供带类型的集合访问，并用一把 asyncio.Lock 串行化
同一集合上的读-改-写操作（调度任务与 API 请求共享同一把锁）。

加载分两步：先尝试从存储加载；失败（尚未持久化或数据损坏）时换成内置默认集合并立即持久化。
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fleetwatch.storage.document_store import DocumentNotFound, DocumentStore, StoreError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class DocumentCollection(Generic[ModelT]):
    """一个命名集合，例如 alert_rules / scaling_policies / alerts。

    lock 只在单次操作的读-改-写期间持有；load/save 本身不加锁，由调用方包在
    ``async with collection.lock`` 中。

    _write_lock 只包住单次落盘：save 与补种默认集合都经过它，补种前在锁内重新读取，
    集合已被写入时直接返回存储中的内容，不会用默认集合覆盖。
    """

    def __init__(
        self,
        store: DocumentStore,
        name: str,
        model: type[ModelT],
        defaults: Optional[Callable[[], list[ModelT]]] = None,
    ) -> None:
        self.store = store
        self.name = name
        self.model = model
        self.defaults = defaults or list
        self.lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    async def load(self) -> list[ModelT]:
        try:
            documents = await self.store.load_all(self.name)
        except DocumentNotFound:
            logger.info("Collection %s not persisted yet, seeding defaults", self.name)
            return await self._seed()
        except StoreError as e:
            logger.warning("Collection %s unreadable (%s), falling back to defaults", self.name, e)
            return await self._seed()
        return self._validate(documents)

    def _validate(self, documents: list[dict]) -> list[ModelT]:
        items: list[ModelT] = []
        for doc in documents:
            try:
                items.append(self.model.model_validate(doc))
            except PydanticValidationError as e:
                logger.warning("Skipping invalid %s record %r: %s", self.name, doc.get("id"), e)
        return items

    async def _seed(self) -> list[ModelT]:
        async with self._write_lock:
            try:
                documents = await self.store.load_all(self.name)
            except StoreError:
                items = self.defaults()
                await self._write(items)
                return items
        return self._validate(documents)

    async def _write(self, items: list[ModelT]) -> None:
        await self.store.save_all(self.name, [item.model_dump(mode="json") for item in items])

    async def save(self, items: list[ModelT]) -> None:
        async with self._write_lock:
            await self._write(items)

    async def get(self, item_id: str) -> Optional[ModelT]:
        for item in await self.load():
            if getattr(item, "id", None) == item_id:
                return item
        return None
