"""流式结果游标.

把可能很大的查询结果包装成惰性的异步迭代器：只进、单消费者、不可重启。
游标持有自己的会话，在以下任一情况发生时释放结果集和会话：

* 消费者读完全部记录；
* 消费者提前退出 ``async with`` 块或调用 ``aclose()``；
* 外部取消信号（``asyncio.Event``）被触发。

读取中途出错时提前结束迭代，已经产出的记录仍然有效。
"""

import asyncio
import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any, Generic, TypeVar

from sqlalchemy import Executable, Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncResult, AsyncSession, async_sessionmaker

from feedrelay.core.errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RowStream(Generic[T]):
    """可取消的流式查询结果."""

    def __init__(
        self,
        session: AsyncSession,
        result: AsyncResult[Any],
        mapper: Callable[[Row[Any]], T],
        cancel: asyncio.Event | None = None,
        name: str = "stream",
    ) -> None:
        self._session = session
        self._result = result
        self._mapper = mapper
        self._cancel = cancel
        self._name = name
        self._closed = False
        self.count = 0

    @classmethod
    async def open(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        statement: Executable,
        mapper: Callable[[Row[Any]], T],
        cancel: asyncio.Event | None = None,
        name: str = "stream",
    ) -> "RowStream[T]":
        """执行查询并返回游标；查询本身失败时抛出 StoreError."""
        session = session_factory()
        try:
            result = await session.stream(statement)
        except SQLAlchemyError as e:
            await session.close()
            msg = f"{name}: 查询失败: {e}"
            raise StoreError(msg) from e
        except BaseException:
            await session.close()
            raise
        return cls(session, result, mapper, cancel=cancel, name=name)

    @property
    def closed(self) -> bool:
        """是否已释放资源."""
        return self._closed

    def __aiter__(self) -> "RowStream[T]":
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration

        if self._cancel is not None and self._cancel.is_set():
            logger.info(f"{self._name}: 收到取消信号，已产出 {self.count} 条")
            await self.aclose()
            raise StopAsyncIteration

        try:
            row = await self._result.fetchone()
            if row is None:
                await self.aclose()
                raise StopAsyncIteration
            item = self._mapper(row)
        except StopAsyncIteration:
            raise
        except (SQLAlchemyError, ValueError, TypeError) as e:
            logger.warning(f"{self._name}: 读取中断，已产出 {self.count} 条: {e}")
            await self.aclose()
            raise StopAsyncIteration from e
        except BaseException:
            # 任务被取消时同样释放资源
            await asyncio.shield(self.aclose())
            raise

        self.count += 1
        return item

    async def aclose(self) -> None:
        """释放结果集和会话（可重复调用）."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._result.close()
        except SQLAlchemyError as e:
            logger.warning(f"{self._name}: 关闭结果集失败: {e}")
        finally:
            await self._session.close()

    async def __aenter__(self) -> "RowStream[T]":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def to_list(self) -> list[T]:
        """读完剩余记录（仅用于结果集较小的场景）."""
        async with self:
            return [item async for item in self]
