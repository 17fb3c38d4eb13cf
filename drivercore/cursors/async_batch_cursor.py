# Copyright DataStax, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from types import TracebackType
from typing import AsyncIterator, Generic

from typing_extensions import override

from drivercore.codecs import (
    Decoder,
    NoOpFieldNameValidator,
    command_result_decoder,
)
from drivercore.connection import (
    AsyncConnection,
    AsyncConnectionSource,
    Borrowed,
    Owned,
)
from drivercore.constants import T
from drivercore.cursors.cursor import (
    AbstractBatchCursor,
    CursorState,
    FollowUp,
    get_more_reply_to_query_result,
)
from drivercore.exceptions import (
    CommandException,
    CursorException,
    CursorNotFoundException,
    translate_command_exception,
)
from drivercore.options import DriverOptions
from drivercore.results import QueryResult, ServerCursor
from drivercore.settings.defaults import (
    COMMAND_CURSOR_MIN_SERVER_VERSION,
    NEXT_BATCH_FIELD,
)

logger = logging.getLogger(__name__)


class AsyncBatchCursor(AbstractBatchCursor[T], Generic[T]):
    """
    A non-blocking cursor over the batches of results left on the server
    after a query or a cursor-returning command. This is the asyncio twin of
    `drivercore.cursors.BatchCursor`: the same arguments apply, with
    asynchronous connection sources and connections.

    Batches are retrieved by awaiting `next()`, which returns None once no
    more data is available, or by async iteration. A server cursor that keeps
    answering with empty batches is asked again after a pause, during which
    the event loop is free to run other tasks. Cancelling the awaiting task is
    the way to stop such a wait.

    Example:
        >>> cursor = AsyncBatchCursor(first_result, 0, 2, document_decoder, Owned(source))
        >>> async for batch in cursor:
        ...     print(len(batch))
        2
        2
        1

    Note:
        `close` is a regular (non-async) method, so that it can be called from
        any context. The kill of a live server cursor is scheduled as a task on
        the running event loop; outside of an event loop the kill is skipped
        (with a warning) and the server eventually times the cursor out.
    """

    _pending_tasks: set[asyncio.Task[None]]

    def __init__(
        self,
        first_result: QueryResult[T],
        limit: int,
        batch_size: int,
        decoder: Decoder[T],
        connection_source: Owned[AsyncConnectionSource]
        | Borrowed[AsyncConnectionSource]
        | None,
        connection: Owned[AsyncConnection] | Borrowed[AsyncConnection] | None = None,
        *,
        max_time_ms: int = 0,
        options: DriverOptions | None = None,
    ) -> None:
        super().__init__(
            first_result,
            limit=limit,
            batch_size=batch_size,
            decoder=decoder,
            connection_source=connection_source,
            connection=connection,
            max_time_ms=max_time_ms,
            options=options,
        )
        self._pending_tasks = set()
        follow_up = self._absorb(first_result)
        if follow_up == FollowUp.KILL_CURSOR:
            # the kill needs the event loop: it is scheduled, then resources go
            self._schedule_kill_and_release()
        elif follow_up == FollowUp.RELEASE:
            self._release_resources()

    def __aiter__(self) -> AsyncBatchCursor[T]:
        return self

    async def __anext__(self) -> list[T]:
        batch = await self.next()
        if batch is None:
            raise StopAsyncIteration
        return batch

    async def __aenter__(self) -> AsyncBatchCursor[T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        self.close()
        await self.wait_closed()

    async def next(self) -> list[T] | None:
        """
        Get the next batch, fetching it if needed.

        As long as the server keeps the cursor alive and answers with empty
        batches (as happens with tailable cursors), the cursor keeps asking,
        pausing between requests, until data arrives or the cursor is exhausted.

        Returns:
            the next batch, or None if no more data is available.

        Raises:
            CursorException: if the cursor is closed (before or during the call).
        """

        self._ensure_open()
        while not self._has_buffered_batch():
            if self._is_exhausted():
                return None
            await self._get_more()
            if not self._has_buffered_batch() and not self._is_exhausted():
                await self._wait_before_retry()
        return self._take_batch()

    async def try_next(self) -> list[T] | None:
        """
        Return the next batch if it is available after at most one fetch,
        without ever waiting for new data to arrive.

        Returns:
            the next batch, or None if none was available.

        Raises:
            CursorException: if the cursor is closed.
        """

        self._ensure_open()
        if not self._has_buffered_batch() and not self._is_exhausted():
            await self._get_more()
        if self._has_buffered_batch():
            return self._take_batch()
        return None

    @override
    def close(self) -> None:
        """
        Close the cursor. If a server cursor is still alive, its kill is
        scheduled on the running event loop (an error in the kill is only
        logged); the owned resources are released once the kill is done.
        Calling `close` on a closed cursor has no effect.

        Warning:
            called with no running event loop, `close` cannot reach the server:
            the kill of a live server cursor is skipped (a warning is logged),
            the owned resources are released at once and the server-side cursor
            is left to the server's idle timeout. Close the cursor from within
            the event loop (e.g. with `async with`) to have it killed.
        """

        if self._closed:
            return
        self._closed = True
        self._schedule_kill_and_release()

    async def wait_closed(self) -> None:
        """Wait for the completion of the cleanup scheduled by `close`, if any."""
        if self._pending_tasks:
            await asyncio.gather(*self._pending_tasks)

    async def _wait_before_retry(self) -> None:
        await asyncio.sleep(self._options.tailable_poll_interval_ms / 1000.0)
        if self._closed:
            raise CursorException(
                text="Cursor was closed while waiting for the next batch.",
                cursor_state=CursorState.CLOSED.value,
            )

    def _schedule_kill_and_release(self) -> None:
        server_cursor = self._progress.server_cursor
        if server_cursor is None:
            self._release_resources()
            return
        self._progress = self._progress.without_server_cursor()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                f"no running event loop to kill cursor {server_cursor.id} "
                f"on {server_cursor.address}: the kill is skipped"
            )
            self._release_resources()
            return
        task = loop.create_task(self._kill_and_release(server_cursor))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _kill_and_release(self, server_cursor: ServerCursor) -> None:
        try:
            await self._kill(server_cursor)
        finally:
            self._release_resources()

    @asynccontextmanager
    async def _fetch_connection(self) -> AsyncIterator[AsyncConnection]:
        if self._connection_handle is not None:
            yield self._connection_handle.resource  # type: ignore[misc]
            return
        if self._source_handle is None:
            raise ValueError("No connection source available to the cursor.")
        connection = await self._source_handle.resource.get_connection()  # type: ignore[union-attr,misc]
        try:
            yield connection
        finally:
            connection.release()

    async def _fetch_batch(
        self, connection: AsyncConnection, server_cursor: ServerCursor
    ) -> QueryResult[T]:
        description = connection.description
        logger.info(
            f"cursor fetching a batch: cursor {server_cursor.id} "
            f"on {self._namespace}, async"
        )
        if description.server_is_at_least(COMMAND_CURSOR_MIN_SERVER_VERSION):
            try:
                reply = await connection.command(
                    self._namespace.database_name,
                    self._get_more_command(server_cursor),
                    False,
                    NoOpFieldNameValidator(),
                    command_result_decoder(self._decoder, NEXT_BATCH_FIELD),
                )
            except CommandException as exc:
                raise translate_command_exception(exc, server_cursor)
            result = get_more_reply_to_query_result(reply, description.server_address)
        else:
            result = await connection.get_more(
                self._namespace,
                server_cursor.id,
                self._number_to_return(),
                self._decoder,
            )
        logger.info(
            f"cursor finished fetching a batch: cursor {server_cursor.id} "
            f"on {self._namespace}, {len(result.results)} documents, async"
        )
        return result

    async def _get_more(self) -> None:
        server_cursor = self._progress.server_cursor
        if server_cursor is None:
            return
        try:
            async with self._fetch_connection() as connection:
                result = await self._fetch_batch(connection, server_cursor)
                if self._closed:
                    # closed by another task while the fetch was in flight
                    raise CursorException(
                        text="Cursor was closed while fetching the next batch.",
                        cursor_state=CursorState.CLOSED.value,
                    )
                follow_up = self._absorb(result)
                if follow_up == FollowUp.KILL_CURSOR:
                    killed_cursor = self._progress.server_cursor
                    self._progress = self._progress.without_server_cursor()
                    if killed_cursor is not None:
                        await self._kill(killed_cursor, connection)
        except CursorNotFoundException:
            # nothing left to kill on the server
            self._progress = self._progress.without_server_cursor()
            self.close()
            raise
        except Exception:
            self.close()
            raise
        if follow_up != FollowUp.NONE:
            self._release_resources()

    async def _kill(
        self,
        server_cursor: ServerCursor,
        connection: AsyncConnection | None = None,
    ) -> None:
        logger.info(
            f"killing cursor {server_cursor.id} on {server_cursor.address}, async"
        )
        try:
            if connection is not None:
                await connection.kill_cursors(self._namespace, [server_cursor.id])
            else:
                async with self._fetch_connection() as fetch_connection:
                    await fetch_connection.kill_cursors(
                        self._namespace, [server_cursor.id]
                    )
        except Exception as exc:
            logger.warning(
                f"could not kill cursor {server_cursor.id} on "
                f"{server_cursor.address}: {exc}"
            )
