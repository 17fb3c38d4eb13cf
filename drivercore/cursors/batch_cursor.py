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

import logging
import threading
from contextlib import contextmanager
from types import TracebackType
from typing import Generic, Iterator

from typing_extensions import override

from drivercore.codecs import (
    Decoder,
    NoOpFieldNameValidator,
    command_result_decoder,
)
from drivercore.connection import Borrowed, Connection, ConnectionSource, Owned
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
    CursorInterruptedException,
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


class BatchCursor(AbstractBatchCursor[T], Generic[T]):
    """
    A blocking cursor over the batches of results left on the server after
    a query or a cursor-returning command.

    The cursor starts from the first batch (the `first_result`) and fetches
    the following ones on demand, one request per batch, honouring the limit
    and the batch size. Iterating over the cursor yields whole batches.

    Example:
        >>> with BatchCursor(first_result, 0, 2, document_decoder, Owned(source)) as cursor:
        ...     for batch in cursor:
        ...         print(len(batch))
        2
        2
        1

    Args:
        first_result: the batch received with the query, and the server
            cursor (if any) that was left open.
        limit: the maximum number of documents to return overall, 0 for
            no limit. A negative value means "at most abs(limit) documents,
            in a single batch".
        batch_size: the number of documents to ask for in each fetch, 0 to
            let the server choose. A negative value makes the next batch
            the last one.
        decoder: the decoder for the individual documents.
        connection_source: the source to lease connections from, as an
            `Owned` handle (the cursor releases it once done) or a `Borrowed`
            one. Required if the first result leaves a server cursor open.
        connection: a connection the cursor can use instead of leasing a new
            one from the source at each fetch. It also serves for the kill
            issued at construction if the limit is already reached.
        max_time_ms: a server-side time bound for each fetch, 0 for none.
        options: overrides of the driver settings, such as the interval
            between fetches when the server returns empty batches.

    Note:
        Instances are meant to be used by one thread at a time. The only
        exception is waking up a thread stuck waiting for new data in
        `has_next` (for a tailable cursor): `close` or `interrupt` can be
        called from another thread to that end.
    """

    _wakeup: threading.Event
    _interrupted: bool

    def __init__(
        self,
        first_result: QueryResult[T],
        limit: int,
        batch_size: int,
        decoder: Decoder[T],
        connection_source: Owned[ConnectionSource]
        | Borrowed[ConnectionSource]
        | None,
        connection: Owned[Connection] | Borrowed[Connection] | None = None,
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
        self._wakeup = threading.Event()
        self._interrupted = False
        follow_up = self._absorb(first_result)
        if follow_up == FollowUp.KILL_CURSOR:
            self._kill_server_cursor(
                connection.resource if connection is not None else None
            )
        if follow_up != FollowUp.NONE:
            self._release_resources()

    def __iter__(self) -> BatchCursor[T]:
        return self

    def __next__(self) -> list[T]:
        if not self.has_next():
            raise StopIteration
        return self._take_batch()

    next = __next__

    def __enter__(self) -> BatchCursor[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        self.close()

    def has_next(self) -> bool:
        """
        Whether a further batch is available, fetching it if needed.

        As long as the server keeps the cursor alive and answers with empty
        batches (as happens with tailable cursors), this call keeps asking
        the server, pausing between requests, and only returns when data
        arrives or the cursor is exhausted.

        Returns:
            True if a batch can be obtained with `next()`.

        Raises:
            CursorException: if the cursor is closed (before or during the call).
            CursorInterruptedException: if `interrupt` is invoked during a wait.
        """

        self._ensure_open()
        while not self._has_buffered_batch():
            if self._is_exhausted():
                return False
            self._get_more()
            if not self._has_buffered_batch() and not self._is_exhausted():
                self._wait_before_retry()
        return True

    def try_next(self) -> list[T] | None:
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
            self._get_more()
        if self._has_buffered_batch():
            return self._take_batch()
        return None

    def interrupt(self) -> None:
        """
        Wake up a thread waiting for new data in `has_next`, making the waiting
        call raise a CursorInterruptedException. An interruption requested
        while no wait is in progress applies to the next wait.

        After an interruption, the only call guaranteed to behave is `close`:
        the caller is expected to close the cursor.
        """

        self._interrupted = True
        self._wakeup.set()

    @override
    def close(self) -> None:
        """
        Close the cursor. If a server cursor is still alive, it is killed (an
        error in doing so is only logged). The owned resources are released.
        Calling `close` on a closed cursor has no effect.
        """

        if self._closed:
            return
        try:
            self._kill_server_cursor()
        finally:
            self._closed = True
            self._release_resources()
            self._wakeup.set()

    def _wait_before_retry(self) -> None:
        interval_s = self._options.tailable_poll_interval_ms / 1000.0
        self._wakeup.wait(interval_s)
        if self._interrupted:
            self._interrupted = False
            self._wakeup.clear()
            raise CursorInterruptedException(
                text="Interrupted while waiting for the next batch."
            )
        if self._closed:
            raise CursorException(
                text="Cursor was closed while waiting for the next batch.",
                cursor_state=CursorState.CLOSED.value,
            )

    @contextmanager
    def _fetch_connection(self) -> Iterator[Connection]:
        if self._connection_handle is not None:
            yield self._connection_handle.resource  # type: ignore[misc]
            return
        if self._source_handle is None:
            raise ValueError("No connection source available to the cursor.")
        connection = self._source_handle.resource.get_connection()  # type: ignore[union-attr]
        try:
            yield connection
        finally:
            connection.release()

    def _fetch_batch(
        self, connection: Connection, server_cursor: ServerCursor
    ) -> QueryResult[T]:
        description = connection.description
        logger.info(
            f"cursor fetching a batch: cursor {server_cursor.id} on {self._namespace}"
        )
        if description.server_is_at_least(COMMAND_CURSOR_MIN_SERVER_VERSION):
            try:
                reply = connection.command(
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
            result = connection.get_more(
                self._namespace,
                server_cursor.id,
                self._number_to_return(),
                self._decoder,
            )
        logger.info(
            f"cursor finished fetching a batch: cursor {server_cursor.id} "
            f"on {self._namespace}, {len(result.results)} documents"
        )
        return result

    def _get_more(self) -> None:
        server_cursor = self._progress.server_cursor
        if server_cursor is None:
            return
        try:
            with self._fetch_connection() as connection:
                result = self._fetch_batch(connection, server_cursor)
                if self._closed:
                    # closed by another thread while the fetch was in flight
                    raise CursorException(
                        text="Cursor was closed while fetching the next batch.",
                        cursor_state=CursorState.CLOSED.value,
                    )
                follow_up = self._absorb(result)
                if follow_up == FollowUp.KILL_CURSOR:
                    self._kill_server_cursor(connection)
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

    def _kill_server_cursor(self, connection: Connection | None = None) -> None:
        server_cursor = self._progress.server_cursor
        if server_cursor is None:
            return
        self._progress = self._progress.without_server_cursor()
        logger.info(f"killing cursor {server_cursor.id} on {server_cursor.address}")
        try:
            if connection is not None:
                connection.kill_cursors(self._namespace, [server_cursor.id])
            else:
                with self._fetch_connection() as fetch_connection:
                    fetch_connection.kill_cursors(self._namespace, [server_cursor.id])
        except Exception as exc:
            logger.warning(
                f"could not kill cursor {server_cursor.id} on "
                f"{server_cursor.address}: {exc}"
            )
