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


"""
The fetch protocol shared by the blocking and the asynchronous batch cursors.

The functions here are free of I/O: the cursors perform the network calls and
feed their outcome to `advance`, which returns the new progress together
with the follow-up action the cursor must take.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Generic, Union

from drivercore.codecs import Decoder
from drivercore.connection import (
    AsyncConnection,
    AsyncConnectionSource,
    Borrowed,
    Connection,
    ConnectionSource,
    Owned,
)
from drivercore.constants import DocumentType, T
from drivercore.exceptions import CursorException
from drivercore.options import DriverOptions, FullDriverOptions, defaultDriverOptions
from drivercore.results import (
    Namespace,
    QueryResult,
    ServerAddress,
    ServerCursor,
    cursor_document_to_query_result,
)
from drivercore.settings.defaults import NEXT_BATCH_FIELD

logger = logging.getLogger(__name__)

SourceHandle = Union[
    Owned[ConnectionSource],
    Borrowed[ConnectionSource],
    Owned[AsyncConnectionSource],
    Borrowed[AsyncConnectionSource],
]
ConnectionHandle = Union[
    Owned[Connection],
    Borrowed[Connection],
    Owned[AsyncConnection],
    Borrowed[AsyncConnection],
]


class CursorState(Enum):
    """
    This enum expresses the possible states for a batch cursor.

    Values:
        HAS_BATCH: a batch is ready to be delivered without network calls.
        AWAITING_FETCH: nothing is buffered, the next batch requires a fetch.
        EXHAUSTED: no batch is buffered and no server cursor remains. Retrieval
            calls report "no more data" without touching the network.
        CLOSED: the cursor was closed. Any retrieval call is an error.
    """

    HAS_BATCH = "has_batch"
    AWAITING_FETCH = "awaiting_fetch"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


class FollowUp(Enum):
    """What a cursor must do after having absorbed a batch."""

    # the server cursor stays in use
    NONE = "none"
    # the server cursor is alive but no longer needed: kill it, then release
    KILL_CURSOR = "kill_cursor"
    # no server cursor remains: release the owned resources
    RELEASE = "release"


@dataclass(frozen=True)
class CursorProgress(Generic[T]):
    """
    The part of a cursor state that evolves with each fetch.

    Attributes:
        next_batch: the batch not yet delivered to the caller, if any.
        server_cursor: the live server-side cursor, if any.
        delivered: how many documents were received so far (including
            those in `next_batch`).
    """

    next_batch: list[T] | None = None
    server_cursor: ServerCursor | None = None
    delivered: int = 0

    def take_batch(self) -> tuple[CursorProgress[T], list[T]]:
        if self.next_batch is None:
            raise ValueError("No batch to take.")
        return replace(self, next_batch=None), self.next_batch

    def without_server_cursor(self) -> CursorProgress[T]:
        return replace(self, server_cursor=None)


def limit_reached(limit: int, delivered: int) -> bool:
    return abs(limit) != 0 and delivered >= abs(limit)


def number_to_return(limit: int, batch_size: int, delivered: int) -> int:
    """
    The number of documents to request in the next fetch, in the signed
    form used by the legacy wire protocol: when the batch size caps the
    request it is returned with its sign. Zero lets the server choose.
    """

    if abs(limit) != 0:
        remaining = abs(limit) - delivered
        if batch_size != 0 and remaining > abs(batch_size):
            return batch_size
        return remaining
    return batch_size


def requested_count(limit: int, batch_size: int, delivered: int) -> int:
    """The number of documents to ask for in the next fetch, never negative."""
    return abs(number_to_return(limit, batch_size, delivered))


def is_final_batch(limit: int, batch_size: int) -> bool:
    """
    A negative batch size or a negative limit mean that the batch at hand
    is the last one, whatever the server says about its cursor.
    """
    return batch_size < 0 or limit < 0


def advance(
    progress: CursorProgress[T],
    result: QueryResult[T],
    *,
    limit: int,
    batch_size: int,
) -> tuple[CursorProgress[T], FollowUp]:
    """
    Absorb a batch (the first one, or one obtained by a fetch).

    The returned progress holds the batch (if non-empty), the updated count
    and the server cursor reported by the server. The follow-up tells the
    cursor what to do with the server-side resources:
        - the server reported no cursor: RELEASE;
        - the limit is reached with a live cursor: KILL_CURSOR (the server
          cursor is kept in the progress so that it can be killed);
        - a negative batch size or limit made this the final batch: the
          server cursor is dropped without a kill, RELEASE;
        - otherwise NONE.
    """

    new_progress: CursorProgress[T] = CursorProgress(
        next_batch=list(result.results) if result.results else None,
        server_cursor=result.cursor,
        delivered=progress.delivered + len(result.results),
    )
    if new_progress.server_cursor is None:
        return new_progress, FollowUp.RELEASE
    if limit_reached(limit, new_progress.delivered):
        return new_progress, FollowUp.KILL_CURSOR
    if is_final_batch(limit, batch_size):
        logger.info(
            f"final batch received, dropping cursor {new_progress.server_cursor.id} "
            "without a kill"
        )
        return new_progress.without_server_cursor(), FollowUp.RELEASE
    return new_progress, FollowUp.NONE


def get_more_command(
    namespace: Namespace,
    server_cursor: ServerCursor,
    *,
    limit: int,
    batch_size: int,
    delivered: int,
    max_time_ms: int,
) -> dict[str, Any]:
    command: dict[str, Any] = {
        "getMore": server_cursor.id,
        "collection": namespace.collection_name,
    }
    count = requested_count(limit, batch_size, delivered)
    if count != 0:
        command["batchSize"] = count
    if max_time_ms != 0:
        command["maxTimeMS"] = max_time_ms
    return command


def get_more_reply_to_query_result(
    reply: DocumentType,
    server_address: ServerAddress,
) -> QueryResult[Any]:
    return cursor_document_to_query_result(
        reply.get("cursor"),  # type: ignore[arg-type]
        server_address,
        NEXT_BATCH_FIELD,
    )


class AbstractBatchCursor(ABC, Generic[T]):
    """
    A cursor over the batches of results of a query or command, as left on
    the server after the first batch has been obtained.

    This class is not meant to be directly instantiated by the user, rather it
    is a superclass capturing the mechanisms common to the blocking and the
    asynchronous batch cursors: the limit and batch-size arithmetic, the
    bookkeeping of the server cursor and the ownership of the resources.

    The cursor releases the connection source and the connection it was given
    as `Owned` handles exactly once, when it gets exhausted or closed, and never
    releases those given as `Borrowed` handles.
    """

    _namespace: Namespace
    _server_address: ServerAddress
    _limit: int
    _batch_size: int
    _decoder: Decoder[T]
    _max_time_ms: int
    _options: FullDriverOptions
    _progress: CursorProgress[T]
    _source_handle: SourceHandle | None
    _connection_handle: ConnectionHandle | None
    _closed: bool
    _resources_released: bool

    def __init__(
        self,
        first_result: QueryResult[T],
        *,
        limit: int,
        batch_size: int,
        decoder: Decoder[T],
        connection_source: SourceHandle | None,
        connection: ConnectionHandle | None,
        max_time_ms: int,
        options: DriverOptions | None,
    ) -> None:
        if first_result.cursor is not None and connection_source is None:
            raise ValueError(
                "A connection source is required when the first result "
                "leaves a server cursor open."
            )
        self._namespace = first_result.namespace
        self._server_address = first_result.server_address
        self._limit = limit
        self._batch_size = batch_size
        self._decoder = decoder
        self._max_time_ms = max_time_ms
        self._options = defaultDriverOptions.with_override(options)
        self._source_handle = connection_source
        self._connection_handle = connection
        self._closed = False
        self._resources_released = False
        self._progress = CursorProgress()

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}("{self._namespace}", '
            f"{self.state.value}, "
            f"delivered so far: {self._progress.delivered})"
        )

    def _absorb(self, result: QueryResult[T]) -> FollowUp:
        self._progress, follow_up = advance(
            self._progress,
            result,
            limit=self._limit,
            batch_size=self._batch_size,
        )
        return follow_up

    def _take_batch(self) -> list[T]:
        self._progress, batch = self._progress.take_batch()
        return batch

    def _get_more_command(self, server_cursor: ServerCursor) -> dict[str, Any]:
        return get_more_command(
            self._namespace,
            server_cursor,
            limit=self._limit,
            batch_size=self._batch_size,
            delivered=self._progress.delivered,
            max_time_ms=self._max_time_ms,
        )

    def _number_to_return(self) -> int:
        return number_to_return(self._limit, self._batch_size, self._progress.delivered)

    def _release_resources(self) -> None:
        if self._resources_released:
            return
        self._resources_released = True
        # release in reverse order of acquisition: connection, then source
        try:
            if self._connection_handle is not None:
                self._connection_handle.release()
        finally:
            if self._source_handle is not None:
                self._source_handle.release()

    @abstractmethod
    def close(self) -> None: ...

    def _ensure_open(self) -> None:
        if self._closed:
            raise CursorException(
                text="Cursor has been closed.",
                cursor_state=CursorState.CLOSED.value,
            )

    def _has_buffered_batch(self) -> bool:
        return self._progress.next_batch is not None

    def _is_exhausted(self) -> bool:
        return self._progress.server_cursor is None or limit_reached(
            self._limit, self._progress.delivered
        )

    @property
    def state(self) -> CursorState:
        """
        The current state of this cursor.

        Returns:
            a value in `drivercore.cursors.CursorState`.
        """

        if self._closed:
            return CursorState.CLOSED
        if self._has_buffered_batch():
            return CursorState.HAS_BATCH
        if self._is_exhausted():
            return CursorState.EXHAUSTED
        return CursorState.AWAITING_FETCH

    @property
    def namespace(self) -> Namespace:
        return self._namespace

    @property
    def server_address(self) -> ServerAddress:
        """The address of the server holding (or having held) the cursor."""
        return self._server_address

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def batch_size(self) -> int:
        """
        The batch size used for the next fetches. It can be changed at any time:
        the change affects the fetches issued from then on, never the batch
        already received. A negative value makes the next batch the last one.
        """

        return self._batch_size

    @batch_size.setter
    def batch_size(self, batch_size: int) -> None:
        self._batch_size = batch_size

    @property
    def delivered(self) -> int:
        """The number of documents received so far from the server."""
        return self._progress.delivered

    @property
    def server_cursor(self) -> ServerCursor | None:
        """
        The identifier of the server-side cursor, or None if none remains.

        Raises:
            CursorException: if the cursor has been closed.
        """

        self._ensure_open()
        return self._progress.server_cursor
