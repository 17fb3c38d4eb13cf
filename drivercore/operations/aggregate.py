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
from typing import Any, Generic, Sequence

from drivercore.codecs import Decoder, command_result_decoder
from drivercore.connection import (
    AsyncConnection,
    AsyncConnectionSource,
    AsyncReadBinding,
    Connection,
    ConnectionDescription,
    ConnectionSource,
    Owned,
    ReadBinding,
)
from drivercore.constants import CommandType, DocumentType, T
from drivercore.cursors import AsyncBatchCursor, BatchCursor
from drivercore.exceptions import InvalidOperationException
from drivercore.operations.command_helper import (
    async_execute_read_command,
    execute_read_command,
)
from drivercore.options import DriverOptions
from drivercore.read_preference import DEFAULT_READ_CONCERN, ReadConcern
from drivercore.results import (
    Namespace,
    QueryResult,
    cursor_document_to_query_result,
)
from drivercore.settings.defaults import (
    AGGREGATE_CURSOR_MIN_SERVER_VERSION,
    FIRST_BATCH_FIELD,
    INLINE_RESULT_FIELD,
    READ_CONCERN_MIN_SERVER_VERSION,
)
from drivercore.utils.meta import warn_deprecated_setting

logger = logging.getLogger(__name__)


class AggregateOperation(Generic[T]):
    """
    An aggregation pipeline run against a collection, whose results are
    returned through a batch cursor.

    Servers able to return aggregation results through a cursor are asked
    to do so (unless `use_cursor` is False); older servers return all results
    inline in a single reply, which then makes the one and only batch of the
    cursor.

    Example:
        >>> operation = AggregateOperation(
        ...     Namespace("db", "coll"),
        ...     [{"$match": {"x": {"$gt": 1}}}],
        ...     document_decoder,
        ...     batch_size=100,
        ... )
        >>> with operation.execute(binding) as cursor:
        ...     for batch in cursor:
        ...         process(batch)

    Args:
        namespace: the collection to aggregate.
        pipeline: the list of aggregation stages.
        decoder: the decoder for the result documents.
        allow_disk_use: whether the server may write temporary files. None
            leaves the setting unspecified.
        batch_size: the number of documents per batch. None lets the server
            choose.
        max_time_ms: a server-side time bound for the operation, 0 for none.
        use_cursor: whether to have the results returned through a cursor.
            None means "whenever the server supports it". Deprecated when False.
        read_concern: the read concern for the operation.
        options: overrides of the driver settings, handed to the cursor.
    """

    def __init__(
        self,
        namespace: Namespace,
        pipeline: Sequence[DocumentType],
        decoder: Decoder[T],
        *,
        allow_disk_use: bool | None = None,
        batch_size: int | None = None,
        max_time_ms: int = 0,
        use_cursor: bool | None = None,
        read_concern: ReadConcern = DEFAULT_READ_CONCERN,
        options: DriverOptions | None = None,
    ) -> None:
        if use_cursor is False:
            warn_deprecated_setting(
                "use_cursor",
                deprecated_in="0.1.0",
                details="Aggregation results are returned through a cursor whenever possible.",
            )
        self.namespace = namespace
        self.pipeline = list(pipeline)
        self.decoder = decoder
        self.allow_disk_use = allow_disk_use
        self.batch_size = batch_size
        self.max_time_ms = max_time_ms
        self.use_cursor = use_cursor
        self.read_concern = read_concern
        self.options = options

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}("{self.namespace}", '
            f"pipeline=<{len(self.pipeline)} stages>)"
        )

    def _uses_cursor(self, description: ConnectionDescription) -> bool:
        return self.use_cursor is not False and description.server_is_at_least(
            AGGREGATE_CURSOR_MIN_SERVER_VERSION
        )

    def _check_read_concern(self, description: ConnectionDescription) -> None:
        if not self.read_concern.is_server_default and not description.server_is_at_least(
            READ_CONCERN_MIN_SERVER_VERSION
        ):
            raise InvalidOperationException(
                f"ReadConcern not supported by server version "
                f"{'.'.join(str(part) for part in description.server_version)}"
            )

    def command_document(self, description: ConnectionDescription) -> CommandType:
        """
        The aggregate command, as sent to the server described by `description`.
        """

        command: CommandType = {
            "aggregate": self.namespace.collection_name,
            "pipeline": list(self.pipeline),
        }
        if self.max_time_ms > 0:
            command["maxTimeMS"] = self.max_time_ms
        if self._uses_cursor(description):
            cursor_options: dict[str, Any] = {}
            if self.batch_size is not None:
                cursor_options["batchSize"] = self.batch_size
            command["cursor"] = cursor_options
        if self.allow_disk_use is not None:
            command["allowDiskUse"] = self.allow_disk_use
        if not self.read_concern.is_server_default:
            command["readConcern"] = self.read_concern.document
        return command

    def explain_command(self) -> CommandType:
        """The command explaining this aggregation rather than running it."""
        command: CommandType = {
            "aggregate": self.namespace.collection_name,
            "pipeline": list(self.pipeline),
            "explain": True,
        }
        if self.max_time_ms > 0:
            command["maxTimeMS"] = self.max_time_ms
        if self.allow_disk_use is not None:
            command["allowDiskUse"] = self.allow_disk_use
        return command

    def _results_field(self, description: ConnectionDescription) -> str:
        if self._uses_cursor(description):
            return FIRST_BATCH_FIELD
        return INLINE_RESULT_FIELD

    def _to_query_result(
        self,
        reply: DocumentType,
        description: ConnectionDescription,
    ) -> QueryResult[T]:
        if self._uses_cursor(description):
            return cursor_document_to_query_result(
                reply.get("cursor"),  # type: ignore[arg-type]
                description.server_address,
            )
        return QueryResult(
            namespace=self.namespace,
            results=list(reply.get(INLINE_RESULT_FIELD) or []),
            cursor_id=0,
            server_address=description.server_address,
        )

    def execute(self, binding: ReadBinding) -> BatchCursor[T]:
        """
        Run the aggregation.

        Args:
            binding: the read binding to run the aggregation with.

        Returns:
            a BatchCursor over the results. The connection source stays with
            the cursor for as long as the server keeps a cursor open.
        """

        source: ConnectionSource = binding.get_read_connection_source()
        source_handed_over = False
        try:
            connection: Connection = source.get_connection()
            try:
                description = connection.description
                self._check_read_concern(description)
                logger.info(f"running aggregation on {self.namespace}")
                query_result: QueryResult[T] = execute_read_command(
                    binding,
                    self.namespace.database_name,
                    self.command_document(description),
                    connection=connection,
                    decoder=command_result_decoder(
                        self.decoder, self._results_field(description)
                    ),
                    transformer=lambda reply: self._to_query_result(reply, description),
                )
                cursor = BatchCursor(
                    query_result,
                    0,
                    self.batch_size or 0,
                    self.decoder,
                    Owned(source) if query_result.cursor is not None else None,
                    options=self.options,
                )
                source_handed_over = query_result.cursor is not None
                return cursor
            finally:
                connection.release()
        finally:
            if not source_handed_over:
                source.release()

    async def async_execute(self, binding: AsyncReadBinding) -> AsyncBatchCursor[T]:
        """
        Run the aggregation.
        Async version of the method, for use in an asyncio context.

        Args:
            binding: the async read binding to run the aggregation with.

        Returns:
            an AsyncBatchCursor over the results. The connection source stays
            with the cursor for as long as the server keeps a cursor open.
        """

        source: AsyncConnectionSource = await binding.get_read_connection_source()
        source_handed_over = False
        try:
            connection: AsyncConnection = await source.get_connection()
            try:
                description = connection.description
                self._check_read_concern(description)
                logger.info(f"running aggregation on {self.namespace}, async")
                query_result: QueryResult[T] = await async_execute_read_command(
                    binding,
                    self.namespace.database_name,
                    self.command_document(description),
                    connection=connection,
                    decoder=command_result_decoder(
                        self.decoder, self._results_field(description)
                    ),
                    transformer=lambda reply: self._to_query_result(reply, description),
                )
                cursor = AsyncBatchCursor(
                    query_result,
                    0,
                    self.batch_size or 0,
                    self.decoder,
                    Owned(source) if query_result.cursor is not None else None,
                    options=self.options,
                )
                source_handed_over = query_result.cursor is not None
                return cursor
            finally:
                connection.release()
        finally:
            if not source_handed_over:
                source.release()

    def explain(self, binding: ReadBinding) -> DocumentType:
        """
        Ask the server how it would run the aggregation.

        Args:
            binding: the read binding to use.

        Returns:
            the explain reply, as a document.
        """

        return execute_read_command(  # type: ignore[no-any-return]
            binding,
            self.namespace.database_name,
            self.explain_command(),
        )

    async def async_explain(self, binding: AsyncReadBinding) -> DocumentType:
        """
        Ask the server how it would run the aggregation.
        Async version of the method, for use in an asyncio context.

        Args:
            binding: the async read binding to use.

        Returns:
            the explain reply, as a document.
        """

        return await async_execute_read_command(  # type: ignore[no-any-return]
            binding,
            self.namespace.database_name,
            self.explain_command(),
        )
