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
Fixtures and helpers for the tests running against the in-memory deployment.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from drivercore.codecs import NoOpFieldNameValidator, document_decoder
from drivercore.constants import DocumentType
from drivercore.results import Namespace, QueryResult, cursor_document_to_query_result

from .fake_deployment import (
    AsyncFakeBinding,
    AsyncFakeConnectionSource,
    FakeBinding,
    FakeConnectionSource,
    FakeServer,
)

NAMESPACE = Namespace("test_db", "test_coll")
CAPPED_NAMESPACE = Namespace("test_db", "test_capped")
DOCUMENT_COUNT = 10


def _find_command(
    *,
    limit: int,
    batch_size: int | None,
    query: DocumentType | None,
    tailable: bool,
    namespace: Namespace,
) -> DocumentType:
    command: dict[str, Any] = {
        "find": namespace.collection_name,
        "filter": query or {},
        "tailable": tailable,
        "awaitData": tailable,
        "limit": abs(limit),
    }
    if batch_size is not None and limit >= 0:
        if batch_size < 0 and abs(batch_size) < limit:
            command["limit"] = abs(batch_size)
        else:
            command["batchSize"] = abs(batch_size)
    return command


def execute_query(
    source: FakeConnectionSource,
    *,
    limit: int = 0,
    batch_size: int | None = 0,
    query: DocumentType | None = None,
    tailable: bool = False,
    namespace: Namespace = NAMESPACE,
) -> QueryResult[DocumentType]:
    """
    Run a find command and return its first batch. A negative limit is sent
    as its absolute value; a negative batch size smaller than the limit is
    sent as the limit.
    """

    connection = source.get_connection()
    try:
        reply = connection.command(
            namespace.database_name,
            _find_command(
                limit=limit,
                batch_size=batch_size,
                query=query,
                tailable=tailable,
                namespace=namespace,
            ),
            False,
            NoOpFieldNameValidator(),
            document_decoder,
        )
        return cursor_document_to_query_result(
            reply["cursor"], connection.description.server_address
        )
    finally:
        connection.release()


async def async_execute_query(
    source: AsyncFakeConnectionSource,
    *,
    limit: int = 0,
    batch_size: int | None = 0,
    query: DocumentType | None = None,
    tailable: bool = False,
    namespace: Namespace = NAMESPACE,
) -> QueryResult[DocumentType]:
    connection = await source.get_connection()
    try:
        reply = await connection.command(
            namespace.database_name,
            _find_command(
                limit=limit,
                batch_size=batch_size,
                query=query,
                tailable=tailable,
                namespace=namespace,
            ),
            False,
            NoOpFieldNameValidator(),
            document_decoder,
        )
        return cursor_document_to_query_result(
            reply["cursor"], connection.description.server_address
        )
    finally:
        connection.release()


@pytest.fixture
def fake_server() -> FakeServer:
    server = FakeServer()
    server.insert(NAMESPACE, [{"_id": i} for i in range(DOCUMENT_COUNT)])
    return server


@pytest.fixture
def capped_server() -> FakeServer:
    server = FakeServer()
    server.create_collection(CAPPED_NAMESPACE, capped=True)
    server.insert(CAPPED_NAMESPACE, [{"_id": 1, "ts": 5}])
    return server


@pytest.fixture
def connection_source(fake_server: FakeServer) -> Iterator[FakeConnectionSource]:
    source = FakeConnectionSource(fake_server)
    yield source
    source.release()


@pytest.fixture
def async_connection_source(
    fake_server: FakeServer,
) -> Iterator[AsyncFakeConnectionSource]:
    source = AsyncFakeConnectionSource(fake_server)
    yield source
    source.release()


@pytest.fixture
def fake_binding(fake_server: FakeServer) -> FakeBinding:
    return FakeBinding(fake_server)


@pytest.fixture
def async_fake_binding(fake_server: FakeServer) -> AsyncFakeBinding:
    return AsyncFakeBinding(fake_server)
