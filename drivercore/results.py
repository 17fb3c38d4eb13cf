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

from dataclasses import dataclass
from typing import Any, Generic, Sequence

from drivercore.constants import T
from drivercore.exceptions import UnexpectedResponseException
from drivercore.settings.defaults import FIRST_BATCH_FIELD


@dataclass(frozen=True)
class ServerAddress:
    """The network address of a server, as a host/port pair."""

    host: str = "127.0.0.1"
    port: int = 27017

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    @staticmethod
    def parse(address: str) -> ServerAddress:
        """Parse a "host:port" (or bare "host") string into a ServerAddress."""
        if ":" in address:
            host, port_str = address.rsplit(":", 1)
            return ServerAddress(host=host, port=int(port_str))
        return ServerAddress(host=address)


@dataclass(frozen=True)
class Namespace:
    """A database/collection pair, whose full name reads "database.collection"."""

    database_name: str
    collection_name: str

    def __post_init__(self) -> None:
        if not self.database_name:
            raise ValueError("The database name of a namespace cannot be empty.")
        if not self.collection_name:
            raise ValueError("The collection name of a namespace cannot be empty.")

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.database_name}.{self.collection_name}"

    @staticmethod
    def parse(full_name: str) -> Namespace:
        """
        Parse a full namespace name. The database name is everything up to
        the first dot, the collection name the (possibly dotted) remainder.
        """

        if "." not in full_name:
            raise ValueError(f"Invalid namespace '{full_name}': no collection name.")
        database_name, collection_name = full_name.split(".", 1)
        return Namespace(database_name, collection_name)


@dataclass(frozen=True)
class ServerCursor:
    """
    The identifier of a live server-side cursor: the cursor id and the
    address of the server holding it. A cursor id of zero never makes
    a ServerCursor.
    """

    id: int
    address: ServerAddress

    def __post_init__(self) -> None:
        if self.id == 0:
            raise ValueError("A server cursor cannot have a zero id.")


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    """
    The outcome of a query or of a single fetch: one batch of documents
    and, if the server kept a cursor open, its identifier.

    Attributes:
        namespace: the namespace the documents come from.
        results: the documents of this batch, in server order.
        cursor_id: the id of the server-side cursor, 0 if none remains.
        server_address: the address of the server that replied.
    """

    namespace: Namespace
    results: Sequence[T]
    cursor_id: int
    server_address: ServerAddress

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.namespace}, "
            f"results=<{len(self.results)} documents>, "
            f"cursor_id={self.cursor_id}, server_address={self.server_address})"
        )

    @property
    def cursor(self) -> ServerCursor | None:
        if self.cursor_id == 0:
            return None
        return ServerCursor(self.cursor_id, self.server_address)


def cursor_document_to_query_result(
    cursor_document: dict[str, Any],
    server_address: ServerAddress,
    batch_field: str = FIRST_BATCH_FIELD,
) -> QueryResult[Any]:
    """
    Turn the `cursor` sub-document of a command reply, i.e.
        {"id": ..., "ns": ..., "firstBatch"|"nextBatch": [...]},
    into a QueryResult.
    """

    try:
        cursor_id = int(cursor_document["id"])
        namespace = Namespace.parse(cursor_document["ns"])
        results = list(cursor_document[batch_field])
    except (KeyError, TypeError, ValueError):
        raise UnexpectedResponseException(
            text=f"Malformed cursor document in reply (expected '{batch_field}').",
            raw_response=cursor_document,
        )
    return QueryResult(
        namespace=namespace,
        results=results,
        cursor_id=cursor_id,
        server_address=server_address,
    )
