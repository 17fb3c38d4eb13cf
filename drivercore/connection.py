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
The collaborator interfaces consumed by the driver core: connections to a
server, the sources leasing them, and the bindings producing sources for
reads and writes. The core never implements these for a real transport
(see `drivercore.http` for a JSON-over-HTTP rendition); it only relies on
the behaviour described here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar, Union

from drivercore.codecs import Decoder, FieldNameValidator
from drivercore.constants import CommandType, D, ServerType, ServerVersion, T
from drivercore.read_preference import ReadPreference
from drivercore.results import Namespace, QueryResult, ServerAddress


@dataclass(frozen=True)
class ConnectionDescription:
    """
    What is known about the server at the other end of a connection.

    Attributes:
        server_address: the address of the server.
        server_type: the role of the server (standalone, router, ...).
        server_version: the server version as a tuple of integers.
    """

    server_address: ServerAddress
    server_type: ServerType = ServerType.STANDALONE
    server_version: ServerVersion = (3, 2, 0)

    def server_is_at_least(self, version: ServerVersion) -> bool:
        return tuple(self.server_version) >= tuple(version)


class Releasable(Protocol):
    def release(self) -> None: ...


class Connection(Protocol):
    """
    A leased, blocking channel to one server. `release` is idempotent and
    returns the channel to whoever leased it.
    """

    @property
    def description(self) -> ConnectionDescription: ...

    def command(
        self,
        database: str,
        command: CommandType,
        secondary_ok: bool,
        field_name_validator: FieldNameValidator,
        decoder: Decoder[D],
    ) -> D:
        """
        Send a command and decode the reply. Error replies raise
        a `drivercore.exceptions.CommandException`.
        """
        ...

    def get_more(
        self,
        namespace: Namespace,
        cursor_id: int,
        number_to_return: int,
        decoder: Decoder[T],
    ) -> QueryResult[T]:
        """
        Fetch the next batch of a cursor with the legacy wire protocol.
        A missing cursor raises a `drivercore.exceptions.CursorNotFoundException`.
        """
        ...

    def kill_cursors(self, namespace: Namespace, cursor_ids: list[int]) -> None: ...

    def release(self) -> None: ...


class AsyncConnection(Protocol):
    """The non-blocking twin of `Connection`."""

    @property
    def description(self) -> ConnectionDescription: ...

    async def command(
        self,
        database: str,
        command: CommandType,
        secondary_ok: bool,
        field_name_validator: FieldNameValidator,
        decoder: Decoder[D],
    ) -> D: ...

    async def get_more(
        self,
        namespace: Namespace,
        cursor_id: int,
        number_to_return: int,
        decoder: Decoder[T],
    ) -> QueryResult[T]: ...

    async def kill_cursors(self, namespace: Namespace, cursor_ids: list[int]) -> None: ...

    def release(self) -> None: ...


class ConnectionSource(Protocol):
    """A lease on a server, able to hand out connections to it."""

    def get_connection(self) -> Connection: ...

    def release(self) -> None: ...


class AsyncConnectionSource(Protocol):
    async def get_connection(self) -> AsyncConnection: ...

    def release(self) -> None: ...


class ReadBinding(Protocol):
    """Produces connection sources for reads, honouring a read preference."""

    @property
    def read_preference(self) -> ReadPreference: ...

    def get_read_connection_source(self) -> ConnectionSource: ...


class WriteBinding(Protocol):
    """Produces connection sources for writes, always to the primary."""

    def get_write_connection_source(self) -> ConnectionSource: ...


class AsyncReadBinding(Protocol):
    @property
    def read_preference(self) -> ReadPreference: ...

    async def get_read_connection_source(self) -> AsyncConnectionSource: ...


class AsyncWriteBinding(Protocol):
    async def get_write_connection_source(self) -> AsyncConnectionSource: ...


R = TypeVar("R", bound=Releasable)


@dataclass(frozen=True)
class Owned(Generic[R]):
    """
    A resource handed over together with the duty of releasing it:
    whoever holds an Owned handle releases the resource when done.
    """

    resource: R

    def release(self) -> None:
        self.resource.release()


@dataclass(frozen=True)
class Borrowed(Generic[R]):
    """
    A resource lent by a caller that keeps ownership of it. Releasing
    a Borrowed handle leaves the resource untouched.
    """

    resource: R

    def release(self) -> None:
        return None


ResourceHandle = Union[Owned[R], Borrowed[R]]
