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
Connections, connection sources and bindings speaking to a JSON-over-HTTP
command gateway, i.e. a service accepting command documents as JSON bodies
of POST requests to `{endpoint}/{database}/command` and returning the reply
documents as JSON.

These implement the collaborator interfaces of `drivercore.connection`, so
that the cursors and the operations of the driver core can run against such
a gateway. The gateway only speaks commands: fetching more results and
killing cursors are expressed as the getMore and killCursors commands.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from drivercore.codecs import (
    Decoder,
    FieldNameValidator,
    NoOpFieldNameValidator,
    command_result_decoder,
    validate_field_names,
)
from drivercore.connection import ConnectionDescription
from drivercore.constants import CommandType, D, ServerType, ServerVersion, T
from drivercore.exceptions import (
    CommandException,
    InvalidOperationException,
    _TimeoutContext,
    translate_command_exception,
)
from drivercore.http.api_commander import APICommander
from drivercore.options import DriverOptions, FullDriverOptions, defaultDriverOptions
from drivercore.read_preference import ReadPreference, primary
from drivercore.results import (
    Namespace,
    QueryResult,
    ServerAddress,
    ServerCursor,
    cursor_document_to_query_result,
)
from drivercore.settings.defaults import (
    DEFAULT_AUTH_HEADER,
    DEFAULT_COMMAND_PATH_TEMPLATE,
    NEXT_BATCH_FIELD,
)

logger = logging.getLogger(__name__)


def server_address_from_endpoint(api_endpoint: str) -> ServerAddress:
    """The host/port pair of a gateway URL, with the default port of its scheme."""
    url = httpx.URL(api_endpoint)
    default_port = 443 if url.scheme == "https" else 80
    return ServerAddress(host=url.host, port=url.port or default_port)


def _get_more_command(
    namespace: Namespace, cursor_id: int, number_to_return: int
) -> CommandType:
    command: CommandType = {
        "getMore": cursor_id,
        "collection": namespace.collection_name,
    }
    if number_to_return != 0:
        command["batchSize"] = abs(number_to_return)
    return command


def _kill_cursors_command(namespace: Namespace, cursor_ids: list[int]) -> CommandType:
    return {
        "killCursors": namespace.collection_name,
        "cursors": list(cursor_ids),
    }


class _HttpConnectionBase:
    """Shared state and request preparation of the HTTP connections."""

    def __init__(
        self,
        commander: APICommander,
        description: ConnectionDescription,
        options: FullDriverOptions,
    ) -> None:
        self.commander = commander
        self._description = description
        self._options = options
        self._released = False

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}("{self.commander.full_path}", '
            f"released={self._released})"
        )

    @property
    def description(self) -> ConnectionDescription:
        return self._description

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Return the connection. Releasing a released connection does nothing."""
        self._released = True

    def _ensure_usable(self) -> None:
        if self._released:
            raise InvalidOperationException("The connection has been released.")

    def _timeout_context(self) -> _TimeoutContext:
        return _TimeoutContext(
            request_ms=self._options.request_timeout_ms,
            label="request_timeout_ms",
        )

    def _prepare_command(
        self,
        database: str,
        command: CommandType,
        secondary_ok: bool,
        field_name_validator: FieldNameValidator,
    ) -> tuple[str, dict[str, Any]]:
        self._ensure_usable()
        validate_field_names(command, field_name_validator)
        additional_path = DEFAULT_COMMAND_PATH_TEMPLATE.format(database=database)
        request_params: dict[str, Any] = {"secondaryOk": "true"} if secondary_ok else {}
        return additional_path, request_params

    def _to_get_more_result(
        self,
        reply: dict[str, Any],
    ) -> QueryResult[Any]:
        return cursor_document_to_query_result(
            reply.get("cursor"),  # type: ignore[arg-type]
            self._description.server_address,
            NEXT_BATCH_FIELD,
        )


class HttpConnection(_HttpConnectionBase):
    """
    A blocking connection to a command gateway.

    Args:
        commander: the APICommander issuing the HTTP requests.
        description: what is known about the server behind the gateway.
        options: the driver settings, for the request timeout.
    """

    def command(
        self,
        database: str,
        command: CommandType,
        secondary_ok: bool,
        field_name_validator: FieldNameValidator,
        decoder: Decoder[D],
    ) -> D:
        additional_path, request_params = self._prepare_command(
            database, command, secondary_ok, field_name_validator
        )
        reply = self.commander.request(
            payload=command,
            additional_path=additional_path,
            request_params=request_params,
            timeout_context=self._timeout_context(),
        )
        return decoder(reply)

    def get_more(
        self,
        namespace: Namespace,
        cursor_id: int,
        number_to_return: int,
        decoder: Decoder[T],
    ) -> QueryResult[T]:
        try:
            reply = self.command(
                namespace.database_name,
                _get_more_command(namespace, cursor_id, number_to_return),
                False,
                NoOpFieldNameValidator(),
                command_result_decoder(decoder, NEXT_BATCH_FIELD),
            )
        except CommandException as exc:
            raise translate_command_exception(
                exc, ServerCursor(cursor_id, self._description.server_address)
            )
        return self._to_get_more_result(reply)

    def kill_cursors(self, namespace: Namespace, cursor_ids: list[int]) -> None:
        logger.info(f"killing cursors {cursor_ids} on {namespace}")
        self.command(
            namespace.database_name,
            _kill_cursors_command(namespace, cursor_ids),
            False,
            NoOpFieldNameValidator(),
            lambda reply: reply,
        )


class AsyncHttpConnection(_HttpConnectionBase):
    """
    A non-blocking connection to a command gateway. This is the asyncio twin
    of `HttpConnection`.
    """

    async def command(
        self,
        database: str,
        command: CommandType,
        secondary_ok: bool,
        field_name_validator: FieldNameValidator,
        decoder: Decoder[D],
    ) -> D:
        additional_path, request_params = self._prepare_command(
            database, command, secondary_ok, field_name_validator
        )
        reply = await self.commander.async_request(
            payload=command,
            additional_path=additional_path,
            request_params=request_params,
            timeout_context=self._timeout_context(),
        )
        return decoder(reply)

    async def get_more(
        self,
        namespace: Namespace,
        cursor_id: int,
        number_to_return: int,
        decoder: Decoder[T],
    ) -> QueryResult[T]:
        try:
            reply = await self.command(
                namespace.database_name,
                _get_more_command(namespace, cursor_id, number_to_return),
                False,
                NoOpFieldNameValidator(),
                command_result_decoder(decoder, NEXT_BATCH_FIELD),
            )
        except CommandException as exc:
            raise translate_command_exception(
                exc, ServerCursor(cursor_id, self._description.server_address)
            )
        return self._to_get_more_result(reply)

    async def kill_cursors(self, namespace: Namespace, cursor_ids: list[int]) -> None:
        logger.info(f"killing cursors {cursor_ids} on {namespace}, async")
        await self.command(
            namespace.database_name,
            _kill_cursors_command(namespace, cursor_ids),
            False,
            NoOpFieldNameValidator(),
            lambda reply: reply,
        )


class _HttpConnectionSourceBase:
    def __init__(
        self,
        commander: APICommander,
        description: ConnectionDescription,
        options: FullDriverOptions,
    ) -> None:
        self.commander = commander
        self.description = description
        self._options = options
        self._released = False

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}("{self.commander.full_path}", '
            f"released={self._released})"
        )

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        self._released = True

    def _ensure_usable(self) -> None:
        if self._released:
            raise InvalidOperationException("The connection source has been released.")


class HttpConnectionSource(_HttpConnectionSourceBase):
    """A lease on a command gateway, handing out `HttpConnection` objects."""

    def get_connection(self) -> HttpConnection:
        self._ensure_usable()
        return HttpConnection(self.commander, self.description, self._options)


class AsyncHttpConnectionSource(_HttpConnectionSourceBase):
    """A lease on a command gateway, handing out `AsyncHttpConnection` objects."""

    async def get_connection(self) -> AsyncHttpConnection:
        self._ensure_usable()
        return AsyncHttpConnection(self.commander, self.description, self._options)


class _HttpBindingBase:
    def __init__(
        self,
        api_endpoint: str,
        *,
        token: str | None = None,
        path: str = "",
        headers: dict[str, str | None] | None = None,
        read_preference: ReadPreference | None = None,
        server_type: ServerType | str = ServerType.STANDALONE,
        server_version: ServerVersion = (3, 2, 0),
        options: DriverOptions | None = None,
    ) -> None:
        server_address = server_address_from_endpoint(api_endpoint)
        auth_headers: dict[str, str | None] = (
            {DEFAULT_AUTH_HEADER: f"Bearer {token}"} if token else {}
        )
        self.commander = APICommander(
            api_endpoint=api_endpoint,
            path=path,
            headers={**auth_headers, **(headers or {})},
            server_address=server_address,
        )
        self.description = ConnectionDescription(
            server_address=server_address,
            server_type=ServerType.coerce(server_type),
            server_version=tuple(server_version),
        )
        self._read_preference = read_preference or primary()
        self.options = defaultDriverOptions.with_override(options)

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}("{self.commander.full_path}", '
            f"{self._read_preference})"
        )

    @property
    def read_preference(self) -> ReadPreference:
        return self._read_preference


class HttpBinding(_HttpBindingBase):
    """
    A read and write binding to a command gateway.

    Example:
        >>> binding = HttpBinding("https://gateway.example.com/api", token="...")
        >>> execute_read_command(binding, "db", {"count": "coll"})
        {'n': 12, 'ok': 1}

    Args:
        api_endpoint: the base URL of the gateway.
        token: a bearer token, sent in the Authorization header.
        path: a path prefix inserted between the endpoint and the database.
        headers: further headers for all requests.
        read_preference: the read preference of the reads. Defaults to primary.
        server_type: the role of the server behind the gateway, deciding for
            instance whether commands are wrapped with the read preference.
        server_version: the version of the server behind the gateway.
        options: overrides of the driver settings.
    """

    def get_read_connection_source(self) -> HttpConnectionSource:
        return HttpConnectionSource(self.commander, self.description, self.options)

    def get_write_connection_source(self) -> HttpConnectionSource:
        return HttpConnectionSource(self.commander, self.description, self.options)


class AsyncHttpBinding(_HttpBindingBase):
    """
    A read and write binding to a command gateway, for use in an asyncio
    context. The arguments are the same as for `HttpBinding`.
    """

    async def get_read_connection_source(self) -> AsyncHttpConnectionSource:
        return AsyncHttpConnectionSource(self.commander, self.description, self.options)

    async def get_write_connection_source(self) -> AsyncHttpConnectionSource:
        return AsyncHttpConnectionSource(self.commander, self.description, self.options)

    async def aclose(self) -> None:
        """Close the underlying async HTTP client."""
        await self.commander.async_client.aclose()
