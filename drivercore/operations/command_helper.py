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
Single-shot command execution: acquire the resources, send one command,
decode and transform the reply, release the resources.

Both the read and the write flavours come in a blocking and an asyncio
version. Whatever the outcome, the connection and the connection source
acquired by a helper are released exactly once, the connection first.
A connection passed in by the caller is used as is and never released.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from drivercore.codecs import (
    Decoder,
    FieldNameValidator,
    NoOpFieldNameValidator,
    document_decoder,
)
from drivercore.connection import (
    AsyncConnection,
    AsyncConnectionSource,
    AsyncReadBinding,
    AsyncWriteBinding,
    Connection,
    ConnectionDescription,
    ConnectionSource,
    ReadBinding,
    WriteBinding,
)
from drivercore.constants import CommandType, ServerType
from drivercore.exceptions import CommandException
from drivercore.exceptions.command_exceptions import _is_namespace_not_found
from drivercore.read_preference import ReadPreference, primary
from drivercore.settings.defaults import (
    WRAPPED_COMMAND_FIELD,
    WRAPPED_READ_PREFERENCE_FIELD,
)

logger = logging.getLogger(__name__)

DFT = TypeVar("DFT")

Transformer = Callable[[Any], Any]


def _identity(reply: Any) -> Any:
    return reply


def _command_name(command: CommandType) -> str:
    return next(iter(command), "(empty)")


def wrap_command(
    command: CommandType,
    read_preference: ReadPreference,
    description: ConnectionDescription,
) -> CommandType:
    """
    Prepare a command for transmission to the server at hand: when the server
    is a shard router and the read preference is not "primary", the command is
    enveloped together with the read preference, so that the router can apply
    it. In all other cases the command is returned unchanged.

    Args:
        command: the command document.
        read_preference: the read preference in effect for the command.
        description: the description of the connection the command goes to.

    Returns:
        the command document to send.
    """

    if description.server_type == ServerType.SHARD_ROUTER and not read_preference.is_primary:
        return {
            WRAPPED_COMMAND_FIELD: command,
            WRAPPED_READ_PREFERENCE_FIELD: read_preference.document,
        }
    return command


def is_namespace_error(exception: BaseException) -> bool:
    """Whether an error is a command failure due to a missing namespace."""
    if isinstance(exception, CommandException):
        return _is_namespace_not_found(
            exception.error_code,
            exception.error_message,
        )
    return False


def rethrow_if_not_namespace_error(
    exception: CommandException,
    default: DFT | None = None,
) -> DFT | None:
    """
    Turn a "namespace not found" command failure into a default value,
    re-raising any other failure.

    Example:
        >>> try:
        ...     names = execute_read_command(binding, "db", {"listIndexes": "c"})
        ... except CommandException as exc:
        ...     names = rethrow_if_not_namespace_error(exc, default=[])

    Args:
        exception: the command failure to classify.
        default: the value to return if the failure is a namespace error.

    Returns:
        `default`, if the failure is a namespace error.
    """

    if is_namespace_error(exception):
        logger.debug(f"namespace not found, using default: {exception.error_message}")
        return default
    raise exception


def _send_command(
    connection: Connection,
    database: str,
    command: CommandType,
    *,
    read_preference: ReadPreference,
    field_name_validator: FieldNameValidator,
    decoder: Decoder[Any],
    transformer: Transformer,
) -> Any:
    logger.debug(f"sending command '{_command_name(command)}' to {database}")
    reply = connection.command(
        database,
        wrap_command(command, read_preference, connection.description),
        read_preference.secondary_ok,
        field_name_validator,
        decoder,
    )
    return transformer(reply)


async def _async_send_command(
    connection: AsyncConnection,
    database: str,
    command: CommandType,
    *,
    read_preference: ReadPreference,
    field_name_validator: FieldNameValidator,
    decoder: Decoder[Any],
    transformer: Transformer,
) -> Any:
    logger.debug(f"sending command '{_command_name(command)}' to {database}, async")
    reply = await connection.command(
        database,
        wrap_command(command, read_preference, connection.description),
        read_preference.secondary_ok,
        field_name_validator,
        decoder,
    )
    return transformer(reply)


def _execute(
    source: ConnectionSource,
    database: str,
    command: CommandType,
    *,
    read_preference: ReadPreference,
    field_name_validator: FieldNameValidator,
    decoder: Decoder[Any],
    transformer: Transformer,
) -> Any:
    # releases happen in reverse order of acquisition, on every path
    try:
        connection = source.get_connection()
        try:
            return _send_command(
                connection,
                database,
                command,
                read_preference=read_preference,
                field_name_validator=field_name_validator,
                decoder=decoder,
                transformer=transformer,
            )
        finally:
            connection.release()
    finally:
        source.release()


async def _async_execute(
    source: AsyncConnectionSource,
    database: str,
    command: CommandType,
    *,
    read_preference: ReadPreference,
    field_name_validator: FieldNameValidator,
    decoder: Decoder[Any],
    transformer: Transformer,
) -> Any:
    try:
        connection = await source.get_connection()
        try:
            return await _async_send_command(
                connection,
                database,
                command,
                read_preference=read_preference,
                field_name_validator=field_name_validator,
                decoder=decoder,
                transformer=transformer,
            )
        finally:
            connection.release()
    finally:
        source.release()


def execute_read_command(
    binding: ReadBinding,
    database: str,
    command: CommandType,
    *,
    connection: Connection | None = None,
    field_name_validator: FieldNameValidator | None = None,
    decoder: Decoder[Any] = document_decoder,
    transformer: Transformer = _identity,
) -> Any:
    """
    Execute a read command, honouring the read preference of the binding.

    Args:
        binding: the read binding producing the connection source.
        database: the database the command targets.
        command: the command document.
        connection: a connection to use instead of acquiring one. It is not
            released by this function.
        field_name_validator: the validator for the field names of the command,
            applied as the command is encoded. Defaults to no validation.
        decoder: the decoder for the reply. Defaults to the document decoder.
        transformer: a function applied to the decoded reply, whose result is
            returned. It runs before the resources are released.

    Returns:
        the transformed reply.
    """

    _validator = field_name_validator or NoOpFieldNameValidator()
    if connection is not None:
        return _send_command(
            connection,
            database,
            command,
            read_preference=binding.read_preference,
            field_name_validator=_validator,
            decoder=decoder,
            transformer=transformer,
        )
    return _execute(
        binding.get_read_connection_source(),
        database,
        command,
        read_preference=binding.read_preference,
        field_name_validator=_validator,
        decoder=decoder,
        transformer=transformer,
    )


def execute_write_command(
    binding: WriteBinding,
    database: str,
    command: CommandType,
    *,
    connection: Connection | None = None,
    field_name_validator: FieldNameValidator | None = None,
    decoder: Decoder[Any] = document_decoder,
    transformer: Transformer = _identity,
) -> Any:
    """
    Execute a write command against the primary.

    Args:
        binding: the write binding producing the connection source.
        database: the database the command targets.
        command: the command document.
        connection: a connection to use instead of acquiring one. It is not
            released by this function.
        field_name_validator: the validator for the field names of the command,
            applied as the command is encoded. Defaults to no validation.
        decoder: the decoder for the reply. Defaults to the document decoder.
        transformer: a function applied to the decoded reply, whose result is
            returned. It runs before the resources are released.

    Returns:
        the transformed reply.
    """

    _validator = field_name_validator or NoOpFieldNameValidator()
    if connection is not None:
        return _send_command(
            connection,
            database,
            command,
            read_preference=primary(),
            field_name_validator=_validator,
            decoder=decoder,
            transformer=transformer,
        )
    return _execute(
        binding.get_write_connection_source(),
        database,
        command,
        read_preference=primary(),
        field_name_validator=_validator,
        decoder=decoder,
        transformer=transformer,
    )


async def async_execute_read_command(
    binding: AsyncReadBinding,
    database: str,
    command: CommandType,
    *,
    connection: AsyncConnection | None = None,
    field_name_validator: FieldNameValidator | None = None,
    decoder: Decoder[Any] = document_decoder,
    transformer: Transformer = _identity,
) -> Any:
    """
    Execute a read command, honouring the read preference of the binding.
    Async version of the function, for use in an asyncio context.

    Args:
        binding: the async read binding producing the connection source.
        database: the database the command targets.
        command: the command document.
        connection: a connection to use instead of acquiring one. It is not
            released by this function.
        field_name_validator: the validator for the field names of the command,
            applied as the command is encoded. Defaults to no validation.
        decoder: the decoder for the reply. Defaults to the document decoder.
        transformer: a function applied to the decoded reply, whose result is
            returned. It runs before the resources are released.

    Returns:
        the transformed reply.
    """

    _validator = field_name_validator or NoOpFieldNameValidator()
    if connection is not None:
        return await _async_send_command(
            connection,
            database,
            command,
            read_preference=binding.read_preference,
            field_name_validator=_validator,
            decoder=decoder,
            transformer=transformer,
        )
    return await _async_execute(
        await binding.get_read_connection_source(),
        database,
        command,
        read_preference=binding.read_preference,
        field_name_validator=_validator,
        decoder=decoder,
        transformer=transformer,
    )


async def async_execute_write_command(
    binding: AsyncWriteBinding,
    database: str,
    command: CommandType,
    *,
    connection: AsyncConnection | None = None,
    field_name_validator: FieldNameValidator | None = None,
    decoder: Decoder[Any] = document_decoder,
    transformer: Transformer = _identity,
) -> Any:
    """
    Execute a write command against the primary.
    Async version of the function, for use in an asyncio context.

    Args:
        binding: the async write binding producing the connection source.
        database: the database the command targets.
        command: the command document.
        connection: a connection to use instead of acquiring one. It is not
            released by this function.
        field_name_validator: the validator for the field names of the command,
            applied as the command is encoded. Defaults to no validation.
        decoder: the decoder for the reply. Defaults to the document decoder.
        transformer: a function applied to the decoded reply, whose result is
            returned. It runs before the resources are released.

    Returns:
        the transformed reply.
    """

    _validator = field_name_validator or NoOpFieldNameValidator()
    if connection is not None:
        return await _async_send_command(
            connection,
            database,
            command,
            read_preference=primary(),
            field_name_validator=_validator,
            decoder=decoder,
            transformer=transformer,
        )
    return await _async_execute(
        await binding.get_write_connection_source(),
        database,
        command,
        read_preference=primary(),
        field_name_validator=_validator,
        decoder=decoder,
        transformer=transformer,
    )
