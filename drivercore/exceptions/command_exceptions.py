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
from typing import TYPE_CHECKING, Any

from drivercore.exceptions.driver_exceptions import DriverException
from drivercore.settings.defaults import (
    CURSOR_NOT_FOUND_CODE,
    NAMESPACE_NOT_FOUND_CODE,
    NAMESPACE_NOT_FOUND_MARKER,
)

if TYPE_CHECKING:
    from drivercore.results import ServerAddress, ServerCursor


@dataclass
class CommandException(DriverException):
    """
    The server replied to a command with an error (a reply with `ok: 0`).

    Attributes:
        text: a text message about the exception.
        error_code: the numeric code found in the reply's "code" field
            (-1 if absent).
        error_message: the text found in the reply's "errmsg" field.
        code_name: the text found in the reply's "codeName" field, if any.
        response: the full reply document.
        server_address: the address of the server that replied.
    """

    text: str
    error_code: int
    error_message: str
    code_name: str | None
    response: dict[str, Any]
    server_address: ServerAddress | None

    def __init__(
        self,
        text: str,
        *,
        error_code: int,
        error_message: str,
        response: dict[str, Any],
        server_address: ServerAddress | None,
        code_name: str | None = None,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.error_code = error_code
        self.error_message = error_message
        self.code_name = code_name
        self.response = response
        self.server_address = server_address

    @staticmethod
    def from_response(
        response: dict[str, Any],
        *,
        server_address: ServerAddress | None,
    ) -> CommandException:
        """
        Parse an error reply into this exception. Replies recognized as
        "namespace not found" yield a NamespaceNotFoundException.
        """

        raw_code = response.get("code")
        error_code = int(raw_code) if isinstance(raw_code, (int, float)) else -1
        error_message = str(response.get("errmsg") or "")
        code_name = response.get("codeName")
        code_desc = f"{error_code} ({code_name})" if code_name else f"{error_code}"
        text = f"Command failed with error {code_desc}: '{error_message}'"
        if server_address is not None:
            text = f"{text} on server {server_address}"

        exc_class: type[CommandException]
        if _is_namespace_not_found(error_code, error_message):
            exc_class = NamespaceNotFoundException
        else:
            exc_class = CommandException
        return exc_class(
            text,
            error_code=error_code,
            error_message=error_message,
            code_name=code_name,
            response=response,
            server_address=server_address,
        )


class NamespaceNotFoundException(CommandException):
    """
    A command failed because its target namespace does not exist. Several
    read/admin operations treat this as an empty result rather than an error:
    see `drivercore.operations.rethrow_if_not_namespace_error`.
    """

    pass


@dataclass
class QueryFailureException(DriverException):
    """
    A query or a follow-up fetch on a cursor failed on the server.

    Attributes:
        text: a text message about the exception.
        error_code: the server error code.
        error_message: the server error message.
        server_address: the address of the server that reported the failure.
    """

    text: str
    error_code: int
    error_message: str
    server_address: ServerAddress | None

    def __init__(
        self,
        text: str,
        *,
        error_code: int,
        error_message: str,
        server_address: ServerAddress | None,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.error_code = error_code
        self.error_message = error_message
        self.server_address = server_address


@dataclass
class CursorNotFoundException(QueryFailureException):
    """
    A fetch targeted a server-side cursor that no longer exists (it timed out,
    or was killed out-of-band).

    Attributes:
        cursor_id: the id of the cursor that could not be found.
        server_address: the address of the server that was expected to hold it.
    """

    cursor_id: int

    def __init__(
        self,
        *,
        cursor_id: int,
        server_address: ServerAddress,
    ) -> None:
        text = f"Cursor {cursor_id} not found on server {server_address}"
        super().__init__(
            text,
            error_code=CURSOR_NOT_FOUND_CODE,
            error_message=text,
            server_address=server_address,
        )
        self.cursor_id = cursor_id


def _is_namespace_not_found(error_code: int, error_message: str) -> bool:
    return (
        NAMESPACE_NOT_FOUND_MARKER in error_message
        or error_code == NAMESPACE_NOT_FOUND_CODE
    )


def translate_command_exception(
    command_exception: CommandException,
    server_cursor: ServerCursor,
) -> QueryFailureException:
    """
    Translate a command error received in reply to a getMore command
    into the query-failure family: code 43 means the cursor is gone.
    """

    if command_exception.error_code == CURSOR_NOT_FOUND_CODE:
        return CursorNotFoundException(
            cursor_id=server_cursor.id,
            server_address=server_cursor.address,
        )
    return QueryFailureException(
        (
            f"Query failed with error code {command_exception.error_code} and "
            f"error message '{command_exception.error_message}' on server "
            f"{command_exception.server_address or server_cursor.address}"
        ),
        error_code=command_exception.error_code,
        error_message=command_exception.error_message,
        server_address=command_exception.server_address or server_cursor.address,
    )
