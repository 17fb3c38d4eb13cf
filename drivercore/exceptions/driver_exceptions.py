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
from typing import Any

import httpx


class DriverException(Exception):
    """
    Any exception raised by the driver core and specific to it, such as:
      - the server replying to a command with an error,
      - a cursor being used after it was closed,
    but not, for instance,
      - a network error raised by a connection implementation.
    """

    pass


@dataclass
class CursorException(DriverException):
    """
    The cursor operation cannot be invoked in the current state of the cursor,
    typically because the cursor has been closed.

    Attributes:
        text: a text message about the exception.
        cursor_state: a string description of the current state
            of the cursor. See `drivercore.cursors.CursorState`.
    """

    text: str
    cursor_state: str

    def __init__(
        self,
        text: str,
        *,
        cursor_state: str,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.cursor_state = cursor_state


@dataclass
class CursorInterruptedException(DriverException):
    """
    A blocking wait for new data on a cursor was interrupted. The cursor
    is left in an unspecified state and should be closed by the caller.

    Attributes:
        text: a text message about the exception.
    """

    text: str

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.text = text


@dataclass
class DriverTimeoutException(DriverException):
    """
    An operation timed out. This can be a network timeout occurring during
    a specific request, or a caller-side bound on waiting for the result
    of an asynchronous operation.

    Attributes:
        text: a textual description of the error
        timeout_type: this denotes the phase of the request when the event
            occurred ("connect", "read", "write", "pool") or "generic" if there is
            not a specific request associated to the exception.
        endpoint: if the timeout is tied to a specific request, this is the
            URL that the request was targeting.
        raw_payload:  if the timeout is tied to a specific request, this is the
            associated payload (as a string).
    """

    text: str
    timeout_type: str
    endpoint: str | None
    raw_payload: str | None

    def __init__(
        self,
        text: str,
        *,
        timeout_type: str,
        endpoint: str | None,
        raw_payload: str | None,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.timeout_type = timeout_type
        self.endpoint = endpoint
        self.raw_payload = raw_payload


@dataclass
class DriverHttpException(DriverException, httpx.HTTPStatusError):
    """
    A request to an HTTP command gateway resulted in an HTTP 4xx or 5xx response.

    The class still is a subclass of `httpx.HTTPStatusError`, so that generic
    HTTP error handling keeps working.

    Attributes:
        text: a text message about the exception.
        raw_response: the parsed response body, if it could be read as JSON.
    """

    text: str | None
    raw_response: dict[str, Any]

    def __init__(
        self,
        text: str | None,
        *,
        httpx_error: httpx.HTTPStatusError,
        raw_response: dict[str, Any],
    ) -> None:
        DriverException.__init__(self, text)
        httpx.HTTPStatusError.__init__(
            self,
            message=str(httpx_error),
            request=httpx_error.request,
            response=httpx_error.response,
        )
        self.text = text
        self.httpx_error = httpx_error
        self.raw_response = raw_response

    def __str__(self) -> str:
        return self.text or str(self.httpx_error)

    @classmethod
    def from_httpx_error(
        cls,
        httpx_error: httpx.HTTPStatusError,
        **kwargs: Any,
    ) -> DriverHttpException:
        """Parse a httpx status error into this exception."""

        raw_response: dict[str, Any]
        # the attempt to extract a response structure cannot afford failure.
        try:
            raw_response = httpx_error.response.json() or {}
        except Exception:
            raw_response = {}
        if not isinstance(raw_response, dict):
            raw_response = {}
        errmsg = raw_response.get("errmsg")
        if errmsg:
            text = f"{errmsg}. {str(httpx_error)}"
        else:
            text = str(httpx_error)

        return cls(
            text=text,
            httpx_error=httpx_error,
            raw_response=raw_response,
            **kwargs,
        )


@dataclass
class UnexpectedResponseException(DriverException):
    """
    A server reply is malformed in that it does not have
    expected field(s), or they are of the wrong type.

    Attributes:
        text: a text message about the exception.
        raw_response: the reply, as far as it could be parsed.
    """

    text: str
    raw_response: dict[str, Any] | None

    def __init__(
        self,
        text: str,
        raw_response: dict[str, Any] | None,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.raw_response = raw_response


@dataclass
class InvalidOperationException(DriverException):
    """
    An operation was attempted that the target server, or the object it was
    invoked on, does not support: for instance, a read concern on a server
    too old to honour it, or a command on a released connection.

    Attributes:
        text: a text message about the exception.
    """

    text: str

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.text = text
