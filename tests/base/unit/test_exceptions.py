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

import asyncio

import httpx
import pytest

from drivercore.exceptions import (
    CommandException,
    CursorNotFoundException,
    DriverException,
    DriverHttpException,
    DriverTimeoutException,
    NamespaceNotFoundException,
    QueryFailureException,
    _TimeoutContext,
    to_driver_timeout_exception,
    translate_command_exception,
    wait_for,
)
from drivercore.results import ServerAddress, ServerCursor

ADDRESS = ServerAddress("db-host", 27018)


class TestCommandExceptions:
    @pytest.mark.describe("test of command exception parsing from a reply")
    def test_command_exception_from_response(self) -> None:
        reply = {"ok": 0, "code": 11000, "codeName": "DuplicateKey", "errmsg": "dup"}
        exc = CommandException.from_response(reply, server_address=ADDRESS)
        assert type(exc) is CommandException
        assert exc.error_code == 11000
        assert exc.code_name == "DuplicateKey"
        assert exc.error_message == "dup"
        assert exc.response == reply
        assert exc.server_address == ADDRESS
        assert str(exc) == (
            "Command failed with error 11000 (DuplicateKey): 'dup' on server db-host:27018"
        )

        bare = CommandException.from_response({"ok": 0}, server_address=None)
        assert bare.error_code == -1
        assert bare.error_message == ""
        assert str(bare) == "Command failed with error -1: ''"

    @pytest.mark.describe("test of namespace-not-found exception parsing")
    def test_namespace_not_found_from_response(self) -> None:
        exc = CommandException.from_response(
            {"ok": 0, "code": 26, "errmsg": "ns not found"}, server_address=ADDRESS
        )
        assert isinstance(exc, NamespaceNotFoundException)
        assert isinstance(exc, DriverException)

    @pytest.mark.describe("test of translation of fetch failures")
    def test_translate_command_exception(self) -> None:
        server_cursor = ServerCursor(123, ADDRESS)
        not_found = translate_command_exception(
            CommandException.from_response(
                {"ok": 0, "code": 43, "errmsg": "cursor id 123 not found"},
                server_address=None,
            ),
            server_cursor,
        )
        assert isinstance(not_found, CursorNotFoundException)
        assert not_found.cursor_id == 123
        assert not_found.server_address == ADDRESS
        assert not_found.error_code == 43
        assert "123" in str(not_found)

        failure = translate_command_exception(
            CommandException.from_response(
                {"ok": 0, "code": 96, "errmsg": "executor error"},
                server_address=ServerAddress("other", 1),
            ),
            server_cursor,
        )
        assert type(failure) is QueryFailureException
        assert failure.error_code == 96
        assert failure.error_message == "executor error"
        assert failure.server_address == ServerAddress("other", 1)


class TestHttpExceptions:
    @pytest.mark.describe("test of DriverHttpException from httpx errors")
    def test_driver_http_exception(self) -> None:
        request = httpx.Request("POST", "http://gw/db/command")
        response = httpx.Response(
            500, json={"ok": 0, "errmsg": "gateway down"}, request=request
        )
        httpx_error = httpx.HTTPStatusError("500", request=request, response=response)
        exc = DriverHttpException.from_httpx_error(httpx_error)
        assert isinstance(exc, httpx.HTTPStatusError)
        assert isinstance(exc, DriverException)
        assert exc.raw_response == {"ok": 0, "errmsg": "gateway down"}
        assert str(exc).startswith("gateway down. ")
        assert exc.response.status_code == 500

        plain_response = httpx.Response(502, text="<html/>", request=request)
        plain_error = httpx.HTTPStatusError(
            "502", request=request, response=plain_response
        )
        plain_exc = DriverHttpException.from_httpx_error(plain_error)
        assert plain_exc.raw_response == {}
        assert str(plain_exc) == "502"

    @pytest.mark.describe("test of timeout exception conversion")
    def test_to_driver_timeout_exception(self) -> None:
        request = httpx.Request("POST", "http://gw/db/command", content=b'{"ping":1}')
        read_timeout = httpx.ReadTimeout("timed out", request=request)
        exc = to_driver_timeout_exception(
            read_timeout, _TimeoutContext(request_ms=150, label="request_timeout_ms")
        )
        assert exc.timeout_type == "read"
        assert exc.endpoint == "http://gw/db/command"
        assert exc.raw_payload == '{"ping":1}'
        assert "request_timeout_ms = 150 ms" in exc.text

        no_request = to_driver_timeout_exception(
            httpx.ConnectTimeout("no route"), _TimeoutContext(request_ms=None)
        )
        assert no_request.timeout_type == "connect"
        assert no_request.endpoint is None
        assert no_request.text == "no route"
        assert not _TimeoutContext(request_ms=None)

    @pytest.mark.describe("test of the wait_for timeout helper")
    async def test_wait_for(self) -> None:
        async def _quick() -> int:
            return 12

        assert await wait_for(_quick(), timeout_ms=None) == 12
        assert await wait_for(_quick(), timeout_ms=1000) == 12
        with pytest.raises(DriverTimeoutException) as exc_info:
            await wait_for(asyncio.sleep(10), timeout_ms=20, timeout_label="patience")
        assert "patience = 20 ms" in exc_info.value.text
