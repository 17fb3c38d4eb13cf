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

import json
import logging
import time

import pytest
import werkzeug
from pytest_httpserver import HTTPServer

from drivercore.exceptions import (
    CommandException,
    DriverHttpException,
    DriverTimeoutException,
    NamespaceNotFoundException,
    UnexpectedResponseException,
    _TimeoutContext,
)
from drivercore.http import APICommander
from drivercore.http.request_tools import HttpMethod
from drivercore.results import ServerAddress

SLEEPER_TIME_MS = 500
TIMEOUT_PARAM_MS = 100


def response_sleeper(request: werkzeug.Request) -> werkzeug.Response:
    time.sleep(SLEEPER_TIME_MS / 1000)
    return werkzeug.Response()


class TestAPICommander:
    @pytest.mark.describe("test of APICommander equality")
    def test_apicommander_equality(self) -> None:
        cmd1 = APICommander(
            api_endpoint="api_endpoint1",
            path="path1",
            headers={"h": "headers1"},
            redacted_header_names=["redacted_header_names1"],
            server_address=ServerAddress("h1", 1),
        )
        cmd2 = APICommander(
            api_endpoint="api_endpoint1/",
            path="/path1",
            headers={"h": "headers1"},
            redacted_header_names=["redacted_header_names1"],
            server_address=ServerAddress("h1", 1),
        )
        assert cmd1 == cmd2
        assert cmd1.full_path == "api_endpoint1/path1"
        assert cmd1 != APICommander(api_endpoint="api_endpoint1", path="path1")
        assert cmd1 != "api_endpoint1/path1"
        assert "api_endpoint1/path1" in repr(cmd1)

    @pytest.mark.describe("test of APICommander request, sync")
    def test_apicommander_request_sync(self, httpserver: HTTPServer) -> None:
        base_endpoint = httpserver.url_for("/")
        base_path = "/base"
        extra_path = "extra/path"
        cmd = APICommander(
            api_endpoint=base_endpoint,
            path=base_path,
            headers={"h": "v", "skipped": None},
        )

        httpserver.expect_oneshot_request(
            base_path,
            method=HttpMethod.POST,
            headers={"h": "v", "Content-Type": "application/json"},
            data='{"ping":1}',
        ).respond_with_json({"ok": 1, "r": 1})
        resp_b = cmd.request(payload={"ping": 1})
        assert resp_b == {"ok": 1, "r": 1}

        httpserver.expect_oneshot_request(
            "/".join([base_path, extra_path]),
            method=HttpMethod.GET,
            query_string={"p": "1"},
        ).respond_with_json({"r": 2})
        resp_e = cmd.request(
            http_method=HttpMethod.GET,
            additional_path=extra_path,
            request_params={"p": "1"},
        )
        assert resp_e == {"r": 2}
        httpserver.check_assertions()

    @pytest.mark.describe("test of APICommander request, async")
    async def test_apicommander_request_async(self, httpserver: HTTPServer) -> None:
        base_endpoint = httpserver.url_for("/")
        base_path = "/base"
        extra_path = "extra/path"
        async with APICommander(
            api_endpoint=base_endpoint,
            path=base_path,
            headers={"h": "v"},
        ) as cmd:
            httpserver.expect_oneshot_request(
                base_path,
                method=HttpMethod.POST,
                headers={"h": "v"},
                data='{"ping":1}',
            ).respond_with_json({"ok": 1, "r": 1})
            resp_b = await cmd.async_request(payload={"ping": 1})
            assert resp_b == {"ok": 1, "r": 1}

            httpserver.expect_oneshot_request(
                "/".join([base_path, extra_path]),
                method=HttpMethod.POST,
                data="{}",
            ).respond_with_json({"r": 2})
            resp_e = await cmd.async_request(
                payload={},
                additional_path=extra_path,
            )
            assert resp_e == {"r": 2}

    @pytest.mark.describe("test of APICommander exceptions, sync")
    def test_apicommander_exceptions_sync(self, httpserver: HTTPServer) -> None:
        base_endpoint = httpserver.url_for("/")
        base_path = "/base"
        address = ServerAddress("gateway", 8080)
        cmd = APICommander(
            api_endpoint=base_endpoint,
            path=base_path,
            server_address=address,
        )

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_data("{unparseable")
        with pytest.raises(UnexpectedResponseException):
            cmd.request(payload={"ping": 1})

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_data("[1, 2]")
        with pytest.raises(UnexpectedResponseException):
            cmd.request()

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_json({"ok": 0, "code": 13, "errmsg": "unauthorized"})
        with pytest.raises(CommandException) as exc_info:
            cmd.request()
        assert exc_info.value.error_code == 13
        assert exc_info.value.error_message == "unauthorized"
        assert exc_info.value.server_address == address
        assert "gateway:8080" in str(exc_info.value)

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_json({"ok": 0, "code": 26, "errmsg": "ns not found"})
        with pytest.raises(NamespaceNotFoundException):
            cmd.request()

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_json({"ok": 0, "code": 13})
        assert cmd.request(raise_command_errors=False) == {"ok": 0, "code": 13}

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_data(
            json.dumps({"ok": 0, "errmsg": "gateway failure"}),
            status=500,
        )
        with pytest.raises(DriverHttpException) as http_exc_info:
            cmd.request()
        assert http_exc_info.value.raw_response["errmsg"] == "gateway failure"
        assert "gateway failure" in str(http_exc_info.value)
        assert http_exc_info.value.response.status_code == 500

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_data("nope", status=404)
        with pytest.raises(DriverHttpException) as http_exc_info:
            cmd.request()
        assert http_exc_info.value.raw_response == {}

    @pytest.mark.describe("test of APICommander exceptions, async")
    async def test_apicommander_exceptions_async(self, httpserver: HTTPServer) -> None:
        base_endpoint = httpserver.url_for("/")
        base_path = "/base"
        cmd = APICommander(
            api_endpoint=base_endpoint,
            path=base_path,
        )

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_data("{unparseable")
        with pytest.raises(UnexpectedResponseException):
            await cmd.async_request()

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_json({"ok": 0, "code": 13, "errmsg": "unauthorized"})
        with pytest.raises(CommandException):
            await cmd.async_request()

        httpserver.expect_oneshot_request(
            base_path,
        ).respond_with_data("{}", status=503)
        with pytest.raises(DriverHttpException):
            await cmd.async_request()

    @pytest.mark.describe("test of APICommander warnings in the reply")
    def test_apicommander_reply_warnings(
        self, httpserver: HTTPServer, caplog: pytest.LogCaptureFixture
    ) -> None:
        base_endpoint = httpserver.url_for("/")
        cmd = APICommander(api_endpoint=base_endpoint, path="base")
        httpserver.expect_oneshot_request("/base").respond_with_json(
            {"ok": 1, "warnings": ["deprecated operator"]}
        )
        with caplog.at_level(logging.WARNING):
            cmd.request()
        assert "deprecated operator" in caplog.text

    @pytest.mark.describe("test of APICommander header redaction in logs")
    def test_apicommander_header_redaction(
        self, httpserver: HTTPServer, caplog: pytest.LogCaptureFixture
    ) -> None:
        base_endpoint = httpserver.url_for("/")
        cmd = APICommander(
            api_endpoint=base_endpoint,
            path="base",
            headers={"Authorization": "Bearer s3cr3t", "X-Visible": "shown"},
        )
        httpserver.expect_oneshot_request(
            "/base",
            headers={"Authorization": "Bearer s3cr3t"},
        ).respond_with_json({"ok": 1})
        with caplog.at_level(logging.DEBUG, logger="drivercore"):
            cmd.request(payload={"ping": 1})
        assert "s3cr3t" not in caplog.text
        assert "***" in caplog.text
        assert "shown" in caplog.text


class TestAPICommanderTimeouts:
    @pytest.mark.describe("test of APICommander timeout, sync")
    def test_apicommander_timeout_sync(self, httpserver: HTTPServer) -> None:
        base_endpoint = httpserver.url_for("/")
        base_path = "/base"
        cmd = APICommander(
            api_endpoint=base_endpoint,
            path=base_path,
        )

        httpserver.expect_oneshot_request(
            base_path,
            method=HttpMethod.POST,
        ).respond_with_handler(response_sleeper)
        with pytest.raises(DriverTimeoutException) as exc_info:
            cmd.request(
                timeout_context=_TimeoutContext(
                    request_ms=TIMEOUT_PARAM_MS, label="request_timeout_ms"
                )
            )
        assert exc_info.value.timeout_type == "read"
        assert exc_info.value.endpoint is not None
        assert "request_timeout_ms" in str(exc_info.value)

    @pytest.mark.describe("test of APICommander timeout, async")
    async def test_apicommander_timeout_async(self, httpserver: HTTPServer) -> None:
        base_endpoint = httpserver.url_for("/")
        base_path = "/base"
        cmd = APICommander(
            api_endpoint=base_endpoint,
            path=base_path,
        )

        httpserver.expect_oneshot_request(
            base_path,
            method=HttpMethod.POST,
        ).respond_with_handler(response_sleeper)
        with pytest.raises(DriverTimeoutException):
            await cmd.async_request(
                timeout_context=_TimeoutContext(request_ms=TIMEOUT_PARAM_MS)
            )
