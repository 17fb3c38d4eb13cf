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
from types import TracebackType
from typing import Any, Dict, Iterable, cast

import httpx

from drivercore.exceptions import (
    CommandException,
    DriverHttpException,
    UnexpectedResponseException,
    _TimeoutContext,
    to_driver_timeout_exception,
)
from drivercore.http.request_tools import (
    HttpMethod,
    log_httpx_request,
    log_httpx_response,
    to_httpx_timeout,
)
from drivercore.results import ServerAddress
from drivercore.settings.defaults import (
    DEFAULT_REDACTED_HEADER_NAMES,
    FIXED_SECRET_PLACEHOLDER,
)

logger = logging.getLogger(__name__)


class APICommander:
    """
    A JSON-over-HTTP client for a command gateway: each request carries one
    command document as its JSON body, each response one reply document.
    Replies with a falsy "ok" field are raised as CommandException.

    Args:
        api_endpoint: the base URL of the gateway.
        path: a path prefix for the requests, appended to the endpoint.
        headers: additional headers. Those with a None value are not sent.
        redacted_header_names: the headers whose value is masked in logs.
        server_address: the address reported in command errors.
    """

    client = httpx.Client()

    def __init__(
        self,
        api_endpoint: str,
        path: str = "",
        headers: dict[str, str | None] = {},
        redacted_header_names: Iterable[str] = DEFAULT_REDACTED_HEADER_NAMES,
        server_address: ServerAddress | None = None,
    ) -> None:
        self.async_client = httpx.AsyncClient()
        self.api_endpoint = api_endpoint.rstrip("/")
        self.path = path.lstrip("/")
        self.headers = headers
        self.redacted_header_names = set(redacted_header_names)
        self.server_address = server_address

        self.full_headers: dict[str, str] = {
            **{k: v for k, v in self.headers.items() if v is not None},
            **{"Content-Type": "application/json"},
        }
        self._loggable_headers = {
            k: v if k not in self.redacted_header_names else FIXED_SECRET_PLACEHOLDER
            for k, v in self.full_headers.items()
        }
        self.full_path = ("/".join([self.api_endpoint, self.path])).rstrip("/")

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}("{self.full_path}")'

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, APICommander):
            return all(
                [
                    self.api_endpoint == other.api_endpoint,
                    self.path == other.path,
                    self.headers == other.headers,
                    self.redacted_header_names == other.redacted_header_names,
                    self.server_address == other.server_address,
                ]
            )
        else:
            return False

    async def __aenter__(self) -> APICommander:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        await self.async_client.aclose()

    def _raw_response_to_json(
        self,
        raw_response: httpx.Response,
        raise_command_errors: bool,
        payload: dict[str, Any] | None,
    ) -> dict[str, Any]:
        # try to process the httpx raw response into a JSON or throw a failure
        raw_response_json: dict[str, Any]
        try:
            raw_response_json = cast(
                Dict[str, Any],
                raw_response.json(),
            )
        except ValueError:
            # json() parsing has failed (e.g., empty body)
            if payload is not None:
                command_desc = "/".join(sorted(payload.keys()))
            else:
                command_desc = "(none)"
            raise UnexpectedResponseException(
                text=f"Unparseable response from gateway for '{command_desc}' command.",
                raw_response={
                    "raw_response": raw_response.text,
                },
            )
        if not isinstance(raw_response_json, dict):
            raise UnexpectedResponseException(
                text="Response from gateway is not a JSON object.",
                raw_response={
                    "raw_response": raw_response.text,
                },
            )

        if raise_command_errors and not raw_response_json.get("ok", 1):
            logger.warning(
                "APICommander about to raise from: "
                f"{raw_response_json.get('errmsg') or raw_response_json}"
            )
            raise CommandException.from_response(
                raw_response_json,
                server_address=self.server_address,
            )

        warning_messages: list[str] = raw_response_json.get("warnings") or []
        for warning_message in warning_messages:
            logger.warning(f"The gateway returned a warning: {warning_message}")

        return raw_response_json

    def _compose_request_url(self, additional_path: str | None) -> str:
        if additional_path:
            return "/".join([self.full_path.rstrip("/"), additional_path.lstrip("/")])
        else:
            return self.full_path

    def _encode_payload(self, payload: dict[str, Any] | None) -> bytes | None:
        if payload is not None:
            return json.dumps(
                payload,
                allow_nan=False,
                separators=(",", ":"),
            ).encode()
        else:
            return None

    def raw_request(
        self,
        *,
        http_method: str = HttpMethod.POST,
        payload: dict[str, Any] | None = None,
        additional_path: str | None = None,
        request_params: dict[str, Any] = {},
        timeout_context: _TimeoutContext | None = None,
    ) -> httpx.Response:
        timeout = to_httpx_timeout(timeout_context)
        request_url = self._compose_request_url(additional_path)
        log_httpx_request(
            http_method=http_method,
            full_url=request_url,
            request_params=request_params,
            redacted_request_headers=self._loggable_headers,
            payload=payload,
            timeout_context=timeout_context,
        )
        encoded_payload = self._encode_payload(payload)

        try:
            raw_response = self.client.request(
                method=http_method,
                url=request_url,
                content=encoded_payload,
                params=request_params,
                timeout=timeout,
                headers=self.full_headers,
            )
        except httpx.TimeoutException as timeout_exc:
            raise to_driver_timeout_exception(
                timeout_exc, timeout_context or _TimeoutContext(request_ms=None)
            )

        try:
            raw_response.raise_for_status()
        except httpx.HTTPStatusError as http_exc:
            raise DriverHttpException.from_httpx_error(http_exc)
        log_httpx_response(response=raw_response)
        return raw_response

    async def async_raw_request(
        self,
        *,
        http_method: str = HttpMethod.POST,
        payload: dict[str, Any] | None = None,
        additional_path: str | None = None,
        request_params: dict[str, Any] = {},
        timeout_context: _TimeoutContext | None = None,
    ) -> httpx.Response:
        timeout = to_httpx_timeout(timeout_context)
        request_url = self._compose_request_url(additional_path)
        log_httpx_request(
            http_method=http_method,
            full_url=request_url,
            request_params=request_params,
            redacted_request_headers=self._loggable_headers,
            payload=payload,
            timeout_context=timeout_context,
        )
        encoded_payload = self._encode_payload(payload)

        try:
            raw_response = await self.async_client.request(
                method=http_method,
                url=request_url,
                content=encoded_payload,
                params=request_params,
                timeout=timeout,
                headers=self.full_headers,
            )
        except httpx.TimeoutException as timeout_exc:
            raise to_driver_timeout_exception(
                timeout_exc, timeout_context or _TimeoutContext(request_ms=None)
            )

        try:
            raw_response.raise_for_status()
        except httpx.HTTPStatusError as http_exc:
            raise DriverHttpException.from_httpx_error(http_exc)
        log_httpx_response(response=raw_response)
        return raw_response

    def request(
        self,
        *,
        http_method: str = HttpMethod.POST,
        payload: dict[str, Any] | None = None,
        additional_path: str | None = None,
        request_params: dict[str, Any] = {},
        raise_command_errors: bool = True,
        timeout_context: _TimeoutContext | None = None,
    ) -> dict[str, Any]:
        raw_response = self.raw_request(
            http_method=http_method,
            payload=payload,
            additional_path=additional_path,
            request_params=request_params,
            timeout_context=timeout_context,
        )
        return self._raw_response_to_json(
            raw_response, raise_command_errors=raise_command_errors, payload=payload
        )

    async def async_request(
        self,
        *,
        http_method: str = HttpMethod.POST,
        payload: dict[str, Any] | None = None,
        additional_path: str | None = None,
        request_params: dict[str, Any] = {},
        raise_command_errors: bool = True,
        timeout_context: _TimeoutContext | None = None,
    ) -> dict[str, Any]:
        raw_response = await self.async_raw_request(
            http_method=http_method,
            payload=payload,
            additional_path=additional_path,
            request_params=request_params,
            timeout_context=timeout_context,
        )
        return self._raw_response_to_json(
            raw_response, raise_command_errors=raise_command_errors, payload=payload
        )
