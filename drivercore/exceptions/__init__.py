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
from dataclasses import dataclass
from typing import Awaitable

import httpx

from drivercore.constants import T
from drivercore.exceptions.command_exceptions import (
    CommandException,
    CursorNotFoundException,
    NamespaceNotFoundException,
    QueryFailureException,
    translate_command_exception,
)
from drivercore.exceptions.driver_exceptions import (
    CursorException,
    CursorInterruptedException,
    DriverException,
    DriverHttpException,
    DriverTimeoutException,
    InvalidOperationException,
    UnexpectedResponseException,
)


@dataclass
class _TimeoutContext:
    """
    This class encodes standardized "enriched information" attached to a timeout
    value to obey. This makes it possible, in case the timeout is raised, to present
    the user with a better error message detailing the name of the setting responsible
    for the timeout.

    Args:
        request_ms: the number of milliseconds a given request is allowed to last.
        label: a string, providing the name of the timeout setting as known by the user.
    """

    request_ms: int | None
    label: str | None

    def __init__(
        self,
        *,
        request_ms: int | None,
        label: str | None = None,
    ) -> None:
        self.request_ms = request_ms
        self.label = label

    def __bool__(self) -> bool:
        return self.request_ms is not None


def to_driver_timeout_exception(
    httpx_timeout: httpx.TimeoutException,
    timeout_context: _TimeoutContext,
) -> DriverTimeoutException:
    text: str
    text_0 = str(httpx_timeout) or "timed out"
    timeout_ms = timeout_context.request_ms
    timeout_label = timeout_context.label
    if timeout_ms:
        if timeout_label:
            text = f"{text_0} (timeout honoured: {timeout_label} = {timeout_ms} ms)"
        else:
            text = f"{text_0} (timeout honoured: {timeout_ms} ms)"
    else:
        text = text_0
    if isinstance(httpx_timeout, httpx.ConnectTimeout):
        timeout_type = "connect"
    elif isinstance(httpx_timeout, httpx.ReadTimeout):
        timeout_type = "read"
    elif isinstance(httpx_timeout, httpx.WriteTimeout):
        timeout_type = "write"
    elif isinstance(httpx_timeout, httpx.PoolTimeout):
        timeout_type = "pool"
    else:
        timeout_type = "generic"
    endpoint: str | None
    raw_payload: str | None
    try:
        request = httpx_timeout.request
    except RuntimeError:
        # the exception was raised without an associated request
        request = None
    if request is not None:
        endpoint = str(request.url)
        if isinstance(request.content, bytes):
            raw_payload = request.content.decode()
        else:
            raw_payload = None
    else:
        endpoint = None
        raw_payload = None
    return DriverTimeoutException(
        text=text,
        timeout_type=timeout_type,
        endpoint=endpoint,
        raw_payload=raw_payload,
    )


async def wait_for(
    awaitable: Awaitable[T],
    *,
    timeout_ms: int | None,
    timeout_label: str | None = None,
) -> T:
    """
    Await the provided awaitable, giving up after `timeout_ms` milliseconds.
    This is a caller-side bound: the awaited operation is cancelled and a
    DriverTimeoutException is raised in its place.

    Args:
        awaitable: the coroutine (or future) to wait for.
        timeout_ms: the bound in milliseconds. None or zero means no bound.
        timeout_label: a name for the bound, used in the error message.

    Returns:
        the result of the awaitable.
    """

    if not timeout_ms:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        if timeout_label:
            err_msg = (
                f"Operation timed out (timeout honoured: {timeout_label} "
                f"= {timeout_ms} ms)."
            )
        else:
            err_msg = f"Operation timed out (timeout honoured: {timeout_ms} ms)."
        raise DriverTimeoutException(
            text=err_msg,
            timeout_type="generic",
            endpoint=None,
            raw_payload=None,
        )


__all__ = [
    "CommandException",
    "CursorException",
    "CursorInterruptedException",
    "CursorNotFoundException",
    "DriverException",
    "DriverHttpException",
    "DriverTimeoutException",
    "InvalidOperationException",
    "NamespaceNotFoundException",
    "QueryFailureException",
    "UnexpectedResponseException",
    "translate_command_exception",
    "wait_for",
]

__pdoc__ = {
    "to_driver_timeout_exception": False,
    "translate_command_exception": False,
}
