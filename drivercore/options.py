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

from drivercore.settings.defaults import (
    DEFAULT_REQUEST_TIMEOUT_MS,
    DEFAULT_TAILABLE_POLL_INTERVAL_MS,
)
from drivercore.utils.unset import _UNSET, UnsetType


@dataclass
class DriverOptions:
    """
    A set of overrides for the driver core settings. Values that are left
    unspecified keep the value of the options they are applied onto, see
    `FullDriverOptions.with_override`.

    Attributes:
        tailable_poll_interval_ms: how long a cursor waits before asking the
            server again when a fetch returned no documents while the server
            cursor is still alive (the typical tailable cursor situation).
            Blocking cursors sleep, asynchronous cursors yield to the event loop.
            Defaults to 100 ms.
        request_timeout_ms: the timeout imposed on a single request issued
            by a network connection implementation such as the HTTP connection.
            A timeout of zero signifies that no timeout is imposed.
            Defaults to 10 s.
    """

    tailable_poll_interval_ms: int | UnsetType = _UNSET
    request_timeout_ms: int | UnsetType = _UNSET


@dataclass
class FullDriverOptions(DriverOptions):
    """
    The driver core settings, with the guarantee that all of them have
    a defined value. This is what cursors and connections actually read.

    Attributes:
        tailable_poll_interval_ms: see `DriverOptions`.
        request_timeout_ms: see `DriverOptions`.
    """

    tailable_poll_interval_ms: int
    request_timeout_ms: int

    def __init__(
        self,
        *,
        tailable_poll_interval_ms: int,
        request_timeout_ms: int,
    ) -> None:
        if tailable_poll_interval_ms < 0:
            raise ValueError("The tailable poll interval cannot be negative.")
        if request_timeout_ms < 0:
            raise ValueError("The request timeout cannot be negative.")
        DriverOptions.__init__(
            self,
            tailable_poll_interval_ms=tailable_poll_interval_ms,
            request_timeout_ms=request_timeout_ms,
        )

    def with_override(self, other: DriverOptions | None) -> FullDriverOptions:
        """
        Given an "overriding" set of options, possibly not defined in all its
        attributes, apply the override logic and return a new full options object.

        Args:
            other: a not-necessarily-fully-specified options object. All its defined
                settings take precedence.
        """

        if other is None:
            return self
        return FullDriverOptions(
            tailable_poll_interval_ms=(
                other.tailable_poll_interval_ms
                if not isinstance(other.tailable_poll_interval_ms, UnsetType)
                else self.tailable_poll_interval_ms
            ),
            request_timeout_ms=(
                other.request_timeout_ms
                if not isinstance(other.request_timeout_ms, UnsetType)
                else self.request_timeout_ms
            ),
        )


defaultDriverOptions = FullDriverOptions(
    tailable_poll_interval_ms=DEFAULT_TAILABLE_POLL_INTERVAL_MS,
    request_timeout_ms=DEFAULT_REQUEST_TIMEOUT_MS,
)
