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

import importlib.metadata


def get_version() -> str:
    try:
        return importlib.metadata.version(__package__)
    # the package is not installed (e.g. running from a source checkout)
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


__version__: str = get_version()


import drivercore.constants  # noqa: E402
import drivercore.exceptions  # noqa: F401, E402
from drivercore.connection import Borrowed, ConnectionDescription, Owned  # noqa: E402
from drivercore.cursors import AsyncBatchCursor, BatchCursor, CursorState  # noqa: E402
from drivercore.operations import AggregateOperation  # noqa: E402
from drivercore.options import DriverOptions  # noqa: E402
from drivercore.results import (  # noqa: E402
    Namespace,
    QueryResult,
    ServerAddress,
    ServerCursor,
)

__all__ = [
    "AggregateOperation",
    "AsyncBatchCursor",
    "BatchCursor",
    "Borrowed",
    "ConnectionDescription",
    "CursorState",
    "DriverOptions",
    "Namespace",
    "Owned",
    "QueryResult",
    "ServerAddress",
    "ServerCursor",
    "__version__",
]


__pdoc__ = {
    "get_version": False,
}
