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

# Server error codes and markers recognized by the driver core
NAMESPACE_NOT_FOUND_CODE = 26
NAMESPACE_NOT_FOUND_MARKER = "ns not found"
CURSOR_NOT_FOUND_CODE = 43

# Reply shapes
FIRST_BATCH_FIELD = "firstBatch"
NEXT_BATCH_FIELD = "nextBatch"
INLINE_RESULT_FIELD = "result"
WRAPPED_COMMAND_FIELD = "$query"
WRAPPED_READ_PREFERENCE_FIELD = "$readPreference"

# Server capability thresholds, as (major, minor) version tuples
COMMAND_CURSOR_MIN_SERVER_VERSION = (3, 2)
READ_CONCERN_MIN_SERVER_VERSION = (3, 2)
AGGREGATE_CURSOR_MIN_SERVER_VERSION = (2, 6)

# Defaults for cursors
DEFAULT_TAILABLE_POLL_INTERVAL_MS = 100

# Defaults for the HTTP command gateway connection
DEFAULT_REQUEST_TIMEOUT_MS = 10000
DEFAULT_COMMAND_PATH_TEMPLATE = "{database}/command"
DEFAULT_AUTH_HEADER = "Authorization"
FIXED_SECRET_PLACEHOLDER = "***"
DEFAULT_REDACTED_HEADER_NAMES = {
    DEFAULT_AUTH_HEADER,
}
