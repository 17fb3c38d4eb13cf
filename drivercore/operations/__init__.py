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


from drivercore.operations.aggregate import AggregateOperation
from drivercore.operations.command_helper import (
    async_execute_read_command,
    async_execute_write_command,
    execute_read_command,
    execute_write_command,
    is_namespace_error,
    rethrow_if_not_namespace_error,
    wrap_command,
)

__all__ = [
    "AggregateOperation",
    "async_execute_read_command",
    "async_execute_write_command",
    "execute_read_command",
    "execute_write_command",
    "is_namespace_error",
    "rethrow_if_not_namespace_error",
    "wrap_command",
]
