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

from typing import Any, Dict, Tuple, TypeVar

from drivercore.utils.str_enum import StrEnum

DocumentType = Dict[str, Any]
CommandType = Dict[str, Any]
ServerVersion = Tuple[int, ...]

T = TypeVar("T")
D = TypeVar("D")


class ServerType(StrEnum):
    """
    The role of the server a connection is established to, as far as
    command routing is concerned.
    """

    STANDALONE = "standalone"
    REPLICA_SET_PRIMARY = "replicaSetPrimary"
    REPLICA_SET_SECONDARY = "replicaSetSecondary"
    SHARD_ROUTER = "shardRouter"
    UNKNOWN = "unknown"


class ReadPreferenceMode(StrEnum):
    """
    The modes a read preference can take, with their wire names as values.
    """

    PRIMARY = "primary"
    PRIMARY_PREFERRED = "primaryPreferred"
    SECONDARY = "secondary"
    SECONDARY_PREFERRED = "secondaryPreferred"
    NEAREST = "nearest"


class ReadConcernLevel(StrEnum):
    """
    Admitted values for a read concern level. `SERVER_DEFAULT` is not sent
    on the wire.
    """

    SERVER_DEFAULT = "serverDefault"
    LOCAL = "local"
    MAJORITY = "majority"
