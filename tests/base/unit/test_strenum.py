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

import pytest

from drivercore.constants import ReadConcernLevel, ReadPreferenceMode, ServerType


class TestStrEnum:
    @pytest.mark.describe("test of membership in the driver string enums")
    def test_strenum_contains(self) -> None:
        assert "shardRouter" in ServerType
        assert "SHARD_ROUTER" in ServerType
        assert "shardrouter" in ServerType
        assert "secondaryPreferred" in ReadPreferenceMode
        assert "secondary_preferred" in ReadPreferenceMode
        assert "mongos" not in ServerType
        assert "secondary-preferred" not in ReadPreferenceMode
        assert ServerType.UNKNOWN in ServerType
        assert {"mode": "primary"} not in ReadPreferenceMode

    @pytest.mark.describe("test of coercion into the driver string enums")
    def test_strenum_coerce(self) -> None:
        assert ServerType.coerce("shardRouter") == ServerType.SHARD_ROUTER
        assert ServerType.coerce("shard_router") == ServerType.SHARD_ROUTER
        assert ServerType.coerce(ServerType.STANDALONE) is ServerType.STANDALONE
        assert ReadPreferenceMode.coerce("SECONDARY_PREFERRED") == (
            ReadPreferenceMode.SECONDARY_PREFERRED
        )
        assert ReadConcernLevel.coerce("Majority") == ReadConcernLevel.MAJORITY
        with pytest.raises(ValueError) as exc_info:
            ReadPreferenceMode.coerce("fastest")
        assert "ReadPreferenceMode" in str(exc_info.value)
        assert "'nearest'" in str(exc_info.value)

    @pytest.mark.describe("test of the wire names of the driver string enums")
    def test_strenum_str(self) -> None:
        assert str(ReadPreferenceMode.PRIMARY_PREFERRED) == "primaryPreferred"
        assert str(ServerType.REPLICA_SET_SECONDARY) == "replicaSetSecondary"
        assert f"{ReadConcernLevel.LOCAL}" == "local"
