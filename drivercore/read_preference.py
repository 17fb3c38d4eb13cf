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

from dataclasses import dataclass, field
from typing import Any

from drivercore.constants import ReadConcernLevel, ReadPreferenceMode


@dataclass(frozen=True)
class ReadPreference:
    """
    A policy describing which members of a deployment may serve a read.

    Instances are usually obtained through the module-level factories
    (`primary()`, `secondary()`, ...).

    Attributes:
        mode: the read preference mode.
        tag_sets: an optional list of tag-set documents narrowing the
            eligible members. Not admitted with the primary mode.
    """

    mode: ReadPreferenceMode
    tag_sets: tuple[dict[str, str], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.mode == ReadPreferenceMode.PRIMARY and self.tag_sets:
            raise ValueError("Read preference 'primary' cannot be combined with tags.")

    def __repr__(self) -> str:
        if self.tag_sets:
            return f"{self.__class__.__name__}({self.mode.value}, tags={list(self.tag_sets)})"
        return f"{self.__class__.__name__}({self.mode.value})"

    @property
    def is_primary(self) -> bool:
        return self.mode == ReadPreferenceMode.PRIMARY

    @property
    def secondary_ok(self) -> bool:
        """Whether a non-primary member is allowed to serve the read."""
        return not self.is_primary

    @property
    def document(self) -> dict[str, Any]:
        """The document form of the read preference, as sent to a router."""
        doc: dict[str, Any] = {"mode": self.mode.value}
        if self.tag_sets:
            doc["tags"] = [dict(tag_set) for tag_set in self.tag_sets]
        return doc


def primary() -> ReadPreference:
    return ReadPreference(ReadPreferenceMode.PRIMARY)


def primary_preferred(*tag_sets: dict[str, str]) -> ReadPreference:
    return ReadPreference(ReadPreferenceMode.PRIMARY_PREFERRED, tuple(tag_sets))


def secondary(*tag_sets: dict[str, str]) -> ReadPreference:
    return ReadPreference(ReadPreferenceMode.SECONDARY, tuple(tag_sets))


def secondary_preferred(*tag_sets: dict[str, str]) -> ReadPreference:
    return ReadPreference(ReadPreferenceMode.SECONDARY_PREFERRED, tuple(tag_sets))


def nearest(*tag_sets: dict[str, str]) -> ReadPreference:
    return ReadPreference(ReadPreferenceMode.NEAREST, tuple(tag_sets))


@dataclass(frozen=True)
class ReadConcern:
    """
    The read concern attached to a read command. The server default
    is never sent on the wire.
    """

    level: ReadConcernLevel = ReadConcernLevel.SERVER_DEFAULT

    @property
    def is_server_default(self) -> bool:
        return self.level == ReadConcernLevel.SERVER_DEFAULT

    @property
    def document(self) -> dict[str, Any]:
        if self.is_server_default:
            return {}
        return {"level": self.level.value}


DEFAULT_READ_CONCERN = ReadConcern()
