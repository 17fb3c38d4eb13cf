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

from enum import Enum, EnumMeta
from typing import TypeVar

T = TypeVar("T", bound="StrEnum")


class StrEnumMeta(EnumMeta):
    def _name_lookup(cls, value: str) -> str | None:
        """Return the member name matching a name or a value, case-insensitively."""
        u_value = value.upper()
        for m_name, member in cls._member_map_.items():
            if m_name.upper() == u_value or str(member.value).upper() == u_value:
                return m_name
        return None

    def __contains__(cls, value: object) -> bool:
        if isinstance(value, str):
            return cls._name_lookup(value) is not None
        return isinstance(value, cls)


class StrEnum(Enum, metaclass=StrEnumMeta):
    @classmethod
    def coerce(cls: type[T], value: str | T) -> T:
        """
        Accept either a string or an instance of the Enum itself and return
        the enum member. Strings are matched against member names and values,
        case-insensitively.

        Raises:
            ValueError: if the value does not match any member.
        """

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            m_name = cls._name_lookup(value)
            if m_name is not None:
                return cls[m_name]
        raise ValueError(
            f"Invalid value '{value}' for {cls.__name__}. "
            f"Allowed values are: {[e.value for e in cls]}"
        )

    def __str__(self) -> str:
        return str(self.value)
