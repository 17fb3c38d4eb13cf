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

import warnings

from deprecation import DeprecatedWarning


def warn_deprecated_setting(
    setting_name: str,
    *,
    deprecated_in: str,
    removed_in: str | None = None,
    details: str = "",
) -> None:
    """
    Issue a deprecation warning about a setting that is still honoured
    but scheduled for removal.

    Args:
        setting_name: the name of the setting, as known to the caller.
        deprecated_in: the version that deprecated the setting.
        removed_in: the version that will drop it, if known.
        details: a hint on what to do instead.
    """

    the_warning = DeprecatedWarning(
        f"Setting '{setting_name}'",
        deprecated_in=deprecated_in,
        removed_in=removed_in,
        details=details,
    )
    warnings.warn(
        the_warning,
        stacklevel=3,
    )
