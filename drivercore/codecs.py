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

from typing import Any, Callable, Dict, Mapping, Protocol

from drivercore.constants import DocumentType, T
from drivercore.settings.defaults import FIRST_BATCH_FIELD, INLINE_RESULT_FIELD

# A decoder turns a raw reply (or a raw document) into its decoded form.
Decoder = Callable[[Dict[str, Any]], T]


def document_decoder(document: DocumentType) -> DocumentType:
    """The generic decoder: documents are returned as plain dictionaries."""
    return document


def command_result_decoder(
    decoder: Decoder[T],
    field_name: str = FIRST_BATCH_FIELD,
) -> Decoder[DocumentType]:
    """
    Build a reply decoder applying `decoder` to each of the documents found
    in a command reply, under either `cursor.<field_name>` (cursor replies)
    or `<field_name>` at the top level (inline replies such as `result`).
    The rest of the reply is left untouched.

    Args:
        decoder: the decoder for the individual documents.
        field_name: the name of the array holding the documents.

    Returns:
        a decoder for the whole reply.
    """

    def _decode_reply(reply: DocumentType) -> DocumentType:
        decoded = dict(reply)
        cursor_doc = reply.get("cursor")
        if isinstance(cursor_doc, dict) and field_name in cursor_doc:
            decoded["cursor"] = {
                **cursor_doc,
                field_name: [decoder(doc) for doc in cursor_doc[field_name] or []],
            }
        elif field_name in reply:
            decoded[field_name] = [decoder(doc) for doc in reply[field_name] or []]
        return decoded

    return _decode_reply


def inline_result_decoder(decoder: Decoder[T]) -> Decoder[DocumentType]:
    """A reply decoder for inline replies carrying the documents in `result`."""
    return command_result_decoder(decoder, INLINE_RESULT_FIELD)


class FieldNameValidator(Protocol):
    """
    A rule about which field names are admissible when encoding a command.
    Nested documents are checked with the validator returned by
    `get_validator_for_field` for the field holding them.
    """

    def validate(self, field_name: str) -> bool: ...

    def get_validator_for_field(self, field_name: str) -> FieldNameValidator: ...


class NoOpFieldNameValidator:
    """Accept any field name, at any depth."""

    def validate(self, field_name: str) -> bool:
        return True

    def get_validator_for_field(self, field_name: str) -> FieldNameValidator:
        return self

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class CollectibleDocumentFieldNameValidator:
    """
    Accept only field names that can be stored in a document: no leading '$'
    and no '.' anywhere in the name.
    """

    def validate(self, field_name: str) -> bool:
        return not field_name.startswith("$") and "." not in field_name

    def get_validator_for_field(self, field_name: str) -> FieldNameValidator:
        return self

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class MappedFieldNameValidator:
    """
    Validate top-level field names with a default validator, switching
    to a dedicated validator for the contents of specific fields
    (e.g. the `documents` array of an insert command).
    """

    def __init__(
        self,
        default_validator: FieldNameValidator,
        field_validators: Mapping[str, FieldNameValidator],
    ) -> None:
        self.default_validator = default_validator
        self.field_validators = dict(field_validators)

    def validate(self, field_name: str) -> bool:
        return self.default_validator.validate(field_name)

    def get_validator_for_field(self, field_name: str) -> FieldNameValidator:
        if field_name in self.field_validators:
            return self.field_validators[field_name]
        return self.default_validator.get_validator_for_field(field_name)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.default_validator!r}, "
            f"fields={sorted(self.field_validators)})"
        )


def validate_field_names(document: DocumentType, validator: FieldNameValidator) -> None:
    """
    Walk a document and check all of its field names against the validator.

    Raises:
        ValueError: at the first field name the validator rejects.
    """

    for field_name, value in document.items():
        if not validator.validate(field_name):
            raise ValueError(f"Invalid document field name: '{field_name}'.")
        field_validator = validator.get_validator_for_field(field_name)
        _validate_value(value, field_validator)


def _validate_value(value: Any, validator: FieldNameValidator) -> None:
    if isinstance(value, dict):
        validate_field_names(value, validator)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _validate_value(item, validator)
