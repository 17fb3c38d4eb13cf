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

from drivercore.codecs import (
    CollectibleDocumentFieldNameValidator,
    MappedFieldNameValidator,
    NoOpFieldNameValidator,
    command_result_decoder,
    document_decoder,
    inline_result_decoder,
    validate_field_names,
)
from drivercore.connection import Borrowed, ConnectionDescription, Owned
from drivercore.constants import ReadConcernLevel, ReadPreferenceMode, ServerType
from drivercore.exceptions import UnexpectedResponseException
from drivercore.options import DriverOptions, FullDriverOptions, defaultDriverOptions
from drivercore.read_preference import (
    DEFAULT_READ_CONCERN,
    ReadConcern,
    ReadPreference,
    nearest,
    primary,
    primary_preferred,
    secondary,
    secondary_preferred,
)
from drivercore.results import (
    Namespace,
    QueryResult,
    ServerAddress,
    ServerCursor,
    cursor_document_to_query_result,
)


class _Releasable:
    def __init__(self) -> None:
        self.release_count = 0

    def release(self) -> None:
        self.release_count += 1


class TestResults:
    @pytest.mark.describe("test of namespace parsing and validation")
    def test_namespace(self) -> None:
        namespace = Namespace.parse("db.coll.with.dots")
        assert namespace == Namespace("db", "coll.with.dots")
        assert namespace.full_name == "db.coll.with.dots"
        assert str(namespace) == "db.coll.with.dots"
        with pytest.raises(ValueError):
            Namespace.parse("nodot")
        with pytest.raises(ValueError):
            Namespace("", "coll")
        with pytest.raises(ValueError):
            Namespace("db", "")

    @pytest.mark.describe("test of server addresses and cursors")
    def test_server_address_and_cursor(self) -> None:
        assert ServerAddress() == ServerAddress("127.0.0.1", 27017)
        assert ServerAddress.parse("h:1234") == ServerAddress("h", 1234)
        assert ServerAddress.parse("h") == ServerAddress("h", 27017)
        assert str(ServerAddress("h", 1)) == "h:1"
        assert ServerCursor(5, ServerAddress()) == ServerCursor(5, ServerAddress())
        assert ServerCursor(5, ServerAddress()) != ServerCursor(5, ServerAddress("x"))
        with pytest.raises(ValueError):
            ServerCursor(0, ServerAddress())

    @pytest.mark.describe("test of query results from cursor documents")
    def test_cursor_document_to_query_result(self) -> None:
        address = ServerAddress("h", 1)
        result = cursor_document_to_query_result(
            {"id": 77, "ns": "db.coll", "firstBatch": [{"a": 1}]}, address
        )
        assert result.namespace == Namespace("db", "coll")
        assert result.results == [{"a": 1}]
        assert result.cursor == ServerCursor(77, address)
        assert "<1 documents>" in repr(result)

        final = cursor_document_to_query_result(
            {"id": 0, "ns": "db.coll", "nextBatch": []}, address, "nextBatch"
        )
        assert final.cursor is None
        assert final.cursor_id == 0

        with pytest.raises(UnexpectedResponseException):
            cursor_document_to_query_result(
                {"id": 77, "ns": "db.coll", "nextBatch": []}, address
            )
        with pytest.raises(UnexpectedResponseException):
            cursor_document_to_query_result(None, address)  # type: ignore[arg-type]


class TestReadPreference:
    @pytest.mark.describe("test of read preference documents")
    def test_read_preference(self) -> None:
        assert primary().is_primary
        assert not primary().secondary_ok
        assert primary().document == {"mode": "primary"}
        for factory in (primary_preferred, secondary, secondary_preferred, nearest):
            assert factory().secondary_ok
        assert secondary({"dc": "ny"}, {}).document == {
            "mode": "secondary",
            "tags": [{"dc": "ny"}, {}],
        }
        assert repr(nearest()) == "ReadPreference(nearest)"
        with pytest.raises(ValueError):
            ReadPreference(ReadPreferenceMode.PRIMARY, ({"dc": "ny"},))

    @pytest.mark.describe("test of read concern documents")
    def test_read_concern(self) -> None:
        assert DEFAULT_READ_CONCERN.is_server_default
        assert DEFAULT_READ_CONCERN.document == {}
        majority = ReadConcern(ReadConcernLevel.MAJORITY)
        assert not majority.is_server_default
        assert majority.document == {"level": "majority"}


class TestConnectionTypes:
    @pytest.mark.describe("test of connection description version checks")
    def test_connection_description(self) -> None:
        description = ConnectionDescription(
            server_address=ServerAddress(), server_version=(3, 2, 1)
        )
        assert description.server_type == ServerType.STANDALONE
        assert description.server_is_at_least((3, 2))
        assert description.server_is_at_least((3, 2, 1))
        assert not description.server_is_at_least((3, 4))

    @pytest.mark.describe("test of owned and borrowed resource handles")
    def test_owned_and_borrowed(self) -> None:
        owned_resource = _Releasable()
        borrowed_resource = _Releasable()
        owned = Owned(owned_resource)
        borrowed = Borrowed(borrowed_resource)
        owned.release()
        borrowed.release()
        assert owned.resource is owned_resource
        assert owned_resource.release_count == 1
        assert borrowed_resource.release_count == 0


class TestDriverOptions:
    @pytest.mark.describe("test of driver options override")
    def test_driver_options_override(self) -> None:
        assert defaultDriverOptions.tailable_poll_interval_ms == 100
        assert defaultDriverOptions.request_timeout_ms == 10000
        assert defaultDriverOptions.with_override(None) is defaultDriverOptions

        overridden = defaultDriverOptions.with_override(
            DriverOptions(tailable_poll_interval_ms=5)
        )
        assert overridden == FullDriverOptions(
            tailable_poll_interval_ms=5, request_timeout_ms=10000
        )
        assert overridden.with_override(DriverOptions(request_timeout_ms=0)) == (
            FullDriverOptions(tailable_poll_interval_ms=5, request_timeout_ms=0)
        )
        with pytest.raises(ValueError):
            FullDriverOptions(tailable_poll_interval_ms=-1, request_timeout_ms=0)


class TestCodecs:
    @pytest.mark.describe("test of reply decoders")
    def test_reply_decoders(self) -> None:
        def id_decoder(document: dict[str, int]) -> int:
            return document["_id"]

        cursor_reply = {
            "cursor": {"id": 1, "ns": "db.c", "firstBatch": [{"_id": 4}]},
            "ok": 1,
        }
        decoded = command_result_decoder(id_decoder)(cursor_reply)
        assert decoded["cursor"]["firstBatch"] == [4]
        assert decoded["cursor"]["id"] == 1
        assert cursor_reply["cursor"]["firstBatch"] == [{"_id": 4}]

        inline_reply = {"result": [{"_id": 5}, {"_id": 6}], "ok": 1}
        assert inline_result_decoder(id_decoder)(inline_reply)["result"] == [5, 6]
        assert document_decoder(inline_reply) is inline_reply

    @pytest.mark.describe("test of field name validators")
    def test_field_name_validators(self) -> None:
        document = {"$set": {"a.b": 1}, "documents": [{"ok": {"nested": 1}}]}
        validate_field_names(document, NoOpFieldNameValidator())
        with pytest.raises(ValueError):
            validate_field_names(document, CollectibleDocumentFieldNameValidator())

        mapped = MappedFieldNameValidator(
            NoOpFieldNameValidator(),
            {"documents": CollectibleDocumentFieldNameValidator()},
        )
        validate_field_names(document, mapped)
        with pytest.raises(ValueError):
            validate_field_names({"documents": [{"x": {"$bad": 1}}]}, mapped)
        assert "documents" in repr(mapped)
