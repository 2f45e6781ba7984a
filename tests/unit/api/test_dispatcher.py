"""Tests for RequestDispatcher operations and response shapes."""

from unittest.mock import AsyncMock, patch

import pytest

from dbexplorer.api import RequestDispatcher
from dbexplorer.core.exceptions import ErrorCodes


async def _save(dispatcher, data):
    response = await dispatcher.dispatch("save-connection", data)
    return response["id"]


class TestCatalogOperations:
    @pytest.mark.asyncio
    async def test_password_encrypted_at_rest_and_returned_on_details(
        self, dispatcher, store, sample_profile_data
    ):
        profile_id = await _save(dispatcher, sample_profile_data)

        record = store.read(profile_id)
        assert record["password"] != "secret123"
        assert set(record["password"]) == {"iv", "encryptedData"}

        details = await dispatcher.dispatch("get-connection-details", {"id": profile_id})
        assert details["password"] == "secret123"
        assert details["hasPassword"] is True
        assert details["name"] == "Orders DB"

    @pytest.mark.asyncio
    async def test_list_redacts_passwords(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        listed = await dispatcher.dispatch("list-connections")

        assert [p["id"] for p in listed] == [profile_id]
        assert listed[0]["password"] is None
        assert listed[0]["hasPassword"] is True

    @pytest.mark.asyncio
    async def test_details_accepts_bare_id(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        details = await dispatcher.dispatch("get-connection-details", profile_id)

        assert details["id"] == profile_id

    @pytest.mark.asyncio
    async def test_details_for_missing_id(self, dispatcher):
        assert await dispatcher.dispatch("get-connection-details", {"id": "missing"}) is None

    @pytest.mark.asyncio
    async def test_resave_ignores_has_password_flag(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)
        details = await dispatcher.dispatch("get-connection-details", profile_id)
        details["name"] = "Orders (replica)"

        assert await _save(dispatcher, details) == profile_id
        saved = await dispatcher.dispatch("get-connection-details", profile_id)
        assert saved["name"] == "Orders (replica)"
        assert saved["password"] == "secret123"

    @pytest.mark.asyncio
    async def test_invalid_profile(self, dispatcher, sample_profile_data):
        response = await dispatcher.dispatch(
            "save-connection", {**sample_profile_data, "type": "db2"}
        )

        assert response["error"].startswith("Invalid connection profile: ")

    @pytest.mark.asyncio
    async def test_unsupported_engine(self, dispatcher, sample_profile_data):
        response = await dispatcher.dispatch(
            "save-connection", {**sample_profile_data, "type": "postgresql"}
        )

        assert "error" in response
        assert await dispatcher.dispatch("list-connections") == []

    @pytest.mark.asyncio
    async def test_delete(self, dispatcher, sample_profile_data, store):
        profile_id = await _save(dispatcher, sample_profile_data)

        assert await dispatcher.dispatch("delete-connection", profile_id) == {"id": profile_id}
        assert store.read(profile_id) is None
        assert await dispatcher.dispatch("delete-connection", profile_id) == {
            "error": "Connection not found"
        }


class TestLiveOperations:
    @pytest.mark.asyncio
    async def test_missing_profile_never_reaches_a_driver(self, dispatcher, fake_adapter_class):
        response = await dispatcher.dispatch("execute-query", {"id": "missing", "text": "SELECT 1"})

        assert response["success"] is False
        assert response["error"] == "Connection not found"
        assert fake_adapter_class.opened == 0

    @pytest.mark.asyncio
    async def test_unreachable_server_leaves_no_handle(
        self, dispatcher, sample_profile_data, fake_adapter_class, fake_connections
    ):
        profile_id = await _save(dispatcher, sample_profile_data)
        fake_adapter_class.connect_error = ConnectionRefusedError("Connection refused")

        response = await dispatcher.dispatch(
            "execute-query", {"id": profile_id, "query": "SELECT 1"}
        )

        assert response["success"] is False
        assert response["error"] == "Connection refused"
        assert not fake_connections.has_handle(profile_id)

    @pytest.mark.asyncio
    async def test_execute_query(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        response = await dispatcher.dispatch(
            "execute-query", {"id": profile_id, "text": "SELECT id, name FROM users"}
        )

        assert response["success"] is True
        assert response["columns"] == ["id", "name"]
        assert response["rowCount"] == 2
        assert response["data"][1] == {"id": 2, "name": "bob"}

    @pytest.mark.asyncio
    async def test_execute_query_without_text(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        response = await dispatcher.dispatch("execute-query", {"id": profile_id})

        assert response["success"] is False
        assert response["error"].startswith("Invalid request payload: ")

    @pytest.mark.asyncio
    async def test_list_objects(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        response = await dispatcher.dispatch(
            "list-database-objects", {"id": profile_id, "kind": "Views"}
        )

        assert response == {"objects": [{"name": "views_one"}, {"name": "views_two"}]}

    @pytest.mark.asyncio
    async def test_list_objects_with_bad_kind(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        response = await dispatcher.dispatch(
            "list-database-objects", {"id": profile_id, "kind": "triggers"}
        )

        assert response["objects"] == []
        assert response["error"].startswith("Invalid request payload: kind")

    @pytest.mark.asyncio
    async def test_table_schema_and_script(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        schema = await dispatcher.dispatch("get-table-schema", {"id": profile_id, "table": "users"})
        script = await dispatcher.dispatch(
            "generate-create-script", {"id": profile_id, "tableName": "users"}
        )

        assert schema["databaseType"] == "mysql"
        assert len(schema["columns"]) == 2
        assert "CREATE TABLE" in script["script"]

    @pytest.mark.asyncio
    async def test_table_schema_for_missing_profile(self, dispatcher):
        response = await dispatcher.dispatch("get-table-schema", {"id": "missing", "table": "t"})

        assert response == {"columns": [], "databaseType": None, "error": "Connection not found"}

    @pytest.mark.asyncio
    async def test_monitoring_snapshot(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        snapshot = await dispatcher.dispatch("get-monitoring-snapshot", profile_id)

        assert snapshot["databaseType"] == "mysql"
        assert snapshot["connections"] == {"active": 0, "trend": {"value": 0, "percent": 0}}
        assert snapshot["topQueries"] == []
        assert "timestamp" in snapshot

    @pytest.mark.asyncio
    async def test_monitoring_snapshot_for_missing_profile(self, dispatcher):
        response = await dispatcher.dispatch("get-monitoring-snapshot", "missing")

        assert response == {"error": "Connection not found"}

    @pytest.mark.asyncio
    async def test_estimated_plan(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        response = await dispatcher.dispatch(
            "get-estimated-plan", {"id": profile_id, "text": "SELECT * FROM users"}
        )

        assert response["plan"].startswith("Fake Estimated Execution Plan for query:")

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        connected = await dispatcher.dispatch("connect", profile_id)
        first = await dispatcher.dispatch("disconnect", profile_id)
        second = await dispatcher.dispatch("disconnect", profile_id)

        assert connected["success"] is True
        assert first == {"success": True, "wasConnected": True}
        assert second == {"success": True, "wasConnected": False}

    @pytest.mark.asyncio
    async def test_test_connection_by_id(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)

        response = await dispatcher.dispatch("test-connection", {"id": profile_id})

        assert response == {
            "success": True,
            "message": "Successfully connected to Orders DB (db.internal:3306)",
        }

    @pytest.mark.asyncio
    async def test_test_connection_reuses_stored_password(self, dispatcher, sample_profile_data):
        profile_id = await _save(dispatcher, sample_profile_data)
        edited = {k: v for k, v in sample_profile_data.items() if k != "password"}
        edited.update(id=profile_id, host="db2.internal")

        with patch.object(
            dispatcher.connection_service,
            "test",
            new=AsyncMock(wraps=dispatcher.connection_service.test),
        ) as tested:
            response = await dispatcher.dispatch("test-connection", edited)

        profile = tested.call_args.args[0]
        assert profile.host == "db2.internal"
        assert profile.plain_password == "secret123"
        assert response["message"].endswith("(db2.internal:3306)")


class TestDispatch:
    def test_operation_table(self, dispatcher):
        assert sorted(dispatcher.operations) == sorted(
            [
                "save-connection",
                "list-connections",
                "get-connection-details",
                "delete-connection",
                "test-connection",
                "list-database-objects",
                "get-table-schema",
                "execute-query",
                "get-monitoring-snapshot",
                "get-estimated-plan",
                "connect",
                "disconnect",
                "generate-create-script",
            ]
        )

    @pytest.mark.asyncio
    async def test_unknown_operation(self, dispatcher):
        response = await dispatcher.dispatch("drop-everything", {})

        assert response == {
            "error": "Unknown operation: drop-everything",
            "code": ErrorCodes.UNKNOWN_OPERATION,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", [["list-connections"], {"x": 1}, None, 7])
    async def test_non_string_operation_is_unknown(self, dispatcher, operation):
        response = await dispatcher.dispatch(operation, {})

        assert response == {
            "error": f"Unknown operation: {operation}",
            "code": ErrorCodes.UNKNOWN_OPERATION,
        }

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failure_value(self, dispatcher):
        with patch.object(
            dispatcher.connection_service,
            "disconnect",
            new=AsyncMock(side_effect=RuntimeError("kaboom")),
        ):
            response = await dispatcher.dispatch("disconnect", "abc")

        assert response == {"success": False, "error": "kaboom"}

    @pytest.mark.asyncio
    async def test_test_connection_payload_error(self, dispatcher):
        response = await dispatcher.dispatch("test-connection", {"type": "db2"})

        assert response["success"] is False
        assert response["message"].startswith("Connection test failed: Invalid connection profile")

    def test_from_settings(self, settings):
        dispatcher = RequestDispatcher.from_settings(settings)

        assert dispatcher.connections.store.directory == settings.connections_dir
        assert dispatcher.settings is settings

    @pytest.mark.asyncio
    async def test_close_releases_handles(self, dispatcher, sample_profile_data, fake_connections):
        profile_id = await _save(dispatcher, sample_profile_data)
        await dispatcher.dispatch("connect", profile_id)

        await dispatcher.close()

        assert not fake_connections.has_handle(profile_id)


class TestUnreachableHost:
    @pytest.mark.asyncio
    async def test_test_connection_times_out_without_caching(
        self, dispatcher, sample_profile_data, fake_adapter_class, fake_connections
    ):
        profile_id = await _save(dispatcher, {**sample_profile_data, "timeout": 20})
        fake_adapter_class.connect_delay = 1.0

        response = await dispatcher.dispatch("test-connection", {"id": profile_id})

        assert response == {
            "success": False,
            "message": "Connection test failed: "
            "Connection to db.internal:3306 timed out after 20 ms",
        }
        assert not fake_connections.has_handle(profile_id)
        assert fake_adapter_class.closed == 0
