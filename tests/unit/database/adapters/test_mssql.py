"""Tests for the SQL Server adapter; no ODBC driver is needed."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dbexplorer.config.models import ConnectionProfile
from dbexplorer.core.exceptions import AuthenticationError, ConnectionError, ErrorCodes
from dbexplorer.database.adapters import mssql as mssql_module
from dbexplorer.database.adapters.mssql import MSSQLAdapter, _odbc_value


def _profile(**overrides):
    data = {
        "id": "ms01",
        "name": "Reporting",
        "type": "mssql",
        "host": "sql.internal",
        "database": "reports",
        "username": "sa",
        "password": "p@ss",
    }
    data.update(overrides)
    return ConnectionProfile(**data)


class OdbcError(Exception):
    """Shaped like pyodbc errors: ``(sqlstate, message)``."""


class TestConnectionString:
    def test_sql_login(self):
        dsn = MSSQLAdapter(_profile()).connection_string()

        assert dsn == (
            "DRIVER={ODBC Driver 18 for SQL Server};SERVER=sql.internal,1433;"
            "DATABASE=reports;UID=sa;PWD=p@ss;Encrypt=no;TrustServerCertificate=yes"
        )

    def test_integrated_security_without_username(self):
        dsn = MSSQLAdapter(_profile(username=None, password=None)).connection_string()

        assert "Trusted_Connection=yes" in dsn
        assert "UID=" not in dsn

    def test_tls_and_extra_params(self):
        profile = _profile(
            sslMode="verify-full",
            additionalParams={
                "driver": "ODBC Driver 17 for SQL Server",
                "ApplicationIntent": "ReadOnly",
            },
        )
        dsn = MSSQLAdapter(profile).connection_string()

        assert dsn.startswith("DRIVER={ODBC Driver 17 for SQL Server};")
        assert "Encrypt=yes;TrustServerCertificate=no" in dsn
        assert dsn.endswith(";ApplicationIntent=ReadOnly")

    @pytest.mark.parametrize(
        "value, expected",
        [("plain", "plain"), ("a;b", "{a;b}"), ("x}y", "{x}}y}"), (" padded", "{ padded}")],
    )
    def test_value_quoting(self, value, expected):
        assert _odbc_value(value) == expected

    @pytest.mark.asyncio
    async def test_open_uses_connection_string(self):
        adapter = MSSQLAdapter(_profile(timeout=2500))
        with patch.object(
            mssql_module, "_odbc_connect", new=AsyncMock(return_value=MagicMock())
        ) as connect:
            await adapter.connect()

        assert connect.call_args.args[0] == adapter.connection_string()
        assert connect.call_args.kwargs == {"autocommit": True, "timeout": 2}


class TestErrorTranslation:
    def test_login_failed(self):
        error = MSSQLAdapter(_profile()).translate_connect_error(
            OdbcError("28000", "Login failed for user 'sa'.")
        )

        assert isinstance(error, AuthenticationError)
        assert error.message == "Login failed for user 'sa'."

    def test_login_timeout(self):
        error = MSSQLAdapter(_profile()).translate_connect_error(
            OdbcError("HYT00", "Login timeout expired")
        )

        assert error.code == ErrorCodes.CONNECTION_TIMEOUT

    def test_link_failure_breaks_session(self):
        error = MSSQLAdapter(_profile()).translate_query_error(
            OdbcError("08S01", "Communication link failure"), "execute_query"
        )

        assert isinstance(error, ConnectionError)
        assert error.code == ErrorCodes.CONNECTION_CLOSED

    def test_missing_view_server_state(self):
        error = MSSQLAdapter(_profile()).translate_query_error(
            OdbcError("42000", "VIEW SERVER STATE permission was denied on object 'server'"),
            "probe",
        )

        assert error.code == ErrorCodes.INSUFFICIENT_PERMISSIONS

    def test_plain_exception_message(self):
        error = MSSQLAdapter(_profile()).translate_query_error(ValueError("bad"), "execute_query")

        assert error.code == ErrorCodes.QUERY_EXECUTION_FAILED
        assert error.message == "bad"


class TestProbesAndPlans:
    @pytest.mark.asyncio
    async def test_missing_counter_fails_probe(self):
        adapter = MSSQLAdapter(_profile())
        with patch.object(adapter, "_scalar", new=AsyncMock(return_value=None)):
            with pytest.raises(LookupError):
                await mssql_module._counter(adapter, None, "Batch Requests/sec")

    @pytest.mark.asyncio
    async def test_cache_hit_ratio(self):
        adapter = MSSQLAdapter(_profile())
        rows = [("Buffer cache hit ratio  ", 95), ("Buffer cache hit ratio base", 100)]
        with patch.object(adapter, "_query", new=AsyncMock(return_value=([], rows))):
            assert await mssql_module._cache_hit_ratio(adapter, None) == 95.0

    @pytest.mark.asyncio
    async def test_showplan_is_switched_off_again(self):
        adapter = MSSQLAdapter(_profile())
        cursor = MagicMock()
        cursor.execute = AsyncMock()
        cursor.description = [
            ("StmtText",), ("PhysicalOp",), ("EstimateRows",), ("TotalSubtreeCost",)
        ]
        cursor.fetchall = AsyncMock(
            return_value=[
                ("SELECT * FROM t", None, 100.0, 0.0032),
                ("|--Table Scan", "Table Scan", 100.0, 0.0032),
            ]
        )
        handle = MagicMock()
        handle.cursor.return_value.__aenter__.return_value = cursor

        report = await adapter._estimated_plan(handle, "SELECT * FROM t")

        statements = [call.args[0] for call in cursor.execute.call_args_list]
        assert statements == ["SET SHOWPLAN_ALL ON", "SELECT * FROM t", "SET SHOWPLAN_ALL OFF"]
        assert "1 scan operator(s): Table Scan" in report.analysis
        assert report.analysis[0].startswith("Estimated subtree cost of the statement:")
