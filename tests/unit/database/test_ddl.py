"""Tests for CREATE TABLE script builders."""

import json

from dbexplorer.database.ddl import (
    MongoDBScriptBuilder,
    MSSQLScriptBuilder,
    MySQLScriptBuilder,
    OracleScriptBuilder,
    PostgreSQLScriptBuilder,
    SQLiteScriptBuilder,
    TableScriptBuilder,
)
from dbexplorer.database.models import ColumnDescriptor


def _users_columns():
    return [
        ColumnDescriptor("id", "int", nullable=False, is_primary_key=True, is_auto_increment=True),
        ColumnDescriptor("name", "varchar", char_max_length=40),
    ]


class TestGenericBuilder:
    def test_decimal_and_default(self):
        column = ColumnDescriptor(
            "balance", "decimal", numeric_precision=10, numeric_scale=2, default_value="0"
        )

        assert TableScriptBuilder().column_definition(column) == '"balance" DECIMAL(10,2) DEFAULT 0'

    def test_type_with_arguments_kept(self):
        column = ColumnDescriptor("code", "char(3)", char_max_length=3)

        assert TableScriptBuilder().type_clause(column) == "CHAR(3)"

    def test_quote_escapes(self):
        assert TableScriptBuilder().quote('we"ird') == '"we""ird"'


class TestDialects:
    """Each dialect renders its own quoting, identity and key syntax."""

    def test_mysql(self):
        script = MySQLScriptBuilder().render("users", _users_columns())

        assert script == (
            "-- CREATE script for users\n"
            "CREATE TABLE `users` (\n"
            "  `id` INT NOT NULL AUTO_INCREMENT,\n"
            "  `name` VARCHAR(40) NULL,\n"
            "  PRIMARY KEY (`id`)\n"
            ");"
        )

    def test_postgresql_serial_becomes_identity(self):
        columns = _users_columns()
        columns[0].default_value = "nextval('users_id_seq'::regclass)"

        script = PostgreSQLScriptBuilder().render("users", columns)

        assert '"id" INT NOT NULL GENERATED BY DEFAULT AS IDENTITY' in script
        assert "nextval" not in script
        assert 'PRIMARY KEY ("id")' in script

    def test_mssql_max_length(self):
        column = ColumnDescriptor("notes", "nvarchar", char_max_length=-1)

        assert MSSQLScriptBuilder().column_definition(column) == "[notes] NVARCHAR(MAX) NULL"

    def test_mssql_identity(self):
        script = MSSQLScriptBuilder().render("users", _users_columns())

        assert "[id] INT NOT NULL IDENTITY(1,1)" in script

    def test_sqlite_inline_key(self):
        columns = [
            ColumnDescriptor(
                "id", "INTEGER", nullable=False, is_primary_key=True, is_auto_increment=True
            ),
            ColumnDescriptor("name", "TEXT"),
        ]

        script = SQLiteScriptBuilder().render("users", columns)

        assert '"id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT' in script
        assert "PRIMARY KEY (" not in script

    def test_sqlite_composite_key(self):
        columns = [
            ColumnDescriptor("label", "TEXT", is_primary_key=True),
            ColumnDescriptor("user_id", "INTEGER", is_primary_key=True),
        ]

        script = SQLiteScriptBuilder().render("tags", columns)

        assert 'PRIMARY KEY ("label", "user_id")' in script

    def test_oracle_key_as_constraint(self):
        columns = [
            ColumnDescriptor("ID", "NUMBER", nullable=False, numeric_precision=10, is_primary_key=True),
            ColumnDescriptor("AMOUNT", "NUMBER", numeric_precision=10, numeric_scale=2),
        ]

        script = OracleScriptBuilder().render("ORDERS", columns)

        assert '"AMOUNT" NUMBER(10,2)' in script
        assert script.endswith(
            'ALTER TABLE "ORDERS" ADD CONSTRAINT "PK_ORDERS" PRIMARY KEY ("ID");'
        )

    def test_mongodb_validator(self):
        columns = [
            ColumnDescriptor("_id", "objectId", nullable=False, is_primary_key=True),
            ColumnDescriptor("name", "string"),
            ColumnDescriptor("extra", "mixed"),
        ]

        script = MongoDBScriptBuilder().render("people", columns)

        assert script.startswith('// CREATE script for people\ndb.createCollection("people", ')
        body = json.loads(script[script.index("{"): -2])
        schema = body["validator"]["$jsonSchema"]
        assert schema["required"] == ["_id"]
        assert schema["properties"] == {
            "_id": {"bsonType": "objectId"},
            "name": {"bsonType": "string"},
            "extra": {},
        }
