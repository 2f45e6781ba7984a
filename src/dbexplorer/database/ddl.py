"""CREATE TABLE script builders, one per SQL dialect.

Each adapter names its builder through ``script_builder_class``; the builder
turns the adapter's column descriptors back into DDL for that engine.

Example:
    >>> MySQLScriptBuilder().render("users", columns)
    '-- CREATE script for users\\nCREATE TABLE `users` (\\n  `id` INT NOT NULL AUTO_INCREMENT,...'
"""

import dataclasses
import json
from typing import Any, Dict, List, Sequence

from .models import ColumnDescriptor

_LENGTH_TYPES = ("char", "binary")
_DECIMAL_TYPES = ("decimal", "numeric")


class TableScriptBuilder:
    """Generic ANSI builder; dialects override the hooks they need."""

    explicit_null = False

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def header(self, table_name: str) -> str:
        return f"-- CREATE script for {table_name}\n"

    def render(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> str:
        definitions = [f"  {self.column_definition(c)}" for c in columns]
        definitions.extend(f"  {clause}" for clause in self.table_constraints(table_name, columns))
        script = self.header(table_name)
        script += f"CREATE TABLE {self.quote(table_name)} (\n"
        script += ",\n".join(definitions)
        script += "\n);"
        trailer = self.trailing_statements(table_name, columns)
        if trailer:
            script += "\n\n" + "\n".join(trailer)
        return script

    def column_definition(self, column: ColumnDescriptor) -> str:
        parts = [self.quote(column.name), self.type_clause(column)]
        if not column.nullable:
            parts.append("NOT NULL")
        elif self.explicit_null:
            parts.append("NULL")
        if column.default_value is not None:
            parts.append(f"DEFAULT {column.default_value}")
        parts.extend(self.column_modifiers(column))
        return " ".join(parts)

    def type_clause(self, column: ColumnDescriptor) -> str:
        base = column.type.lower()
        text = column.type.upper()
        if "(" in text:
            return text
        if column.char_max_length and column.char_max_length > 0 and any(
            t in base for t in _LENGTH_TYPES
        ):
            return f"{text}({column.char_max_length})"
        if column.numeric_precision and base in self.decimal_types():
            return f"{text}({column.numeric_precision},{column.numeric_scale or 0})"
        return text

    def decimal_types(self) -> Sequence[str]:
        return _DECIMAL_TYPES

    def column_modifiers(self, column: ColumnDescriptor) -> List[str]:
        return []

    def primary_key_columns(self, columns: Sequence[ColumnDescriptor]) -> List[str]:
        return [self.quote(c.name) for c in columns if c.is_primary_key]

    def table_constraints(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> List[str]:
        keys = self.primary_key_columns(columns)
        return [f"PRIMARY KEY ({', '.join(keys)})"] if keys else []

    def trailing_statements(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> List[str]:
        return []


class MySQLScriptBuilder(TableScriptBuilder):
    explicit_null = True

    def quote(self, identifier: str) -> str:
        return "`" + identifier.replace("`", "``") + "`"

    def column_modifiers(self, column: ColumnDescriptor) -> List[str]:
        return ["AUTO_INCREMENT"] if column.is_auto_increment else []


class PostgreSQLScriptBuilder(TableScriptBuilder):
    def column_definition(self, column: ColumnDescriptor) -> str:
        if column.is_identity or (
            column.is_auto_increment
            and isinstance(column.default_value, str)
            and column.default_value.startswith("nextval(")
        ):
            # identity and serial defaults are recreated by the identity clause
            column = dataclasses.replace(column, default_value=None)
        return super().column_definition(column)

    def column_modifiers(self, column: ColumnDescriptor) -> List[str]:
        if column.is_identity or column.is_auto_increment:
            return ["GENERATED BY DEFAULT AS IDENTITY"]
        return []


class MSSQLScriptBuilder(TableScriptBuilder):
    explicit_null = True

    def quote(self, identifier: str) -> str:
        return "[" + identifier.replace("]", "]]") + "]"

    def type_clause(self, column: ColumnDescriptor) -> str:
        if column.char_max_length == -1:
            return f"{column.type.upper()}(MAX)"
        return super().type_clause(column)

    def column_modifiers(self, column: ColumnDescriptor) -> List[str]:
        return ["IDENTITY(1,1)"] if column.is_identity or column.is_auto_increment else []


class SQLiteScriptBuilder(TableScriptBuilder):
    def _inline_key(self, columns: Sequence[ColumnDescriptor]) -> bool:
        keys = [c for c in columns if c.is_primary_key]
        return len(keys) == 1

    def render(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> str:
        self._inline = self._inline_key(columns)
        return super().render(table_name, columns)

    def column_modifiers(self, column: ColumnDescriptor) -> List[str]:
        if not (column.is_primary_key and getattr(self, "_inline", False)):
            return []
        modifiers = ["PRIMARY KEY"]
        if column.is_auto_increment and column.type.lower() in ("int", "integer"):
            modifiers.append("AUTOINCREMENT")
        return modifiers

    def table_constraints(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> List[str]:
        if self._inline_key(columns):
            return []
        return super().table_constraints(table_name, columns)


class OracleScriptBuilder(TableScriptBuilder):
    def decimal_types(self) -> Sequence[str]:
        return ("number",) + tuple(_DECIMAL_TYPES)

    def column_modifiers(self, column: ColumnDescriptor) -> List[str]:
        return ["GENERATED BY DEFAULT AS IDENTITY"] if column.is_identity else []

    def table_constraints(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> List[str]:
        return []

    def trailing_statements(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> List[str]:
        keys = self.primary_key_columns(columns)
        if not keys:
            return []
        constraint = self.quote(f"PK_{table_name}")
        return [
            f"ALTER TABLE {self.quote(table_name)} ADD CONSTRAINT {constraint} "
            f"PRIMARY KEY ({', '.join(keys)});"
        ]


class MongoDBScriptBuilder(TableScriptBuilder):
    """Renders ``db.createCollection`` with a ``$jsonSchema`` validator."""

    BSON_TYPES = {
        "string": "string",
        "int": "int",
        "long": "long",
        "double": "double",
        "decimal": "decimal",
        "boolean": "bool",
        "date": "date",
        "objectId": "objectId",
        "object": "object",
        "array": "array",
        "binData": "binData",
    }

    def header(self, table_name: str) -> str:
        return f"// CREATE script for {table_name}\n"

    def render(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> str:
        properties: Dict[str, Any] = {}
        for column in columns:
            bson_type = self.BSON_TYPES.get(column.type)
            properties[column.name] = {"bsonType": bson_type} if bson_type else {}
        required = [c.name for c in columns if c.name == "_id"]
        validator: Dict[str, Any] = {
            "$jsonSchema": {"bsonType": "object", "properties": properties}
        }
        if required:
            validator["$jsonSchema"]["required"] = required
        body = json.dumps({"validator": validator}, indent=2)
        return f"{self.header(table_name)}db.createCollection({json.dumps(table_name)}, {body});"
