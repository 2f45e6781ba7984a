"""Tests for request payload models."""

import pytest
from pydantic import ValidationError

from dbexplorer.api.requests import IdPayload, ObjectsPayload, StatementPayload, TablePayload


class TestPayloads:
    def test_id_is_stripped(self):
        assert IdPayload.model_validate({"id": "  abc  "}).id == "abc"

    @pytest.mark.parametrize("data", [{}, {"id": ""}, {"id": "   "}])
    def test_id_required(self, data):
        with pytest.raises(ValidationError):
            IdPayload.model_validate(data)

    def test_extra_keys_ignored(self):
        payload = IdPayload.model_validate({"id": "abc", "selectedTab": "schema"})

        assert not hasattr(payload, "selectedTab")

    @pytest.mark.parametrize("key", ["tableName", "table_name", "table"])
    def test_table_name_aliases(self, key):
        assert TablePayload.model_validate({"id": "a", key: "users"}).table_name == "users"

    def test_kind_is_normalized(self):
        assert ObjectsPayload.model_validate({"id": "a", "kind": " Tables "}).kind == "tables"

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            ObjectsPayload.model_validate({"id": "a", "kind": "indexes"})

    def test_statement_text_kept_verbatim(self):
        text = "  SELECT 1;\n"

        payload = StatementPayload.model_validate({"id": "a", "query": text})

        assert payload.text == text
        assert payload.timeout is None

    @pytest.mark.parametrize("timeout", [0, -5])
    def test_timeout_must_be_positive(self, timeout):
        with pytest.raises(ValidationError):
            StatementPayload.model_validate({"id": "a", "text": "SELECT 1", "timeout": timeout})
