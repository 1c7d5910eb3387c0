"""Tests for module definition parsing and the schema cache."""

import json
from typing import Any

import pytest

from spacetimedb_mcp.exceptions import SchemaFetchError
from spacetimedb_mcp.schema import Schema, SchemaCache, TypeKind


class TestSchemaFromModuleDef:
    """Tests for Schema.from_module_def()."""

    def test_tables(self, module_def: dict[str, Any]) -> None:
        schema = Schema.from_module_def(module_def)
        assert schema.table_names == ["user", "message"]

    def test_columns_resolved_through_typespace(self, module_def: dict[str, Any]) -> None:
        user = Schema.from_module_def(module_def).get_table("user")
        assert user is not None
        assert user.column_names == ["identity", "name", "online", "last_seen", "status"]
        kinds = [c.type.kind for c in user.columns]
        assert kinds == [
            TypeKind.IDENTITY,
            TypeKind.OPTION,
            TypeKind.BOOL,
            TypeKind.TIMESTAMP,
            TypeKind.SUM,
        ]

    def test_table_metadata(self, module_def: dict[str, Any]) -> None:
        user = Schema.from_module_def(module_def).get_table("user")
        assert user is not None
        data = user.to_dict()
        assert data["primary_key"] == ["identity"]
        assert data["visibility"] == "public"
        assert data["table_type"] == "user"
        assert data["columns"][1] == {"name": "name", "type": "Option<string>"}

    def test_private_table(self, module_def: dict[str, Any]) -> None:
        module_def["tables"][1]["table_access"] = {"Private": []}
        message = Schema.from_module_def(module_def).get_table("message")
        assert message is not None and message.visibility == "private"

    def test_reducers(self, module_def: dict[str, Any]) -> None:
        schema = Schema.from_module_def(module_def)
        assert schema.function_names == ["set_name", "send_message", "init", "identity_connected"]
        set_name = schema.get_function("set_name")
        assert set_name is not None
        assert set_name.signature == "(name: string)"
        assert set_name.lifecycle is None

    def test_reducer_lifecycles(self, module_def: dict[str, Any]) -> None:
        schema = Schema.from_module_def(module_def)
        assert schema.get_function("init").lifecycle == "init"  # type: ignore[union-attr]
        connected = schema.get_function("identity_connected")
        assert connected is not None and connected.lifecycle == "on-connect"

    def test_versioned_wrapper(self, module_def: dict[str, Any]) -> None:
        schema = Schema.from_module_def({"V9": module_def})
        assert schema.table_names == ["user", "message"]

    def test_unknown_lookups_return_none(self, module_def: dict[str, Any]) -> None:
        schema = Schema.from_module_def(module_def)
        assert schema.get_table("nope") is None
        assert schema.get_function("nope") is None

    @pytest.mark.parametrize("document", [[], {"typespace": {}}, "text"])
    def test_malformed(self, document: Any) -> None:
        with pytest.raises(ValueError):
            Schema.from_module_def(document)

    def test_to_dict(self, module_def: dict[str, Any]) -> None:
        data = Schema.from_module_def(module_def).to_dict()
        assert data["typespace_size"] == 2
        assert [f["name"] for f in data["functions"]][:2] == ["set_name", "send_message"]
        assert data["functions"][0]["signature"] == "(name: string)"


class TestSchemaCache:
    """Tests for SchemaCache."""

    def test_empty(self) -> None:
        cache = SchemaCache()
        assert cache.is_loaded is False
        assert cache.get_table("user") is None
        assert cache.get_function("set_name") is None

    def test_load_document(self, module_def: dict[str, Any]) -> None:
        cache = SchemaCache()
        cache.load(module_def, source="http")
        assert cache.is_loaded
        assert cache.source == "http"
        assert cache.get_table("user") is not None

    def test_load_json_text(self, module_def: dict[str, Any]) -> None:
        cache = SchemaCache()
        cache.load(json.dumps({"V9": module_def}), source="cli")
        assert cache.source == "cli"
        assert cache.get_function("send_message") is not None

    def test_invalid_json(self) -> None:
        with pytest.raises(SchemaFetchError) as exc_info:
            SchemaCache().load("{not json", source="cli", endpoint="spacetime describe")
        assert exc_info.value.endpoint == "spacetime describe"

    def test_malformed_document(self) -> None:
        cache = SchemaCache()
        with pytest.raises(SchemaFetchError):
            cache.load({"tables": [{"nameless": True}]}, source="http")
        assert cache.is_loaded is False

    def test_clear(self, module_def: dict[str, Any]) -> None:
        cache = SchemaCache()
        cache.load(module_def, source="http")
        cache.clear()
        assert cache.schema is None
        assert cache.source is None
