"""Tests for flowsync data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from flowsync.models import FlowEntity, InstanceConfig, StateEntry


class TestFlowEntity:
    def test_from_api_maps_wire_fields(self):
        flow = FlowEntity.from_api({
            "id": "abc123",
            "name": "Test Flow",
            "flowData": '{"a":1}',
            "updatedDate": "2024-01-01T00:00:00.000Z",
            "type": "CHATFLOW",
        })
        assert flow.id == "abc123"
        assert flow.category == "chatflow"
        assert flow.updated_at == "2024-01-01T00:00:00.000Z"
        assert flow.payload == '{"a":1}'

    def test_missing_type_is_uncategorized(self):
        flow = FlowEntity.from_api({"id": "1", "name": "n", "flowData": "{}"})
        assert flow.category == "uncategorized"

    def test_numeric_tokens_are_kept_as_strings(self):
        flow = FlowEntity.from_api({"id": 42, "updatedDate": 1700000000})
        assert flow.id == "42"
        assert flow.updated_at == "1700000000"

    @pytest.mark.parametrize("payload, expected", [(None, False), ("", False), ("{}", True)])
    def test_has_payload(self, payload, expected):
        assert FlowEntity(id="1", payload=payload).has_payload is expected

    def test_is_immutable(self):
        flow = FlowEntity(id="1")
        with pytest.raises(ValidationError):
            flow.name = "changed"


class TestStateEntry:
    def test_disk_keys(self):
        entry = StateEntry(updated_at="T1", name="A", file_name="A_id_0001.json", category="chatflow")
        assert entry.to_disk() == {
            "updatedAt": "T1",
            "name": "A",
            "fileName": "A_id_0001.json",
            "type": "chatflow",
        }

    def test_accepts_legacy_updated_date(self):
        entry = StateEntry.model_validate({"updatedDate": "T0", "name": "A", "type": "chatflow"})
        assert entry.updated_at == "T0"
        assert entry.file_name is None

    def test_missing_type_defaults(self):
        assert StateEntry.model_validate({"name": "A", "type": None}).category == "uncategorized"


class TestInstanceConfig:
    def test_api_key_alias_and_mask(self):
        inst = InstanceConfig.model_validate(
            {"name": "prod", "url": "https://x", "apiKey": "abcdefgh", "enabled": True}
        )
        assert inst.api_key == "abcdefgh"
        assert inst.masked_key() == "****efgh"
        assert "abcdefgh" not in repr(inst)

    def test_enabled_defaults_to_false(self):
        assert InstanceConfig(name="a", url="http://x").enabled is False

    @pytest.mark.parametrize("name", ["a/b", "..", "x\\y"])
    def test_rejects_path_like_names(self, name):
        with pytest.raises(ValidationError):
            InstanceConfig(name=name, url="http://x")
