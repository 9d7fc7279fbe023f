"""Tests for the persisted state file."""

import json

from self_updater.models import UpdaterState
from self_updater.state import StateStore


class TestStateStore:
    def test_missing_file_is_empty_state(self, tmp_path):
        state = StateStore(tmp_path / "state.json").load()
        assert state == UpdaterState()

    def test_roundtrip_uses_camel_case(self, tmp_path):
        store = StateStore(tmp_path / "nested" / "state.json")
        store.save(UpdaterState(last_commit="abc123", updated_at="2026-01-01T00:00:00+00:00"))

        on_disk = json.loads(store.path.read_text(encoding="utf-8"))
        assert on_disk == {"lastCommit": "abc123", "updatedAt": "2026-01-01T00:00:00+00:00"}
        assert store.load().last_commit == "abc123"

    def test_seeded_state_omits_updated_at(self, tmp_path):
        store = StateStore(tmp_path / "state.json")
        store.save(UpdaterState(last_commit="abc123"))

        assert json.loads(store.path.read_text(encoding="utf-8")) == {"lastCommit": "abc123"}

    def test_corrupt_file_is_empty_state(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{broken", encoding="utf-8")
        assert StateStore(path).load() == UpdaterState()

    def test_non_object_is_empty_state(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert StateStore(path).load() == UpdaterState()

    def test_undecodable_file_is_empty_state(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        assert StateStore(path).load() == UpdaterState()
