"""Tests for preference storage."""

import json
import stat
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from binance_link.oauth.prefs import (
    ENV_HOME,
    JsonPreferenceStore,
    MemoryPreferenceStore,
    PreferenceStoreError,
    default_state_dir,
)


class TestMemoryPreferenceStore:
    def test_unset_key_is_empty(self):
        assert MemoryPreferenceStore().get("missing") == ""

    def test_set_and_get(self):
        prefs = MemoryPreferenceStore()
        prefs.set("key", "value")
        assert prefs.get("key") == "value"


class TestJsonPreferenceStore:
    """Tests for the JSON file backend."""

    def test_persists_across_instances(self, tmp_path: Path):
        """Test that values survive a new store instance."""
        path = tmp_path / "state" / "preferences.json"
        JsonPreferenceStore(path).set("binance.access_token", "abc")

        assert JsonPreferenceStore(path).get("binance.access_token") == "abc"
        assert json.loads(path.read_text()) == {"binance.access_token": "abc"}

    def test_missing_file_reads_empty(self, tmp_path: Path):
        assert JsonPreferenceStore(tmp_path / "nope.json").get("anything") == ""

    def test_corrupt_file_reads_empty(self, tmp_path: Path):
        """Test that an unreadable file degrades to empty preferences."""
        path = tmp_path / "preferences.json"
        path.write_text("{not json")

        prefs = JsonPreferenceStore(path)

        assert prefs.get("binance.access_token") == ""
        prefs.set("k", "v")
        assert json.loads(path.read_text()) == {"k": "v"}

    def test_non_string_values_are_ignored(self, tmp_path: Path):
        path = tmp_path / "preferences.json"
        path.write_text(json.dumps({"a": "x", "b": 3}))

        prefs = JsonPreferenceStore(path)

        assert prefs.get("a") == "x"
        assert prefs.get("b") == ""

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_is_owner_only(self, tmp_path: Path):
        path = tmp_path / "preferences.json"
        JsonPreferenceStore(path).set("k", "v")

        mode = stat.S_IMODE(path.stat().st_mode)
        assert mode == stat.S_IRUSR | stat.S_IWUSR

    def test_write_failure_raises(self, tmp_path: Path):
        """Test that write errors surface as PreferenceStoreError."""
        prefs = JsonPreferenceStore(tmp_path / "preferences.json")
        with patch("builtins.open", side_effect=PermissionError("read-only")):
            with pytest.raises(PreferenceStoreError):
                prefs.set("k", "v")

    def test_set_many_writes_all_keys(self, tmp_path: Path):
        path = tmp_path / "preferences.json"
        JsonPreferenceStore(path).set_many({"a": "1", "b": "2"})
        assert json.loads(path.read_text()) == {"a": "1", "b": "2"}

    def test_failed_replace_keeps_previous_file(self, tmp_path: Path):
        """Test that an interrupted write leaves the old file and cache untouched."""
        path = tmp_path / "preferences.json"
        prefs = JsonPreferenceStore(path)
        prefs.set("a", "old")

        with patch("binance_link.oauth.prefs.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PreferenceStoreError):
                prefs.set_many({"a": "new", "b": "new"})

        assert json.loads(path.read_text()) == {"a": "old"}
        assert prefs.get("a") == "old"
        assert prefs.get("b") == ""
        assert not (tmp_path / "preferences.json.tmp").exists()

    def test_writers_do_not_drop_each_others_keys(self, tmp_path: Path):
        """Test that a stale instance merges into what is on disk."""
        path = tmp_path / "preferences.json"
        first = JsonPreferenceStore(path)
        second = JsonPreferenceStore(path)
        assert first.get("x") == ""

        second.set("from_second", "2")
        first.set("from_first", "1")

        assert json.loads(path.read_text()) == {"from_second": "2", "from_first": "1"}

    def test_uses_sidecar_lock_file(self, tmp_path: Path):
        path = tmp_path / "preferences.json"
        JsonPreferenceStore(path).set("k", "v")
        assert (tmp_path / "preferences.json.lock").exists()


class TestDefaultStateDir:
    def test_env_override(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv(ENV_HOME, str(tmp_path))
        assert default_state_dir() == tmp_path

    def test_default_under_home_cache(self, monkeypatch):
        monkeypatch.delenv(ENV_HOME, raising=False)
        assert default_state_dir() == Path.home() / ".cache" / "binance-link"
