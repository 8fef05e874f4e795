"""Unit tests for the token stores."""

import json
import stat

from mcpmux.oauth import FileTokenStore, MemoryTokenStore, TokenSet


class TestFileTokenStore:
    """Tests for FileTokenStore."""

    def test_save_and_load(self, tmp_path):
        store = FileTokenStore(tmp_path / "cache" / "tokens.json")
        tokens = TokenSet(access_token="a", refresh_token="r", expires_at=10.0)

        store.save("food", tokens)

        assert FileTokenStore(store.path).load("food") == tokens
        assert store.load("other") is None

    def test_file_mode_and_layout(self, tmp_path):
        path = tmp_path / "tokens.json"
        FileTokenStore(path).save("food", TokenSet(access_token="a"))

        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert json.loads(path.read_text()) == {
            "food": {"access_token": "a", "token_type": "Bearer"}
        }
        assert [p.name for p in tmp_path.iterdir()] == ["tokens.json"]

    def test_save_keeps_other_servers(self, tmp_path):
        store = FileTokenStore(tmp_path / "tokens.json")
        store.save("a", TokenSet(access_token="1"))
        store.save("b", TokenSet(access_token="2"))
        assert sorted(store.load_all()) == ["a", "b"]

    def test_delete(self, tmp_path):
        store = FileTokenStore(tmp_path / "tokens.json")
        store.save("a", TokenSet(access_token="1"))
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.load_all() == {}

    def test_missing_file(self, tmp_path):
        assert FileTokenStore(tmp_path / "absent.json").load_all() == {}

    def test_corrupt_file_ignored(self, tmp_path, logger, log_output):
        path = tmp_path / "tokens.json"
        path.write_text("{not json")
        assert FileTokenStore(path, logger=logger).load("a") is None
        assert "unreadable token cache" in log_output.getvalue()

    def test_undecodable_file_ignored(self, tmp_path, logger, log_output):
        path = tmp_path / "tokens.json"
        path.write_bytes(b'{"a": "\xff\xfe"}')
        store = FileTokenStore(path, logger=logger)
        assert store.load("a") is None
        assert store.load_all() == {}
        assert "unreadable token cache" in log_output.getvalue()

    def test_unreadable_path_ignored(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.mkdir()
        assert FileTokenStore(path).load("a") is None

    def test_invalid_record_skipped(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text(json.dumps({"bad": {"scope": "x"}, "good": {"access_token": "a"}}))
        assert list(FileTokenStore(path).load_all()) == ["good"]


class TestMemoryTokenStore:
    def test_round_trip(self):
        store = MemoryTokenStore()
        store.save("a", TokenSet(access_token="1"))
        assert store.load("a").access_token == "1"
        assert store.delete("a") is True
        assert store.load_all() == {}
