"""
Command-line entry point: flags, output formats and exit codes.
"""

import argparse
import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from bookrec import cli
from bookrec.core.errors import StoreConnectionError
from bookrec.core.kv_store import InMemoryKVStore

SAMPLE_DIR = Path(__file__).parent.parent / "data" / "books"


@pytest.fixture(autouse=True)
def memory_env(monkeypatch):
    """Run every CLI test against an in-process store and the hashed encoder."""
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("EMBED_PROVIDER", "hash")
    monkeypatch.setenv("SEARCH_BACKEND", "bruteforce")
    monkeypatch.setenv("DATA_PATH", str(SAMPLE_DIR))
    for name in ("EMBED_DIM", "TOP_K", "RANGE_RADIUS", "BUILD_WORKERS", "QUERY_WORKERS", "REDIS_URL"):
        monkeypatch.delenv(name, raising=False)


def test_parse_bool():
    """Test explicit true/false flag parsing."""
    assert cli.parse_bool("true") is True
    assert cli.parse_bool("False") is False
    assert cli.parse_bool(" 1 ") is True
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_bool("maybe")


def test_parser_defaults():
    """Test default argument values."""
    args = cli.build_parser().parse_args([])

    assert args.load is False
    assert args.book == ""
    assert args.k is None
    assert args.json is False


def test_cold_start_prints_demo_recommendations(capsys):
    """Test that --load true prints KNN then range results for the demo books."""
    assert cli.main(["--load", "true"]) == 0

    out = capsys.readouterr().out
    assert "Status: SUCCESS" in out
    assert "Recommendations for book:26415" in out
    assert "Recommendations for book:9" in out
    assert "Recommendations by range for book:26415" in out
    assert "Recommendations by range for book:9" in out
    assert out.index("Recommendations for book:9") < out.index("Recommendations by range for book:26415")
    assert "\tid: 26415\n\ttitle: The Time Machine\n\tscore: " in out


def test_single_book_with_k(capsys):
    """Test that --book and --k restrict the output to one book and k hits."""
    assert cli.main(["--load", "true", "--book", "84", "--k", "2"]) == 0

    out = capsys.readouterr().out
    assert "Recommendations for book:84" in out
    assert "book:26415" not in out
    knn_section = out.split("Recommendations by range")[0]
    assert knn_section.count("\tid: ") == 2


def test_json_output(capsys):
    """Test the --json output structure."""
    assert cli.main(["--load", "true", "--book", "book:9", "--k", "3", "--json"]) == 0

    data = json.loads(capsys.readouterr().out)
    assert data["build"]["failed"] == 0
    knn = data["recommendations"]["book:9"]
    assert knn["count"] == 3
    assert knn["recommendations"][0]["id"] == "9"
    assert knn["recommendations"][0]["score"] == pytest.approx(1.0, abs=1e-5)
    assert "book:9" in data["range"]


def test_text_query(capsys):
    """Test a free-text query through the CLI."""
    assert cli.main(["--load", "true", "--text", "submarine nautilus captain nemo", "--json"]) == 0

    data = json.loads(capsys.readouterr().out)
    assert data["text"]["recommendations"][0]["id"] == "9"


def test_warm_start_reuses_stored_index(capsys, monkeypatch, tmp_path):
    """Test that --load false queries the index built by an earlier run."""
    monkeypatch.setenv("STORE_BACKEND", "sqlite")
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "kv.db"))

    assert cli.main(["--load", "true"]) == 0
    capsys.readouterr()

    assert cli.main(["--load", "false", "--book", "9"]) == 0
    out = capsys.readouterr().out
    assert "Status:" not in out
    assert "Recommendations for book:9" in out


def test_warm_start_without_index_fails(capsys):
    """Test that querying before any build exits with 1."""
    assert cli.main(["--load", "false"]) == 1
    assert "ERROR: Index idx:books not found" in capsys.readouterr().out


def test_unknown_book_fails(capsys):
    """Test that an unknown --book exits with 1."""
    assert cli.main(["--load", "true", "--book", "nope"]) == 1
    assert "ERROR: Book book:nope not found" in capsys.readouterr().out


def test_missing_data_path_fails(capsys, tmp_path):
    """Test that a missing --data path exits with 1."""
    assert cli.main(["--load", "true", "--data", str(tmp_path / "absent")]) == 1
    assert "ERROR: Cannot read records" in capsys.readouterr().out


def test_malformed_records_fail(capsys, tmp_path):
    """Test that an invalid record exits with 1 and names the file."""
    (tmp_path / "1.json").write_text('{"id": "1"}')

    assert cli.main(["--load", "true", "--data", str(tmp_path)]) == 1
    assert "ERROR: 1.json: invalid record (title)" in capsys.readouterr().out


def test_invalid_config_fails_before_connecting(capsys, monkeypatch):
    """Test that configuration issues abort before a store is created."""
    monkeypatch.setenv("STORE_BACKEND", "mongodb")
    get_kv_store = MagicMock()
    monkeypatch.setattr(cli, "get_kv_store", get_kv_store)

    assert cli.main([]) == 1
    assert "ERROR: Invalid STORE_BACKEND: mongodb" in capsys.readouterr().out
    get_kv_store.assert_not_called()


def test_unreachable_store_fails(capsys, monkeypatch):
    """Test that an unreachable store exits with 1 and the store is closed."""
    store = MagicMock()
    store.ping.side_effect = StoreConnectionError("ping '-' failed after 3 attempts: refused")
    monkeypatch.setattr(cli, "get_kv_store", lambda url=None: store)

    assert cli.main(["--load", "true"]) == 1
    assert "ERROR: Store unavailable" in capsys.readouterr().out
    store.close.assert_called_once()


def test_store_url_flag_is_passed_through(monkeypatch):
    """Test that --store-url reaches the store factory."""
    seen = {}

    def fake_get_kv_store(url=None):
        seen["url"] = url
        return InMemoryKVStore()

    monkeypatch.setattr(cli, "get_kv_store", fake_get_kv_store)
    cli.main(["--load", "true", "--store-url", "redis://cache:6380"])

    assert seen["url"] == "redis://cache:6380"


def test_invalid_k_is_a_usage_error():
    """Test that --k 0 is rejected by the parser."""
    with pytest.raises(SystemExit) as exc:
        cli.main(["--k", "0"])
    assert exc.value.code == 2
