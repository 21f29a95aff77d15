from __future__ import annotations

import pytest

from btblocklist.config import load_sources, parse_config, parse_listen, parse_source_line
from btblocklist.exceptions import ConfigError


def test_parse_source_line() -> None:
    assert parse_source_line("feodo https://example.org/a.txt") == ("feodo", "https://example.org/a.txt")
    assert parse_source_line("feodo=https://example.org/a.txt?x=1") == ("feodo", "https://example.org/a.txt?x=1")
    assert parse_source_line("   # comment") is None
    assert parse_source_line("") is None
    with pytest.raises(ConfigError):
        parse_source_line("lonely")


def test_load_sources_rejects_duplicates(tmp_path) -> None:
    path = tmp_path / "sources.txt"
    path.write_text("# name location\nfeodo a\n\nfeodo b\n")

    with pytest.raises(ConfigError, match="duplicate"):
        load_sources(path)


def test_load_sources_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_sources(tmp_path / "nope.txt")


def test_parse_listen() -> None:
    assert parse_listen("127.0.0.1:9000") == ("127.0.0.1", 9000)
    assert parse_listen(":8080") == ("0.0.0.0", 8080)
    assert parse_listen("[::1]:8080") == ("::1", 8080)
    with pytest.raises(ConfigError):
        parse_listen("localhost:http")


def test_parse_config_from_flags_and_env(tmp_path) -> None:
    sources = tmp_path / "sources.txt"
    sources.write_text("feodo https://example.org/feodo.txt\n")

    config = parse_config(
        ["--sources", str(sources), "--source", "local=/srv/extra.txt", "--interval", "600"],
        {"BTBLOCKLIST_RIPE_SEARCH": "seedbox hosting", "BTBLOCKLIST_LOG_LEVEL": "debug"},
    )

    assert config.interval == 600
    assert config.ripe_search == "seedbox hosting"
    assert config.sources == {"feodo": "https://example.org/feodo.txt", "local": "/srv/extra.txt"}
    assert config.log_level == "DEBUG"
    assert config.port == 8080
    assert config.status_file is None


@pytest.mark.parametrize(
    "argv",
    [
        ["--interval", "0"],
        ["--interval", "soon"],
        ["--source", "noequals"],
        ["--log-level", "loud"],
        ["--path", "/status"],
    ],
)
def test_invalid_config(argv: list[str]) -> None:
    with pytest.raises(ConfigError):
        parse_config(argv, {})
