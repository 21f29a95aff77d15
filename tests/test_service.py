from __future__ import annotations

import asyncio

import pytest

from btblocklist.config import Config
from btblocklist.service import build_status_sink, main, serve
from btblocklist.status import LogStatusSink, MultiStatusSink


def test_build_status_sink(tmp_path) -> None:
    assert isinstance(build_status_sink(Config()), LogStatusSink)
    assert isinstance(build_status_sink(Config(status_file=tmp_path / "s.txt")), MultiStatusSink)


@pytest.mark.asyncio
async def test_serve_runs_one_batch_when_already_stopped(tmp_path) -> None:
    blocklist = tmp_path / "feodo.txt"
    blocklist.write_text("# header\n9.9.9.9\n8.8.8.8\n")
    status_file = tmp_path / "status.txt"
    config = Config(
        interval=3600,
        sources={"feodo": str(blocklist)},
        host="127.0.0.1",
        port=0,
        status_file=status_file,
    )
    stop = asyncio.Event()
    stop.set()

    await asyncio.wait_for(serve(config, stop), 5)

    assert status_file.read_text().startswith(
        "RIPE: 0 range(s) | External: 1 list(s) with a total of 2 line(s) | Last modification: "
    )


def test_main_rejects_bad_config(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--interval", "-1"]) == 2
    assert "interval must be positive" in capsys.readouterr().err
