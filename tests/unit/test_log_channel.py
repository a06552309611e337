"""Unit tests for the serialized log channel."""

from __future__ import annotations

import threading
from io import StringIO

from rich.console import Console

from rtp_sampler.orchestrator.log_channel import LogChannel, TrialLog


def _channel(quiet: bool = False) -> tuple[LogChannel, StringIO]:
    buffer = StringIO()
    console = Console(file=buffer, width=200, force_terminal=False, color_system=None)
    return LogChannel(console, quiet=quiet), buffer


class TestTrialLog:
    def test_lines_keep_order(self) -> None:
        log = TrialLog(4, 2)
        log.info("start")
        log.warning("close")
        log.error("fail")
        assert log.header == "level 4 #2"
        assert log.lines == [("info", "start"), ("warning", "close"), ("error", "fail")]


class TestLogChannel:
    """Test that trial blocks never interleave."""

    def test_publish_prefixes_header(self) -> None:
        channel, buffer = _channel()
        log = TrialLog(6, 1)
        log.info("selected 100 records")
        channel.publish(log)
        assert "level 6 #1 selected 100 records" in buffer.getvalue()

    def test_quiet_hides_info_and_success(self) -> None:
        channel, buffer = _channel(quiet=True)
        log = TrialLog(6, 1)
        log.info("hidden info")
        log.success("hidden success")
        log.warning("shown warning")
        channel.publish(log)
        channel.info("run info")
        output = buffer.getvalue()
        assert "hidden" not in output
        assert "run info" not in output
        assert "shown warning" in output

    def test_concurrent_blocks_are_contiguous(self) -> None:
        channel, buffer = _channel()

        def trial(level_id: int) -> None:
            log = TrialLog(level_id, 1)
            for step in range(20):
                log.info(f"step {step}")
            channel.publish(log)

        threads = [threading.Thread(target=trial, args=(level,)) for level in range(1, 9)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = [line for line in buffer.getvalue().splitlines() if line.strip()]
        assert len(lines) == 160
        for start in range(0, 160, 20):
            block = lines[start : start + 20]
            headers = {line.split(" step ")[0] for line in block}
            assert len(headers) == 1
            assert [line.rsplit(" ", 1)[1] for line in block] == [str(i) for i in range(20)]
