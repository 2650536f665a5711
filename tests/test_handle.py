"""Tests for Handle: leveled writing, setup, and lifecycle."""

import logging
import os
import re
from datetime import timedelta

import pytest

from logrotor import codec
from logrotor.config import HandleConfig, RotationPolicy
from logrotor.errors import OpenError
from logrotor.handle import DEBUG, ERROR, INFO, NONE, Handle, parse_level
from logrotor.trigger import IntervalTrigger, SizeTrigger

DATE = r"\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2}"


@pytest.fixture
def log_path(tmp_path):
    return str(tmp_path / "app.log")


@pytest.fixture
def open_handle(log_path):
    handles = []

    def _open(**overrides):
        handle = Handle.open(HandleConfig(path=log_path, **overrides))
        handles.append(handle)
        return handle

    yield _open
    for handle in handles:
        handle.close()


def read_lines(path):
    with open(path) as f:
        return f.read().splitlines()


class TestParseLevel:
    @pytest.mark.parametrize("name,expected", [
        ("DEBUG", DEBUG), ("info", INFO), ("ERROR", ERROR), ("NONE", NONE),
        ("", ERROR), ("verbose", ERROR), (None, ERROR),
    ])
    def test_levels(self, name, expected):
        assert parse_level(name) == expected


class TestOpen:
    def test_creates_file_and_writes_started(self, open_handle, log_path):
        open_handle()
        lines = read_lines(log_path)
        assert len(lines) == 1
        assert re.match(rf"^{DATE} Started, no log rotation selected$", lines[0])

    def test_appends_to_existing_file(self, open_handle, log_path):
        with open(log_path, "w") as f:
            f.write("existing\n")
        open_handle()
        assert read_lines(log_path)[0] == "existing"

    def test_open_error(self, tmp_path):
        with pytest.raises(OpenError) as exc:
            Handle.open(HandleConfig(path=str(tmp_path / "missing" / "app.log")))
        assert isinstance(exc.value.cause, OSError)

    def test_rotate_flag_starts_rotation(self, open_handle, log_path):
        handle = open_handle(rotate=True, rotation=RotationPolicy(size=1024, max_files_keep=3))
        assert [type(t) for t in handle.triggers] == [SizeTrigger]
        lines = read_lines(log_path)
        assert lines[-1].endswith("Started")


class TestWriting:
    def test_named_prefix(self, open_handle, log_path):
        handle = open_handle(name="auth", level="INFO")
        handle.info("user %s logged in", "alice")
        line = read_lines(log_path)[-1]
        assert re.match(rf"^auth: {DATE} INFO user alice logged in$", line)

    def test_error_names_caller(self, open_handle, log_path):
        handle = open_handle()
        handle.error("boom %d", 42)
        line = read_lines(log_path)[-1]
        assert re.match(rf"^{DATE} test_handle\.py:\d+ ERROR boom 42$", line)

    def test_debug_tag(self, open_handle, log_path):
        handle = open_handle(level="DEBUG")
        handle.debug("details")
        assert read_lines(log_path)[-1].endswith(" DEBUG details")

    def test_level_filters_less_severe(self, open_handle, log_path):
        handle = open_handle(level="ERROR")
        handle.info("hidden")
        handle.debug("hidden too")
        handle.error("shown")
        text = "\n".join(read_lines(log_path))
        assert "hidden" not in text
        assert "shown" in text

    def test_none_level_still_prints(self, open_handle, log_path):
        handle = open_handle(level="NONE")
        handle.error("suppressed")
        handle.println("always")
        text = "\n".join(read_lines(log_path))
        assert "suppressed" not in text
        assert text.endswith("always")

    def test_trailing_newline_not_doubled(self, open_handle, log_path):
        handle = open_handle(level="INFO")
        handle.info("one line\n")
        with open(log_path) as f:
            assert "\n\n" not in f.read()

    def test_print_request(self, open_handle, log_path):
        handle = open_handle()
        handle.print_request("10.0.0.7:51234", "DELETE /users/9", "denied")
        assert read_lines(log_path)[-1].endswith(" 10.0.0.7:51234: DELETE /users/9 - denied")

    def test_set_prefix_and_date_format(self, open_handle, log_path):
        handle = open_handle()
        handle.set_prefix("[api] ")
        handle.set_date_format("%H:%M")
        handle.println("reformatted")
        assert re.match(r"^\[api\] \d{2}:\d{2} reformatted$", read_lines(log_path)[-1])

    def test_verbose_echoes_to_injected_logger(self, log_path, caplog):
        echo = logging.getLogger("test.echo")
        handle = Handle.open(HandleConfig(path=log_path, verbose=True, level="INFO"), logger=echo)
        try:
            with caplog.at_level(logging.INFO, logger="test.echo"):
                handle.info("mirrored %d", 7)
        finally:
            handle.close()
        assert "mirrored 7" in caplog.text

    def test_writes_after_close_are_dropped(self, open_handle, log_path):
        handle = open_handle()
        handle.close()
        handle.println("late")
        assert handle.closed
        assert "late" not in "\n".join(read_lines(log_path))


class TestSetupRotation:
    def test_kept_forever_warning_and_no_deletions(self, tmp_path, log_path, caplog):
        old = [
            codec.encode(log_path, codec.parse_rfc3339(ts))
            for ts in ("2020-01-01T00:00:00Z", "2021-01-01T00:00:00Z", "2022-01-01T00:00:00Z")
        ]
        for p in old:
            open(p, "w").close()

        handle = Handle.watch(log_path)
        with caplog.at_level(logging.WARNING):
            triggers = handle.setup_rotation(RotationPolicy(keep=timedelta(0), max_files_keep=0, compress=-1))
        handle.close()

        assert "kept forever" in caplog.text
        assert triggers == []
        assert all(os.path.exists(p) for p in old)

    def test_no_warning_when_bounded(self, log_path, caplog):
        handle = Handle.watch(log_path)
        with caplog.at_level(logging.WARNING):
            handle.setup_rotation(RotationPolicy(max_files_keep=2))
        handle.close()
        assert "kept forever" not in caplog.text

    def test_startup_scan_applies_policy(self, log_path):
        paths = [
            codec.encode(log_path, codec.parse_rfc3339(f"2025-01-0{d}T00:00:00Z"))
            for d in (1, 2, 3)
        ]
        for p in paths:
            with open(p, "w") as f:
                f.write("x\n")

        handle = Handle.watch(log_path)
        handle.setup_rotation(RotationPolicy(max_files_keep=2, compress=1))
        handle.close()

        assert not os.path.exists(paths[0])
        assert os.path.exists(paths[1] + ".gz")
        assert os.path.exists(paths[2])

    def test_starts_requested_triggers(self, log_path):
        handle = Handle.watch(log_path)
        triggers = handle.setup_rotation(RotationPolicy(
            size=10, age=timedelta(days=1), scan_interval=3600, max_files_keep=1,
        ))
        try:
            assert [t.name.split(":")[0] for t in triggers] == ["size-trigger", "age-trigger", "scan-trigger"]
            assert isinstance(triggers[1], IntervalTrigger)
            assert all(t.running for t in triggers)
        finally:
            handle.close()
        assert not any(t.running for t in triggers)
        assert handle.triggers == []

    def test_context_manager_stops_triggers(self, log_path):
        with Handle.open(HandleConfig(path=log_path, rotate=True,
                                      rotation=RotationPolicy(age=timedelta(days=1), keep=timedelta(days=3)))) as handle:
            trigger = handle.triggers[0]
            assert trigger.running
        assert not trigger.running
        assert handle.closed
