"""Tests for the kcmdline command line front end."""

import io
import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from kcmdline.cli import main


@pytest.fixture(autouse=True)
def _state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    state = tmp_path / "state"
    monkeypatch.setenv("KCMDLINE_STATE_DIR", str(state))
    return state


def _run(argv: list[str]) -> tuple[int, str]:
    captured = io.StringIO()
    with patch.object(sys, "stdout", captured):
        rc = main(argv)
    return rc, captured.getvalue()


class TestReadCommands:
    """Tests for show / get / has."""

    def test_show_literal(self) -> None:
        rc, out = _run(["--cmdline", " root=/dev/abc=1  nogui \n", "show"])
        assert rc == 0
        assert out == "root=/dev/abc=1 nogui\n"

    def test_show_json(self) -> None:
        rc, out = _run(["--cmdline", "console=tty0 console=ttyS0 quiet", "show", "--json"])
        payload = json.loads(out)

        assert rc == 0
        assert payload["schema"] == 1
        assert payload["tokens"] == ["console=tty0", "console=ttyS0", "quiet"]
        assert payload["parameters"] == [
            {"key": "console", "values": ["tty0", "ttyS0"]},
            {"key": "quiet", "values": [""]},
        ]

    def test_show_running_cmdline(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        proc = tmp_path / "cmdline"
        proc.write_text("BOOT_IMAGE=/boot/vmlinuz root=UUID=abc quiet\n")
        monkeypatch.setenv("KCMDLINE_PROC_CMDLINE", str(proc))

        rc, out = _run(["show"])
        assert rc == 0
        assert out == "BOOT_IMAGE=/boot/vmlinuz root=UUID=abc quiet\n"

    def test_get(self) -> None:
        line = "root=/dev/sda root=/dev/sdb nogui"
        assert _run(["--cmdline", line, "get", "root"]) == (0, "/dev/sda\n")
        assert _run(["--cmdline", line, "get", "root", "--index", "1"]) == (0, "/dev/sdb\n")
        assert _run(["--cmdline", line, "get", "root", "--all"]) == (0, "/dev/sda\n/dev/sdb\n")
        assert _run(["--cmdline", line, "get", "root", "--index", "5"]) == (1, "")
        assert _run(["--cmdline", line, "get", "splash"]) == (1, "")

    def test_has(self) -> None:
        line = "quiet audit=0"
        rc, out = _run(["--cmdline", line, "has", "quiet", "audit=0"])
        assert rc == 0
        assert json.loads(out)["present"] == {"quiet": True, "audit=0": True}

        rc, out = _run(["--cmdline", line, "has", "quiet", "audit=1"])
        assert rc == 1
        assert json.loads(out)["present"]["audit=1"] is False


class TestEditCommands:
    """Tests for set / append / delete / delete-all on a literal cmdline."""

    def test_append_with_options(self) -> None:
        rc, out = _run([
            "--cmdline", "console=tty0 console=ttyS0 root=/dev/sdb",
            "append", "--overwrite", "console", "--delete-negated",
            "--", "-console=tty0", "nogui", "console=ttyAMA0",
        ])
        payload = json.loads(out)

        assert rc == 0
        assert payload["action"] == "append"
        assert payload["after"] == "console=ttyAMA0 root=/dev/sdb nogui"
        assert payload["added"] == ["console=ttyAMA0", "nogui"]
        assert payload["removed"] == ["console=tty0", "console=ttyS0"]
        assert payload["changed"] is True
        assert payload["written"] is False

    def test_set(self) -> None:
        rc, out = _run(["--cmdline", "root=/dev/sdb root=/dev/sdc aye=sir", "set", "root=/dev/mmcblk0"])
        assert rc == 0
        assert json.loads(out)["after"] == "root=/dev/mmcblk0 aye=sir"

    def test_delete(self) -> None:
        rc, out = _run([
            "--cmdline", "console=tty0 console=ttyS0,9600 root=/dev/sda",
            "delete", "console=ttyS0,9600", "root=/dev/sda",
        ])
        assert rc == 0
        assert json.loads(out)["after"] == "console=tty0"

    def test_delete_all(self) -> None:
        rc, out = _run(["--cmdline", "console=tty0 console=ttyS0 quiet", "delete-all", "console"])
        payload = json.loads(out)
        assert rc == 0
        assert payload["after"] == "quiet"
        assert payload["before"] == "console=tty0 console=ttyS0 quiet"

    def test_unchanged(self) -> None:
        rc, out = _run(["--cmdline", "quiet", "delete-all", "splash"])
        payload = json.loads(out)
        assert rc == 0
        assert payload["changed"] is False
        assert payload["added"] == []
        assert payload["removed"] == []

    def test_invalid_overwrite_key(self) -> None:
        with pytest.raises(SystemExit):
            _run(["--cmdline", "quiet", "append", "--overwrite", "", "splash"])

    def test_write_needs_boot_file(self) -> None:
        with pytest.raises(SystemExit):
            _run(["--cmdline", "quiet", "append", "--write", "splash"])


class TestWriteAndRestore:
    """Tests for --write, history and restore on real boot files."""

    def test_bls_write_history_restore(self, tmp_path: Path) -> None:
        path = tmp_path / "kernel" / "cmdline"
        path.parent.mkdir()
        path.write_text("root=UUID=abc quiet splash\n")

        rc, out = _run(["--file", str(path), "append", "--write", "threadirqs"])
        payload = json.loads(out)
        assert rc == 0
        assert payload["written"] is True
        assert payload["txid"]
        assert "+root=UUID=abc quiet splash threadirqs" in payload["diff"]
        assert path.read_text() == "root=UUID=abc quiet splash threadirqs\n"

        rc, out = _run(["history"])
        history = json.loads(out)
        assert rc == 0
        assert history["count"] == 1
        assert history["transactions"][0]["txid"] == payload["txid"]
        assert history["transactions"][0]["file"] == str(path)

        rc, out = _run(["restore", payload["txid"]])
        assert rc == 0
        assert json.loads(out)["restored"] == [str(path)]
        assert path.read_text() == "root=UUID=abc quiet splash\n"

    def test_grub_write(self, tmp_path: Path) -> None:
        path = tmp_path / "grub"
        path.write_text('GRUB_TIMEOUT=5\nGRUB_CMDLINE_LINUX_DEFAULT="quiet splash"\n')

        rc, _ = _run(["--file", str(path), "--format", "grub2", "delete-all", "--write", "splash"])
        assert rc == 0
        assert path.read_text() == 'GRUB_TIMEOUT=5\nGRUB_CMDLINE_LINUX_DEFAULT="quiet"\n'

    def test_unchanged_is_not_written(self, tmp_path: Path) -> None:
        path = tmp_path / "cmdline"
        path.write_text("quiet\n")

        rc, out = _run(["--file", str(path), "append", "--write", "--delete-negated", "--", "-splash"])
        assert rc == 0
        assert json.loads(out)["written"] is False

        _, out = _run(["history"])
        assert json.loads(out)["count"] == 0

    def test_restore_unknown_tx(self) -> None:
        rc, out = _run(["restore", "deadbeef"])
        assert rc == 1
        assert json.loads(out)["success"] is False


class TestLogging:
    """Tests for the CLI log file."""

    def test_log_follows_state_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Each run logs under the state dir configured for that run."""
        first = tmp_path / "first"
        second = tmp_path / "second"

        monkeypatch.setenv("KCMDLINE_STATE_DIR", str(first))
        assert _run(["--cmdline", "quiet", "show"])[0] == 0
        monkeypatch.setenv("KCMDLINE_STATE_DIR", str(second))
        assert _run(["--cmdline", "splash", "show"])[0] == 0

        first_log = (first / "logs" / "kcmdline.log").read_text()
        second_log = (second / "logs" / "kcmdline.log").read_text()
        assert "start euid=" in first_log
        assert "start euid=" in second_log
        assert first_log.count("start euid=") == 1
