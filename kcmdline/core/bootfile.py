from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from kcmdline.core.cmdline import Cmdline


BootFormat = Literal["proc", "bls", "grub2"]

BOOT_FORMATS: tuple[str, ...] = ("proc", "bls", "grub2")

DEFAULT_GRUB_VAR = "GRUB_CMDLINE_LINUX_DEFAULT"

BLS_CMDLINE_FILE = "/etc/kernel/cmdline"
GRUB_DEFAULTS_FILE = "/etc/default/grub"


@dataclass(frozen=True)
class BootFile:
    """Where the persistent kernel command line lives on this system."""
    path: str
    format: BootFormat


def _check_format(fmt: str) -> None:
    if fmt not in BOOT_FORMATS:
        raise ValueError(f"Unsupported boot format: {fmt!r}")


def _split_rhs(rhs: str) -> tuple[str, str]:
    """Split an assignment's right-hand side into (value, trailing text).

    A quoted value ends at its closing quote; whatever follows (usually a
    ``# comment``) is returned as the trailing text.
    """
    rhs = rhs.strip()
    if rhs[:1] in ("'", '"'):
        end = rhs.find(rhs[0], 1)
        if end == -1:
            return rhs[1:], ""
        return rhs[1:end], rhs[end + 1:]
    value, sep, comment = rhs.partition("#")
    return value.strip(), f" #{comment}" if sep else ""


def extract_cmdline(text: str, fmt: str, *, grub_var: str = DEFAULT_GRUB_VAR) -> str:
    """Return the raw command line held in a boot file's text."""
    _check_format(fmt)
    if fmt != "grub2":
        return text.strip()

    prefix = f"{grub_var}="
    for line in text.splitlines():
        if not line.startswith(prefix):
            continue
        _, _, rhs = line.partition("=")
        return _split_rhs(rhs)[0]
    return ""


def render_cmdline(text: str, fmt: str, cmdline: Cmdline | str, *, grub_var: str = DEFAULT_GRUB_VAR) -> str:
    """Return ``text`` with its command line replaced by ``cmdline``.

    For grub2 only the ``grub_var`` value changes (a trailing comment is kept);
    the line is appended when the variable is not set yet. The result always ends with a newline.
    """
    _check_format(fmt)
    line_value = str(cmdline)
    if fmt == "proc":
        raise ValueError("The running kernel command line cannot be rewritten")
    if fmt == "bls":
        return line_value + "\n"

    prefix = f"{grub_var}="
    out_lines: list[str] = []
    found = False
    for line in text.splitlines():
        if line.startswith(prefix) and not found:
            _, trailing = _split_rhs(line.partition("=")[2])
            out_lines.append(f'{grub_var}="{line_value}"{trailing}')
            found = True
        else:
            out_lines.append(line)
    if not found:
        out_lines.append(f'{grub_var}="{line_value}"')
    return "\n".join(out_lines) + "\n"


def _read_text(path: str | Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""


def read_cmdline(path: str | Path, fmt: str, *, grub_var: str = DEFAULT_GRUB_VAR) -> Cmdline:
    _check_format(fmt)
    if fmt == "proc":
        # The running cmdline must exist; a missing file is a real error here
        text = Path(path).read_text(encoding="utf-8")
    else:
        text = _read_text(path)
    return Cmdline(extract_cmdline(text, fmt, grub_var=grub_var))


def write_cmdline(path: str | Path, fmt: str, cmdline: Cmdline, *, grub_var: str = DEFAULT_GRUB_VAR) -> tuple[str, str]:
    """Rewrite the command line stored in ``path``; returns (before, after) file text."""
    before = _read_text(path)
    after = render_cmdline(before, fmt, cmdline, grub_var=grub_var)
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(after, encoding="utf-8")
    return before, after


def detect_boot_file(root: str | Path = "/") -> BootFile | None:
    """Detect the persistent cmdline file, preferring BLS over GRUB defaults."""
    base = Path(root)
    bls = base / BLS_CMDLINE_FILE.lstrip("/")
    if bls.exists():
        return BootFile(path=str(bls), format="bls")
    grub = base / GRUB_DEFAULTS_FILE.lstrip("/")
    if grub.exists():
        return BootFile(path=str(grub), format="grub2")
    return None
