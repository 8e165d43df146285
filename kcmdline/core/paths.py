from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Paths:
    # Unprivileged state (logs, transactions)
    user_state_dir: str

    # State used when running as root
    var_lib_dir: str

    # Running kernel command line
    proc_cmdline: str

    def state_dir(self, *, is_root: bool | None = None) -> Path:
        if is_root is None:
            is_root = os.geteuid() == 0
        return Path(self.var_lib_dir) if is_root else Path(self.user_state_dir)


def default_paths() -> Paths:
    proc_cmdline = os.environ.get("KCMDLINE_PROC_CMDLINE") or "/proc/cmdline"

    # Explicit override wins for root and non-root alike
    override = os.environ.get("KCMDLINE_STATE_DIR")
    if override:
        return Paths(user_state_dir=override, var_lib_dir=override, proc_cmdline=proc_cmdline)

    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        user_state_dir = os.path.join(xdg_state, "kcmdline")
    else:
        user_state_dir = os.path.join(os.path.expanduser("~"), ".local", "state", "kcmdline")

    return Paths(
        user_state_dir=user_state_dir,
        var_lib_dir="/var/lib/kcmdline",
        proc_cmdline=proc_cmdline,
    )
