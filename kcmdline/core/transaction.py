from __future__ import annotations

import json
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class Transaction:
    txid: str
    root: Path


def new_tx(root_dir: str | Path) -> Transaction:
    root = Path(root_dir)
    txid = f"{time.time_ns():x}"
    tx_root = root / "transactions" / txid
    tx_root.mkdir(parents=True, exist_ok=False)
    (tx_root / "backups").mkdir()
    return Transaction(txid=txid, root=tx_root)


def find_tx(root_dir: str | Path, txid: str) -> Transaction | None:
    """Find an existing transaction by ID."""
    tx_root = Path(root_dir) / "transactions" / txid
    if (tx_root / "manifest.json").exists():
        return Transaction(txid=txid, root=tx_root)
    return None


def _backup_key_for_path(abs_path: str) -> str:
    return abs_path.lstrip("/").replace("/", "__")


def backup_file(tx: Transaction, abs_path: str) -> dict[str, Any]:
    """Copy a boot file into the transaction before it is rewritten.

    Returns the metadata needed by ``restore_file``.
    """
    p = Path(abs_path)
    key = _backup_key_for_path(abs_path)
    existed = p.exists()

    meta: dict[str, Any] = {
        "path": abs_path,
        "existed": existed,
        "mode": None,
        "uid": None,
        "gid": None,
        "backup_key": key,
    }

    if existed:
        st = p.stat()
        meta.update({"mode": int(st.st_mode & 0o777), "uid": int(st.st_uid), "gid": int(st.st_gid)})
        shutil.copy2(p, tx.root / "backups" / key)

    return meta


def restore_file(tx: Transaction, meta: dict[str, Any]) -> None:
    abs_path = meta["path"]
    backup = tx.root / "backups" / meta["backup_key"]
    p = Path(abs_path)

    if not meta.get("existed"):
        # We created it
        if p.exists():
            p.unlink()
        return

    if not backup.exists():
        raise FileNotFoundError(f"Missing backup for {abs_path}")

    p.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(backup, p)

    mode = meta.get("mode")
    if mode is not None:
        os.chmod(p, int(mode))

    uid = meta.get("uid")
    gid = meta.get("gid")
    if uid is not None and gid is not None:
        try:
            os.chown(p, int(uid), int(gid))
        except PermissionError:
            pass


def write_manifest(tx: Transaction, payload: dict[str, Any]) -> None:
    (tx.root / "manifest.json").write_text(
        json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8"
    )


def read_manifest(tx: Transaction) -> dict[str, Any]:
    return json.loads((tx.root / "manifest.json").read_text(encoding="utf-8"))


def list_transactions(root_dir: str | Path) -> list[dict[str, Any]]:
    """List recorded cmdline edits, newest first."""
    tx_dir = Path(root_dir) / "transactions"
    if not tx_dir.exists():
        return []

    results = []
    for entry in sorted(tx_dir.iterdir(), reverse=True):
        manifest_path = entry / "manifest.json"
        if not manifest_path.is_file():
            continue
        try:
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            continue
        try:
            ts_sec = int(entry.name, 16) / 1e9
        except ValueError:
            ts_sec = 0
        results.append({
            "txid": entry.name,
            "timestamp": ts_sec,
            "action": manifest.get("action"),
            "file": manifest.get("file"),
            "before": manifest.get("before"),
            "after": manifest.get("after"),
            "root": str(entry),
        })

    return results
