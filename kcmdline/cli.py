from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kcmdline.core.audit import log_audit_event
from kcmdline.core.bootfile import (
    BOOT_FORMATS,
    DEFAULT_GRUB_VAR,
    detect_boot_file,
    read_cmdline,
    write_cmdline,
)
from kcmdline.core.cmdline import AppendAllOptions, Cmdline, CmdlineError
from kcmdline.core.diffutil import token_diff, unified_diff
from kcmdline.core.parameter import value_at
from kcmdline.core.paths import default_paths
from kcmdline.core.transaction import (
    backup_file,
    find_tx,
    list_transactions,
    new_tx,
    read_manifest,
    restore_file,
    write_manifest,
)


def _setup_logging() -> logging.Logger:
    log_dir = default_paths().state_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "kcmdline.log"

    logger = logging.getLogger("kcmdline.cli")
    wanted = os.path.abspath(log_path)
    for old in list(logger.handlers):
        if isinstance(old, logging.FileHandler) and old.baseFilename != wanted:
            logger.removeHandler(old)
            old.close()
    if not logger.handlers:
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    logger.info("start euid=%s argv=%s", os.geteuid(), " ".join(sys.argv))
    return logger


def _log_audit_event(action: str, payload: dict[str, Any]) -> None:
    logger = logging.getLogger("kcmdline.cli")
    log_audit_event(logger, action, payload)


@dataclass(frozen=True)
class Source:
    """Where the cmdline being edited comes from."""
    format: str
    path: str | None = None
    text: str | None = None  # literal --cmdline value
    grub_var: str = DEFAULT_GRUB_VAR

    def describe(self) -> dict[str, Any]:
        if self.text is not None:
            return {"kind": "literal"}
        return {"kind": "file", "path": self.path, "format": self.format}


def _resolve_source(args: argparse.Namespace) -> Source:
    grub_var = args.grub_var or DEFAULT_GRUB_VAR
    if args.cmdline is not None:
        return Source(format="proc", text=args.cmdline)
    if args.auto:
        found = detect_boot_file()
        if found is None:
            raise SystemExit("No kernel cmdline file detected (looked for /etc/kernel/cmdline, /etc/default/grub)")
        return Source(format=found.format, path=found.path, grub_var=grub_var)
    if args.file:
        return Source(format=args.format or "bls", path=args.file, grub_var=grub_var)
    return Source(format=args.format or "proc", path=default_paths().proc_cmdline, grub_var=grub_var)


def _load(source: Source) -> Cmdline:
    if source.text is not None:
        return Cmdline(source.text)
    try:
        return read_cmdline(source.path, source.format, grub_var=source.grub_var)
    except OSError as e:
        raise SystemExit(f"Cannot read {source.path}: {e}")


def cmd_show(args: argparse.Namespace) -> int:
    cmdline = _load(_resolve_source(args))
    if args.json:
        payload = {
            "schema": 1,
            "tokens": cmdline.strings(),
            "parameters": [{"key": p.key, "values": list(p.values)} for p in cmdline],
        }
        print(json.dumps(payload, indent=2))
    else:
        print(cmdline)
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    cmdline = _load(_resolve_source(args))
    param = cmdline.get(args.key)
    if param is None:
        return 1
    if args.all:
        for value in param.values:
            print(value)
        return 0
    value = value_at(param, args.index)
    if value is None:
        # A key set without values is still present
        return 0 if not param.values else 1
    print(value)
    return 0


def cmd_has(args: argparse.Namespace) -> int:
    cmdline = _load(_resolve_source(args))
    present = {tok: cmdline.has(tok) for tok in args.token}
    print(json.dumps({"schema": 1, "present": present}, indent=2))
    return 0 if all(present.values()) else 1


def _mutate(args: argparse.Namespace, action: str, edit: Callable[[Cmdline], None]) -> int:
    source = _resolve_source(args)
    if args.write and (source.path is None or source.format == "proc"):
        raise SystemExit("--write needs a bls or grub2 boot file (use --file or --auto)")

    cmdline = _load(source)
    before = cmdline.copy()
    try:
        edit(cmdline)
    except CmdlineError as e:
        _log_audit_event(action, {"success": False, "error": str(e), "source": source.describe()})
        raise SystemExit(f"{action}: {e}")

    added, removed = token_diff(before.strings(), cmdline.strings())
    changed = before.strings() != cmdline.strings()
    payload: dict[str, Any] = {
        "schema": 1,
        "action": action,
        "source": source.describe(),
        "before": str(before),
        "after": str(cmdline),
        "changed": changed,
        "added": added,
        "removed": removed,
        "written": False,
        "txid": None,
    }

    if args.write and changed:
        tx = new_tx(default_paths().state_dir())
        meta = backup_file(tx, source.path)
        file_before, file_after = write_cmdline(source.path, source.format, cmdline, grub_var=source.grub_var)
        write_manifest(tx, {
            "schema": 1,
            "txid": tx.txid,
            "action": action,
            "file": source.path,
            "format": source.format,
            "before": str(before),
            "after": str(cmdline),
            "backups": [meta],
        })
        payload.update({
            "written": True,
            "txid": tx.txid,
            "diff": unified_diff(source.path, file_before, file_after),
        })

    _log_audit_event(action, payload)
    print(json.dumps(payload, indent=2))
    return 0


def cmd_set(args: argparse.Namespace) -> int:
    return _mutate(args, "set", lambda c: c.set_all(args.token))


def cmd_append(args: argparse.Namespace) -> int:
    options = AppendAllOptions(
        overwrite_keys=frozenset(args.overwrite or ()),
        delete_negated=args.delete_negated,
    )
    return _mutate(args, "append", lambda c: c.append_all(args.token, options))


def cmd_delete(args: argparse.Namespace) -> int:
    def _delete(cmdline: Cmdline) -> None:
        for param in Cmdline.from_tokens(args.token):
            cmdline.delete(param)

    return _mutate(args, "delete", _delete)


def cmd_delete_all(args: argparse.Namespace) -> int:
    def _delete_all(cmdline: Cmdline) -> None:
        for key in args.key:
            cmdline.delete_all(key)

    return _mutate(args, "delete-all", _delete_all)


def cmd_history(_: argparse.Namespace) -> int:
    txs = list_transactions(default_paths().state_dir())
    print(json.dumps({"schema": 1, "transactions": txs, "count": len(txs)}, indent=2))
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    tx = find_tx(default_paths().state_dir(), args.txid)
    if tx is None:
        payload = {"schema": 1, "success": False, "error": f"Unknown transaction: {args.txid}", "txid": args.txid}
        _log_audit_event("restore", payload)
        print(json.dumps(payload, indent=2))
        return 1

    manifest = read_manifest(tx)
    restored: list[str] = []
    for meta in manifest.get("backups", []):
        restore_file(tx, meta)
        restored.append(meta["path"])

    payload = {
        "schema": 1,
        "success": True,
        "txid": tx.txid,
        "restored": restored,
        "cmdline": manifest.get("before"),
    }
    _log_audit_event("restore", payload)
    print(json.dumps(payload, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    logger = _setup_logging()
    p = argparse.ArgumentParser(prog="kcmdline", description="Inspect and edit the kernel command line")

    src = p.add_mutually_exclusive_group()
    src.add_argument("--cmdline", help="Operate on this literal command line")
    src.add_argument("--file", help="Boot file holding the command line")
    src.add_argument("--auto", action="store_true", help="Use the detected boot file (BLS or GRUB defaults)")
    p.add_argument("--format", choices=BOOT_FORMATS, help="Format of --file (default: bls)")
    p.add_argument("--grub-var", help=f"GRUB variable to edit (default: {DEFAULT_GRUB_VAR})")

    edit_opts = argparse.ArgumentParser(add_help=False)
    edit_opts.add_argument("--write", action="store_true", help="Write the result back (backed up in a transaction)")

    sub = p.add_subparsers(dest="cmd", required=True)

    ss = sub.add_parser("show", help="Print the command line")
    ss.add_argument("--json", action="store_true")
    ss.set_defaults(func=cmd_show)

    sg = sub.add_parser("get", help="Print the value(s) of a key; exit 1 when absent")
    sg.add_argument("key")
    sg.add_argument("--index", type=int, default=0)
    sg.add_argument("--all", action="store_true", help="Print every value, one per line")
    sg.set_defaults(func=cmd_get)

    sh = sub.add_parser("has", help="Check token presence (foo matches foo=..., foo=1 only that value)")
    sh.add_argument("token", nargs="+")
    sh.set_defaults(func=cmd_has)

    sst = sub.add_parser("set", parents=[edit_opts], help="Replace all values of the given keys")
    sst.add_argument("token", nargs="+")
    sst.set_defaults(func=cmd_set)

    sa = sub.add_parser(
        "append",
        parents=[edit_opts],
        help="Append tokens (put negated tokens after --, e.g. append --delete-negated -- -quiet)",
    )
    sa.add_argument("--overwrite", action="append", metavar="KEY", help="Clear KEY once before its first new value")
    sa.add_argument("--delete-negated", action="store_true", help="Treat -key / -key=value tokens as deletions")
    sa.add_argument("token", nargs="+")
    sa.set_defaults(func=cmd_append)

    sd = sub.add_parser("delete", parents=[edit_opts], help="Delete specific key=value tokens")
    sd.add_argument("token", nargs="+")
    sd.set_defaults(func=cmd_delete)

    sda = sub.add_parser("delete-all", parents=[edit_opts], help="Delete keys with all their values")
    sda.add_argument("key", nargs="+")
    sda.set_defaults(func=cmd_delete_all)

    shi = sub.add_parser("history", help="List recorded boot file edits")
    shi.set_defaults(func=cmd_history)

    sr = sub.add_parser("restore", help="Restore a boot file from a transaction")
    sr.add_argument("txid")
    sr.set_defaults(func=cmd_restore)

    args = p.parse_args(argv)
    try:
        rc = int(args.func(args))
        logger.info("exit rc=%s", rc)
        return rc
    except SystemExit as e:
        logger.error("exit error=%s", e)
        raise
    except Exception:
        logger.exception("unhandled error")
        raise


if __name__ == "__main__":
    raise SystemExit(main())
