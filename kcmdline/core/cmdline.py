from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from kcmdline.core.parameter import Parameter


class CmdlineError(ValueError):
    """Raised when a bulk edit cannot be applied; the cmdline is left unchanged."""


@dataclass(frozen=True)
class AppendAllOptions:
    """Modifiers for ``Cmdline.append_all``.

    overwrite_keys:
        Keys whose existing values are dropped the first time the key is appended
        during one ``append_all`` call. Later tokens for the same key in that call
        accumulate as usual. The key keeps its position in the line.
    delete_negated:
        Treat tokens whose key starts with ``-`` as deletions: ``-key`` removes the
        key entirely, ``-key=value`` removes that one value.
    """

    overwrite_keys: frozenset[str] = frozenset()
    delete_negated: bool = False

    def __post_init__(self) -> None:
        keys = self.overwrite_keys
        if isinstance(keys, str):
            keys = (keys,)
        object.__setattr__(self, "overwrite_keys", frozenset(keys))


def split_token(token: str) -> tuple[str, str]:
    """Split ``key=value`` on the first ``=``; a bare flag gets an empty value."""
    key, _, value = token.partition("=")
    return key, value


def _fragments(tokens: Iterable[str]) -> Iterator[str]:
    # Each element may itself be a cmdline fragment like "quiet splash"
    if isinstance(tokens, str):
        tokens = (tokens,)
    for item in tokens:
        yield from item.split()


class Cmdline:
    """Ordered, duplicate-aware kernel command line.

    Entries are unique by key and keep the order in which each key first
    appeared. ``get`` hands out the live ``Parameter``, so appending to it edits
    this cmdline.
    """

    def __init__(self, raw: str = "") -> None:
        self.parameters: list[Parameter] = []
        for token in raw.split():
            self.append(*split_token(token))

    @classmethod
    def from_tokens(cls, tokens: Iterable[str]) -> Cmdline:
        cmdline = cls()
        for token in _fragments(tokens):
            cmdline.append(*split_token(token))
        return cmdline

    def copy(self) -> Cmdline:
        dup = Cmdline()
        dup.parameters = [Parameter(p.key, p.values) for p in self.parameters]
        return dup

    def get(self, key: str) -> Parameter | None:
        for p in self.parameters:
            if p.key == key:
                return p
        return None

    def keys(self) -> list[str]:
        return [p.key for p in self.parameters]

    def has(self, token: str) -> bool:
        """Exact token presence: ``foo`` matches any ``foo``/``foo=...``, ``foo=1`` only that value."""
        if not token:
            return False
        key, sep, value = token.partition("=")
        p = self.get(key)
        if p is None:
            return False
        return p.contains(value) if sep else True

    def set(self, key: str, param: Parameter) -> None:
        """Replace every value of ``key`` with ``param.values``, keeping the key's position."""
        existing = self.get(key)
        if existing is None:
            self.parameters.append(Parameter(key, param.values))
            return
        existing.values[:] = list(param.values)

    def set_all(self, tokens: Iterable[str]) -> None:
        for param in Cmdline.from_tokens(tokens):
            self.set(param.key, param)

    def append(self, key: str, value: str) -> None:
        existing = self.get(key)
        if existing is None:
            self.parameters.append(Parameter(key, [value]))
            return
        existing.append(value)

    def append_all(self, tokens: Iterable[str], options: AppendAllOptions | None = None) -> None:
        """Append each token in order, honouring ``options``.

        The edit is made on a copy and committed only once every token has been
        applied, so a ``CmdlineError`` leaves this cmdline untouched.
        """
        opts = options or AppendAllOptions()
        if any(not k for k in opts.overwrite_keys):
            raise CmdlineError("overwrite key must not be empty")

        work = self.copy()
        touched: set[str] = set()
        for token in _fragments(tokens):
            key, sep, value = token.partition("=")

            if opts.delete_negated and key.startswith("-"):
                name = key[1:]
                if not name:
                    raise CmdlineError(f"negated token {token!r} does not name a key")
                if sep:
                    work.delete(Parameter(name, [value]))
                else:
                    work.delete_all(name)
                continue

            if key in opts.overwrite_keys and key not in touched:
                touched.add(key)
                existing = work.get(key)
                if existing is not None:
                    existing.values.clear()

            work.append(key, value)

        self._commit(work)

    def _commit(self, work: Cmdline) -> None:
        # Reuse the live Parameter objects so references from get() stay valid
        live = {p.key: p for p in self.parameters}
        merged: list[Parameter] = []
        for p in work.parameters:
            target = live.get(p.key)
            if target is None:
                merged.append(p)
            else:
                target.values[:] = p.values
                merged.append(target)
        self.parameters[:] = merged

    def delete(self, param: Parameter) -> None:
        """Drop every value of ``param.key`` that is listed in ``param.values``.

        Matching is by membership, not position. A key left without values is removed.
        """
        existing = self.get(param.key)
        if existing is None:
            return
        existing.values[:] = [v for v in existing.values if v not in param.values]
        if not existing.values:
            self.delete_all(param.key)

    def delete_all(self, key: str) -> None:
        self.parameters[:] = [p for p in self.parameters if p.key != key]

    def strings(self) -> list[str]:
        out: list[str] = []
        for p in self.parameters:
            out.extend(p.tokens())
        return out

    def __str__(self) -> str:
        return " ".join(self.strings())

    def __repr__(self) -> str:
        return f"Cmdline({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cmdline):
            return NotImplemented
        return self.parameters == other.parameters

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self.parameters)

    def __len__(self) -> int:
        return len(self.parameters)

    def __contains__(self, key: object) -> bool:
        return any(p.key == key for p in self.parameters)
