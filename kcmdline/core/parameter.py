from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Parameter:
    """One kernel parameter key and every value it was given, in order.

    A bare flag (``nogui``) is stored as a single empty-string value.
    Duplicate values are kept: two identical ``console=`` entries are two entries.
    """

    key: str
    values: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        # Parameter("console", None) means "key with no values"
        self.values = list(self.values) if self.values is not None else []

    def first(self) -> str | None:
        if not self.values:
            return None
        return self.values[0]

    def get(self, idx: int) -> str | None:
        if idx < 0 or idx >= len(self.values):
            return None
        return self.values[idx]

    def append(self, value: str) -> Parameter:
        self.values.append(value)
        return self

    def contains(self, value: str) -> bool:
        return value in self.values

    def tokens(self) -> list[str]:
        """Render as cmdline tokens; an empty value (or no value at all) is the bare key.

        An empty key always keeps its ``=`` so the token survives re-parsing.
        """
        if not self.values:
            return [self.key or "="]
        return [self.key if v == "" and self.key else f"{self.key}={v}" for v in self.values]


def first_value(param: Parameter | None) -> str | None:
    """None-safe ``param.first()``, for chaining off ``Cmdline.get``."""
    if param is None:
        return None
    return param.first()


def value_at(param: Parameter | None, idx: int) -> str | None:
    if param is None:
        return None
    return param.get(idx)
