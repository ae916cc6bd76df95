"""
Header container shared by requests and responses.

Headers are stored as an ordered list of raw `(name, value)` pairs so the
original casing and order survive until the request is written to the wire.
Lookups are case-insensitive.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import TypeAlias, overload

Header: TypeAlias = tuple[str, str]
HeaderValue: TypeAlias = str | int | Sequence[str] | None
HeadersInit: TypeAlias = "Headers | Mapping[str, HeaderValue] | Iterable[Header] | Sequence[str]"


def normalize_name(name: str) -> str:
    """Lower-case a header name; `referrer` is folded into `referer`."""
    lower = name.lower()
    if lower == "referrer":
        return "referer"
    return lower


def media_type(value: str | None) -> str | None:
    """Strip parameters from a Content-Type value."""
    if value is None:
        return None
    return value.split(";", 1)[0].strip().lower()


def _values(value: HeaderValue) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    return [str(v) for v in value]


class Headers:
    def __init__(self, init: HeadersInit | None = None):
        self._raw: list[Header] = []
        if init is None:
            return
        if isinstance(init, Headers):
            self._raw = list(init._raw)
        elif isinstance(init, Mapping):
            for key, value in init.items():
                self.set(key, value)
        else:
            items = list(init)
            if items and all(isinstance(item, str) for item in items):
                if len(items) % 2:
                    raise ValueError("Raw header lists must contain name/value pairs")
                for i in range(0, len(items), 2):
                    self.append(items[i], items[i + 1])
            else:
                for name, value in items:
                    self.append(name, value)

    def set(self, name: str, value: HeaderValue) -> Headers:
        """Replace every entry for `name`. A `None` value removes the header."""
        values = _values(value)
        lower = normalize_name(name)
        index = next(
            (i for i, (key, _) in enumerate(self._raw) if normalize_name(key) == lower),
            len(self._raw),
        )
        self._raw = [pair for pair in self._raw if normalize_name(pair[0]) != lower]
        index = min(index, len(self._raw))
        self._raw[index:index] = [(name, v) for v in values]
        return self

    def append(self, name: str, value: HeaderValue) -> Headers:
        self._raw.extend((name, v) for v in _values(value))
        return self

    def get(self, name: str) -> str | None:
        values = self.get_all(name)
        if not values:
            return None
        return ", ".join(values)

    def get_all(self, name: str) -> list[str]:
        lower = normalize_name(name)
        return [value for key, value in self._raw if normalize_name(key) == lower]

    def has(self, name: str) -> bool:
        lower = normalize_name(name)
        return any(normalize_name(key) == lower for key, _ in self._raw)

    def remove(self, name: str) -> Headers:
        lower = normalize_name(name)
        self._raw = [pair for pair in self._raw if normalize_name(pair[0]) != lower]
        return self

    def name(self, name: str) -> str | None:
        """Return the casing `name` was stored with, if present."""
        lower = normalize_name(name)
        for key, _ in self._raw:
            if normalize_name(key) == lower:
                return key
        return None

    @overload
    def type(self) -> str | None: ...

    @overload
    def type(self, value: str) -> Headers: ...

    def type(self, value: str | None = None) -> str | None | Headers:
        if value is None:
            return media_type(self.get("Content-Type"))
        return self.set("Content-Type", value)

    @property
    def raw(self) -> list[Header]:
        return list(self._raw)

    def items(self) -> list[Header]:
        return list(self._raw)

    def as_dict(self) -> dict[str, str]:
        """Merged view keyed by the first-seen casing of each name."""
        merged: dict[str, str] = {}
        for key, _ in self._raw:
            original = self.name(key)
            if original is not None and original not in merged:
                merged[original] = self.get(key) or ""
        return merged

    def clone(self) -> Headers:
        return Headers(self)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __iter__(self) -> Iterator[Header]:
        return iter(list(self._raw))

    def __len__(self) -> int:
        return len(self._raw)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._raw == other._raw

    def __repr__(self) -> str:
        return f"Headers({self._raw!r})"
