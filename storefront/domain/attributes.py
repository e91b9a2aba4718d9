# storefront/domain/attributes.py
import json
from typing import Any, Iterator, Mapping

from storefront.domain.errors import ValidationError


class SelectedAttributes:
    """
    Normalized set of (key, value) pairs chosen for a cart line, e.g. size/color.

    Keys are lower-cased and stripped, values stripped; pairs are kept sorted
    so that ``canonical()`` is the same string for equal selections no matter
    how the client ordered or cased them. The canonical form is what cart
    lines are matched on.
    """

    __slots__ = ("_pairs",)

    def __init__(self, pairs: tuple[tuple[str, str], ...] = ()):
        self._pairs = pairs

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "SelectedAttributes":
        if not raw:
            return cls()
        normalized: dict[str, str] = {}
        for key, value in raw.items():
            k = str(key).strip().lower()
            if not k:
                raise ValidationError("Attribute names cannot be empty")
            if value is None:
                continue
            v = str(value).strip()
            if not v:
                raise ValidationError(f"Attribute '{k}' cannot be empty if provided")
            normalized[k] = v
        return cls(tuple(sorted(normalized.items())))

    @classmethod
    def from_canonical(cls, text: str | None) -> "SelectedAttributes":
        if not text:
            return cls()
        return cls.from_mapping(json.loads(text))

    def canonical(self) -> str:
        return json.dumps(dict(self._pairs), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def get(self, key: str, default: str | None = None) -> str | None:
        for k, v in self._pairs:
            if k == key:
                return v
        return default

    def as_dict(self) -> dict[str, str]:
        return dict(self._pairs)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SelectedAttributes):
            return NotImplemented
        return self._pairs == other._pairs

    def __hash__(self) -> int:
        return hash(self._pairs)

    def __repr__(self) -> str:
        return f"SelectedAttributes({self.canonical()})"
