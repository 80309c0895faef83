"""Normalise raw extracted field maps into well-formed records."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from ..config import FieldSpec
from ..errors import ValidationAnomaly


@dataclass(frozen=True, slots=True)
class Record:
    """Validated record: field name -> string or None, in schema order."""

    values: Mapping[str, str | None]
    anomalies: tuple[ValidationAnomaly, ...] = field(default=(), compare=False)

    def __getitem__(self, name: str) -> str | None:
        return self.values[name]

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.values.get(name, default)

    @property
    def defaulted(self) -> frozenset[str]:
        return frozenset(anomaly.field for anomaly in self.anomalies)

    def row(self, field_names: Iterable[str]) -> list[str | None]:
        return [self.values.get(name) for name in field_names]

    def as_dict(self) -> dict[str, str | None]:
        return dict(self.values)


class RecordValidator:
    """Apply per-field fallbacks so every raw map yields a usable record.

    ``validate`` never raises. Missing, blank or unusable values are replaced
    by the field's fallback and reported as anomalies on the record.
    """

    def __init__(self, fields: Iterable[FieldSpec]) -> None:
        self.fields = list(fields)

    @property
    def field_names(self) -> list[str]:
        return [spec.name for spec in self.fields]

    def validate(self, raw: Mapping[str, Any] | None) -> Record:
        source = raw if isinstance(raw, Mapping) else {}
        values: dict[str, str | None] = {}
        anomalies: list[ValidationAnomaly] = []
        for spec in self.fields:
            value, reason = self._normalise(source.get(spec.name))
            if reason is not None:
                anomalies.append(ValidationAnomaly(field=spec.name, reason=reason))
                value = spec.fallback
            values[spec.name] = value
        return Record(values=MappingProxyType(values), anomalies=tuple(anomalies))

    @staticmethod
    def _normalise(value: Any) -> tuple[str | None, str | None]:
        if value is None:
            return None, "missing"
        if isinstance(value, bool):
            return None, "unsupported_type"
        if isinstance(value, (int, float)):
            return str(value), None
        if isinstance(value, str):
            text = value.strip()
            if text:
                return text, None
            return None, "blank"
        return None, "unsupported_type"


__all__ = ["Record", "RecordValidator"]
