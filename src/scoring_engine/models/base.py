"""
Document serialization for the record dataclasses.

Records are persisted and returned as camelCase JSON documents; the Python
side keeps snake_case dataclass fields.
"""
import dataclasses
from datetime import datetime, date, timezone
from typing import Any, Dict, List, Optional, Union, get_args, get_origin, get_type_hints

from scoring_engine.errors import ValidationError


def to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO timestamp (or pass a datetime through) as naive UTC"""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return parse_datetime(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise TypeError(f"Cannot parse datetime from {value!r}")


def _dump(value):
    if dataclasses.is_dataclass(value):
        return value.to_dict()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    return value


def _load(hint, value):
    if value is None:
        return None

    origin = get_origin(hint)
    if origin is Union:
        args = [arg for arg in get_args(hint) if arg is not type(None)]
        return _load(args[0], value) if len(args) == 1 else value
    if origin in (list, List):
        (item_hint,) = get_args(hint) or (Any,)
        return [_load(item_hint, item) for item in value]
    if origin in (dict, Dict):
        return dict(value)

    if isinstance(hint, type):
        if dataclasses.is_dataclass(hint):
            return hint.from_dict(value)
        if hint is datetime:
            return parse_datetime(value)
        if hint is float and not isinstance(value, bool):
            return float(value)
        if hint is int and not isinstance(value, bool):
            return int(value)
    return value


class DocumentMixin:
    """Adds camelCase ``to_dict``/``from_dict`` to a dataclass"""

    def to_dict(self) -> Dict[str, Any]:
        return {
            to_camel(field.name): _dump(getattr(self, field.name))
            for field in dataclasses.fields(self)
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        if data is None:
            return cls()
        hints = get_type_hints(cls)
        kwargs = {}
        for field in dataclasses.fields(cls):
            camel = to_camel(field.name)
            if camel in data:
                raw = data[camel]
            elif field.name in data:
                raw = data[field.name]
            else:
                continue
            try:
                kwargs[field.name] = _load(hints[field.name], raw)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid value for {camel}: {raw!r}") from e
        return cls(**kwargs)
