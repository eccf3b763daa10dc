"""
Row codec

Maps entities to flat column -> primitive dicts and back.

- datetime / date -> ISO-8601 text
- bool -> 0/1
- List[str] -> comma-joined text ("" for an empty list; items must be
  non-empty and free of commas)
- List[dict] -> JSON text (NULL for an empty list)
- Dict -> JSON text
- Unknown columns are rejected rather than silently dropped
"""
import json
import types
from datetime import date, datetime
from typing import Any, Dict, List, Type, TypeVar, Union, get_args, get_origin

from pydantic import ValidationError as PydanticValidationError

from medrefer.core.errors import CodecError
from medrefer.database.schemas import Entity

E = TypeVar("E", bound=Entity)

Row = Dict[str, Any]

# Column kinds
PLAIN = "plain"
DATETIME = "datetime"
DATE = "date"
BOOL = "bool"
CSV_LIST = "csv_list"
JSON_LIST = "json_list"
JSON_MAP = "json_map"

_kind_cache: Dict[Type[Entity], Dict[str, str]] = {}


def _strip_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is Union or origin is getattr(types, "UnionType", None):
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _kind_for(annotation: Any) -> str:
    annotation = _strip_optional(annotation)
    origin = get_origin(annotation)

    if annotation is datetime:
        return DATETIME
    if annotation is date:
        return DATE
    if annotation is bool:
        return BOOL
    if origin in (list, List):
        args = get_args(annotation)
        item = _strip_optional(args[0]) if args else str
        return CSV_LIST if item is str else JSON_LIST
    if origin in (dict, Dict):
        return JSON_MAP
    return PLAIN


def column_kinds(model_cls: Type[Entity]) -> Dict[str, str]:
    """
    Column name -> kind for a model (computed once per class)
    """
    kinds = _kind_cache.get(model_cls)
    if kinds is None:
        kinds = {
            name: _kind_for(field.annotation)
            for name, field in model_cls.model_fields.items()
        }
        _kind_cache[model_cls] = kinds
    return kinds


def columns(model_cls: Type[Entity]) -> List[str]:
    return list(column_kinds(model_cls))


def _join(name: str, items: List[str]) -> str:
    for item in items:
        if not item or "," in item:
            raise CodecError(
                f"Cannot store {item!r} in comma-joined column {name}",
                {"column": name},
            )
    return ",".join(items)


def _encode(name: str, kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind in (DATETIME, DATE):
        return value.isoformat()
    if kind == BOOL:
        return 1 if value else 0
    if kind == CSV_LIST:
        return _join(name, value)
    if kind == JSON_LIST:
        return json.dumps(value) if value else None
    if kind == JSON_MAP:
        return json.dumps(value)
    return value


def _decode(kind: str, value: Any) -> Any:
    if kind == CSV_LIST:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        text = str(value)
        return text.split(",") if text else []
    if kind == JSON_LIST:
        if value in (None, ""):
            return []
        return json.loads(value) if isinstance(value, str) else value
    if kind == JSON_MAP:
        if value in (None, ""):
            return {}
        return json.loads(value) if isinstance(value, str) else value
    # datetime/date/bool/plain: pydantic parses ISO text and 0/1 itself
    return value


def to_row(entity: Entity) -> Row:
    """
    Flatten an entity into a column -> primitive dict

    Raises:
        CodecError: a string list item is empty or contains a comma
    """
    kinds = column_kinds(type(entity))
    return {
        name: _encode(name, kind, getattr(entity, name))
        for name, kind in kinds.items()
    }


def from_row(model_cls: Type[E], row: Row) -> E:
    """
    Build an entity from a row

    Raises:
        CodecError: row has columns the model does not declare, or a value
            that does not validate
    """
    kinds = column_kinds(model_cls)
    unknown = sorted(set(row) - set(kinds))
    if unknown:
        raise CodecError(
            f"Unknown columns for {model_cls.__name__}",
            {"columns": ",".join(unknown)},
        )

    try:
        values = {name: _decode(kinds[name], value) for name, value in row.items()}
        return model_cls.model_validate(values)
    except (PydanticValidationError, json.JSONDecodeError) as exc:
        raise CodecError(
            f"Invalid {model_cls.__name__} row",
            {"id": row.get("id"), "error": str(exc)},
        ) from exc


def from_rows(model_cls: Type[E], rows: List[Row]) -> List[E]:
    return [from_row(model_cls, row) for row in rows]
