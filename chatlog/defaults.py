"""Filling dataclass fields with default values declared in field metadata.

A field declares its default as a string under the metadata key ``"default"``
(see :func:`set_default_tag`). Simple fields take the string parsed to their
type; nested dataclasses, lists, dicts and optional fields take it as JSON.
Defaults only apply to fields that still hold their zero value.
"""

from __future__ import annotations

import ast
import dataclasses
import functools
import json
import re
import types
from typing import Any, Optional, Union, get_args, get_origin

__all__ = ["set_default_tag", "set_default"]

_settings: dict[str, str] = {"tag_key": "default"}

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_BOOLS = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}
_NONE_TYPE = type(None)

_BUILTIN_NAMES: dict[str, Any] = {
    "int": int,
    "str": str,
    "float": float,
    "bool": bool,
    "bytes": bytes,
    "list": list,
    "List": list,
    "dict": dict,
    "Dict": dict,
    "Any": Any,
    "object": object,
    "None": _NONE_TYPE,
    "NoneType": _NONE_TYPE,
}


def set_default_tag(tag: str) -> None:
    """Change the metadata key under which field defaults are looked up."""
    _settings["tag_key"] = tag


def set_default(obj: Any) -> Any:
    """Fill zero-valued fields of a dataclass instance in place and return it."""
    if obj is None or not _is_instance(obj):
        return obj
    _fill_fields(obj)
    return obj


def _is_instance(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _namespace(cls: type) -> dict[str, Any]:
    init = getattr(cls, "__init__", None)
    found = getattr(init, "__globals__", None)
    return found if isinstance(found, dict) else {}


def _lookup(name: str, namespace: dict[str, Any]) -> Any:
    value = namespace.get(name)
    if isinstance(value, type):
        return value
    return _BUILTIN_NAMES.get(name, Any)


def _base_name(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return ""


def _resolve_node(node: ast.AST, namespace: dict[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        if node.value is None:
            return _NONE_TYPE
        if isinstance(node.value, str):
            return _resolve_text(node.value, namespace)
        return Any
    if isinstance(node, (ast.Name, ast.Attribute)):
        return _lookup(_base_name(node), namespace)
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return Union[_resolve_node(node.left, namespace), _resolve_node(node.right, namespace)]
    if isinstance(node, ast.Subscript):
        base = _base_name(node.value)
        inner = node.slice
        elts = list(inner.elts) if isinstance(inner, ast.Tuple) else [inner]
        args = tuple(_resolve_node(e, namespace) for e in elts)
        if base in ("list", "List") and len(args) == 1:
            return list[args[0]]
        if base in ("dict", "Dict") and len(args) == 2:
            return dict[args[0], args[1]]
        if base == "Optional" and len(args) == 1:
            return Optional[args[0]]
        if base == "Union" and args:
            return Union[args]
        return Any
    return Any


def _resolve_text(text: str, namespace: dict[str, Any]) -> Any:
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except SyntaxError:
        return Any
    return _resolve_node(tree.body, namespace)


@functools.lru_cache(maxsize=None)
def _field_types(cls: type) -> dict[str, Any]:
    """Map each dataclass field name to its type, resolving string annotations."""
    namespace = _namespace(cls)
    return {
        f.name: _resolve_text(f.type, namespace) if isinstance(f.type, str) else f.type
        for f in dataclasses.fields(cls)
    }


_hints = _field_types


def _optional_inner(tp: Any) -> Any:
    args = get_args(tp)
    rest = [a for a in args if a is not _NONE_TYPE]
    if len(args) == 2 and len(rest) == 1:
        return rest[0]
    return None


def _kind(tp: Any) -> str:
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        return "struct"
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        return "ptr" if _optional_inner(tp) is not None else "any"
    if tp is Any or tp is object:
        return "any"
    if tp is dict or origin is dict:
        return "map"
    if tp is list or origin is list:
        return "list"
    if tp in (bool, int, float, str):
        return tp.__name__
    return "other"


def _list_elem(tp: Any) -> Any:
    args = get_args(tp)
    return args[0] if args else Any


def _map_types(tp: Any) -> tuple[Any, Any]:
    args = get_args(tp)
    return (args[0], args[1]) if len(args) == 2 else (Any, Any)


def _zero(tp: Any) -> Any:
    kind = _kind(tp)
    if kind == "struct":
        hints = _hints(tp)
        return tp(**{
            f.name: _zero(hints.get(f.name, Any))
            for f in dataclasses.fields(tp)
            if f.init
        })
    return {"map": {}, "list": [], "bool": False, "int": 0, "float": 0.0, "str": ""}.get(kind)


def _is_zero(value: Any, tp: Any) -> bool:
    if value is None:
        return True
    kind = _kind(tp)
    if kind == "struct":
        if not _is_instance(value):
            return False
        hints = _hints(type(value))
        return all(
            _is_zero(getattr(value, f.name), hints.get(f.name, Any))
            for f in dataclasses.fields(value)
        )
    if kind in ("map", "list"):
        return len(value) == 0
    if kind in ("bool", "int", "float", "str"):
        return not value
    return False


def _parse_int(text: str) -> int | None:
    if not _INT_RE.fullmatch(text):
        return None
    number = int(text)
    return number if _INT64_MIN <= number <= _INT64_MAX else None


def _parse_float(text: str) -> float | None:
    if text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _decode_key(key: str, tp: Any) -> Any:
    if tp is int:
        number = _parse_int(key)
        if number is None:
            raise ValueError(f"invalid integer key {key!r}")
        return number
    return key


def _decode(raw: Any, tp: Any) -> Any:
    """Turn a decoded JSON value into a value of type ``tp``."""
    kind = _kind(tp)
    if kind == "struct":
        if raw is None:
            return _zero(tp)
        if not isinstance(raw, dict):
            raise ValueError(f"cannot decode {raw!r} into {tp.__name__}")
        hints = _hints(tp)
        lowered = {str(k).lower(): v for k, v in raw.items()}
        kwargs = {}
        for f in dataclasses.fields(tp):
            if not f.init:
                continue
            field_tp = hints.get(f.name, Any)
            if f.name in raw:
                kwargs[f.name] = _decode(raw[f.name], field_tp)
            elif f.name.lower() in lowered:
                kwargs[f.name] = _decode(lowered[f.name.lower()], field_tp)
            else:
                kwargs[f.name] = _zero(field_tp)
        return tp(**kwargs)
    if kind == "ptr":
        return None if raw is None else _decode(raw, _optional_inner(tp))
    if kind == "any":
        return raw
    if kind == "map":
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"cannot decode {raw!r} into a mapping")
        key_tp, val_tp = _map_types(tp)
        return {_decode_key(k, key_tp): _decode(v, val_tp) for k, v in raw.items()}
    if kind == "list":
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ValueError(f"cannot decode {raw!r} into a list")
        elem = _list_elem(tp)
        return [_decode(item, elem) for item in raw]
    if raw is None:
        return _zero(tp)
    if kind == "bool" and isinstance(raw, bool):
        return raw
    if kind == "int" and isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if kind == "float" and isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    if kind == "str" and isinstance(raw, str):
        return raw
    if kind == "other":
        return raw
    raise ValueError(f"cannot decode {raw!r} into {kind}")


def _decode_tag(tag: str, tp: Any, fallback: Any) -> Any:
    try:
        return _decode(json.loads(tag), tp)
    except (ValueError, TypeError):
        return fallback


def _fill_fields(obj: Any) -> None:
    params = getattr(type(obj), "__dataclass_params__", None)
    if params is not None and params.frozen:
        return
    hints = _hints(type(obj))
    tag_key = _settings["tag_key"]
    for f in dataclasses.fields(obj):
        tag = str(f.metadata.get(tag_key, ""))
        current = getattr(obj, f.name)
        updated = _fill(current, hints.get(f.name, Any), tag)
        if updated is not current:
            setattr(obj, f.name, updated)


def _fill_struct(value: Any, tp: Any, tag: str) -> Any:
    if value is not None and (not tag or not _is_zero(value, tp)):
        _fill_fields(value)
        return value
    if not tag:
        return value
    decoded = _decode_tag(tag, tp, None)
    if decoded is None:
        return value
    _fill_fields(decoded)
    return decoded


def _fill_simple(value: Any, kind: str, tag: str) -> Any:
    if not tag or (value is not None and not _is_zero(value, kind_type(kind))):
        return value
    if kind == "str":
        return tag
    if kind == "int":
        parsed = _parse_int(tag)
        return value if parsed is None else parsed
    if kind == "float":
        parsed = _parse_float(tag)
        return value if parsed is None else parsed
    if kind == "bool":
        return _BOOLS.get(tag, value)
    return value


def kind_type(kind: str) -> Any:
    return {"bool": bool, "int": int, "float": float, "str": str}.get(kind, Any)


def _fill(value: Any, tp: Any, tag: str) -> Any:
    kind = _kind(tp)
    if kind == "struct":
        return _fill_struct(value, tp, tag)
    if kind == "ptr":
        if value is not None or not tag:
            return value
        return _decode_tag(tag, tp, value)
    if kind == "any":
        if value is not None and _is_instance(value):
            return _fill_struct(value, type(value), tag)
        return value
    if kind == "map":
        if value or not tag:
            return value
        return _decode_tag(tag, tp, value)
    if kind == "list":
        elem = _list_elem(tp)
        if value or not tag:
            if value:
                value[:] = [_fill(item, elem, "") for item in value]
            return value
        decoded = _decode_tag(tag, tp, value)
        if decoded is value:
            return value
        return [_fill(item, elem, "") for item in decoded]
    return _fill_simple(value, kind, tag)