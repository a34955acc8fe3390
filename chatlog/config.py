"""JSON configuration files stored in a per-application directory."""

from __future__ import annotations

import copy
import dataclasses
import json
import os
import re
import stat
import tempfile
import types
from decimal import Decimal
from typing import Any, Union, get_args, get_origin

from chatlog.defaults import _field_types, set_default

__all__ = [
    "DEFAULT_CONFIG_TYPE",
    "ConfigError",
    "InvalidDirectoryError",
    "MissingConfigNameError",
    "ConfigManager",
    "prepare_dir",
]

DEFAULT_CONFIG_TYPE = "json"
_SUPPORTED_TYPES = frozenset({"json"})
_NONE_TYPE = type(None)
_BOOLS = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}
_BASE_PREFIX = re.compile(r"[+-]?0[0-9_]")


class ConfigError(Exception):
    """Raised when configuration cannot be read, decoded or written."""


class InvalidDirectoryError(ConfigError, NotADirectoryError):
    """Raised when the configuration path exists but is not a directory."""


class MissingConfigNameError(ConfigError, ValueError):
    """Raised when no configuration name is given."""


def prepare_dir(path: str) -> None:
    """Make sure ``path`` exists as a directory, creating it if needed."""
    try:
        info = os.stat(path)
    except FileNotFoundError:
        os.makedirs(path, mode=0o755, exist_ok=True)
        return
    if not stat.S_ISDIR(info.st_mode):
        raise InvalidDirectoryError(f"invalid directory path: {path}")


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(v) for v in value]
    return value


def _hints(cls: type) -> dict[str, Any]:
    return _field_types(cls)


def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _empty(tp: Any) -> Any:
    if _is_dataclass_type(tp):
        return _blank(tp)
    origin = get_origin(tp)
    if tp is list or origin is list:
        return []
    if tp is dict or origin is dict:
        return {}
    return {str: "", int: 0, float: 0.0, bool: False}.get(tp)


def _blank(tp: type) -> Any:
    hints = _hints(tp)
    kwargs = {
        f.name: _empty(hints.get(f.name, Any))
        for f in dataclasses.fields(tp)
        if f.init and f.default is dataclasses.MISSING
        and f.default_factory is dataclasses.MISSING
    }
    return tp(**kwargs)


def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value == "":
            return False
        if value in _BOOLS:
            return _BOOLS[value]
    raise ConfigError(f"{key}: cannot convert {value!r} to bool")


def _to_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if value == "":
            return 0
        try:
            if _BASE_PREFIX.match(value):
                return int(value, 8)
            return int(value, 0)
        except ValueError:
            pass
    raise ConfigError(f"{key}: cannot convert {value!r} to int")


def _to_float(value: Any, key: str) -> float:
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        if value == "":
            return 0.0
        try:
            return float(value)
        except ValueError:
            pass
    raise ConfigError(f"{key}: cannot convert {value!r} to float")


def _to_str(value: Any, key: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format(Decimal(repr(value)).normalize(), "f")
    raise ConfigError(f"{key}: cannot convert {value!r} to str")


def _convert(current: Any, value: Any, tp: Any, key: str) -> Any:
    """Convert a settings value to ``tp``, accepting loosely typed input."""
    if _is_dataclass_type(tp):
        if not isinstance(value, dict):
            raise ConfigError(f"{key}: expected a mapping, got {value!r}")
        target = current if isinstance(current, tp) else _blank(tp)
        _decode_into(target, value, key + ".")
        return target
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        if value is None:
            return None
        args = [a for a in get_args(tp) if a is not _NONE_TYPE]
        return _convert(current, value, args[0], key) if len(args) == 1 else value
    if tp is list or origin is list:
        elem = get_args(tp)[0] if get_args(tp) else Any
        items = value if isinstance(value, list) else [value]
        return [_convert(None, item, elem, f"{key}[{pos}]") for pos, item in enumerate(items)]
    if tp is dict or origin is dict:
        val_tp = get_args(tp)[1] if len(get_args(tp)) == 2 else Any
        if not isinstance(value, dict):
            raise ConfigError(f"{key}: expected a mapping, got {value!r}")
        return {k: _convert(None, v, val_tp, f"{key}.{k}") for k, v in value.items()}
    if tp is bool:
        return _to_bool(value, key)
    if tp is int:
        return _to_int(value, key)
    if tp is float:
        return _to_float(value, key)
    if tp is str:
        return _to_str(value, key)
    return value


def _decode_into(obj: Any, data: dict, prefix: str = "") -> None:
    hints = _hints(type(obj))
    lowered = {str(k).lower(): v for k, v in data.items()}
    for f in dataclasses.fields(obj):
        key = str(f.metadata.get("mapstructure", f.name)).lower()
        if key not in lowered:
            continue
        converted = _convert(getattr(obj, f.name), lowered[key], hints.get(f.name, Any), prefix + key)
        setattr(obj, f.name, converted)


def _type_of_file(file: str) -> str:
    return os.path.splitext(file)[1].lstrip(".").lower()


def _check_type(config_type: str) -> None:
    if config_type not in _SUPPORTED_TYPES:
        raise ConfigError(f"unsupported config type {config_type!r}")


class ConfigManager:
    """A named configuration file kept in a directory.

    ``path`` defaults to ``~/.<name>`` (or a directory in the temporary
    folder when there is no home directory) and is created if missing.
    """

    def __init__(self, name: str, config_type: str = "", path: str = "") -> None:
        if not name:
            raise MissingConfigNameError("config name not specified")
        config_type = config_type or DEFAULT_CONFIG_TYPE
        if not path:
            home = os.path.expanduser("~")
            base = tempfile.gettempdir() if home == "~" else home
            path = base + os.sep + "." + name
        prepare_dir(path)
        self.name = name
        self.config_type = config_type
        self.path = path
        self._file: str | None = None
        self._values: dict[str, Any] = {}

    @property
    def default_file(self) -> str:
        """The file read and written when no explicit file was loaded."""
        return os.path.join(self.path, f"{self.name}.{self.config_type}")

    def _config_file(self) -> tuple[str, str]:
        if self._file is not None:
            return self._file, _type_of_file(self._file)
        if not os.path.isfile(self.default_file):
            raise ConfigError(f"config file {self.name!r} not found in {self.path}")
        return self.default_file, self.config_type

    @staticmethod
    def _read(file: str, config_type: str) -> dict[str, Any]:
        _check_type(config_type)
        with open(file, encoding="utf-8") as fh:
            try:
                data = json.load(fh)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"cannot parse {file}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{file}: top level must be an object")
        return _lower_keys(data)

    def _write(self, file: str, config_type: str) -> None:
        _check_type(config_type)
        with open(file, "w", encoding="utf-8") as fh:
            json.dump(self._values, fh, indent=2, ensure_ascii=False)

    def _safe_write(self) -> None:
        target = self.default_file
        if os.path.exists(target):
            raise ConfigError(f"config file {target} already exists")
        self._write(target, self.config_type)

    def _unmarshal(self, conf: Any) -> None:
        if conf is not None and dataclasses.is_dataclass(conf):
            _decode_into(conf, self._values)
        set_default(conf)

    def load(self, conf: Any) -> None:
        """Read the configuration file into ``conf``, creating it if missing."""
        try:
            file, config_type = self._config_file()
            self._values = self._read(file, config_type)
        except (ConfigError, OSError):
            self._safe_write()
        self._unmarshal(conf)

    def load_file(self, file: str, conf: Any) -> None:
        """Read a specific configuration file into ``conf``."""
        self._file = file
        self._values = self._read(file, _type_of_file(file))
        self._unmarshal(conf)

    def set(self, key: str, value: Any) -> None:
        """Set a dotted ``key`` to ``value`` and write the file back."""
        *parents, leaf = key.lower().split(".")
        node = self._values
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[leaf] = _lower_keys(value)
        self._write(*self._config_file())

    def reset(self) -> None:
        """Clear every setting and write the empty configuration back."""
        self._file = None
        self._values = {}
        self._write(*self._config_file())

    def settings(self) -> dict[str, Any]:
        """Return a copy of all settings."""
        return copy.deepcopy(self._values)