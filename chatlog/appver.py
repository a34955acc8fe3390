"""Version information of an installed application binary."""

from __future__ import annotations

import dataclasses
import os
import plistlib
import sys
from dataclasses import dataclass
from xml.parsers.expat import ExpatError

from chatlog.strutil import must_any_to_int

__all__ = ["INFO_FILE", "AppInfo", "parse_info_plist", "load_app_info"]

INFO_FILE = "Info.plist"


@dataclass
class AppInfo:
    """Descriptive and version fields of an application."""

    file_path: str = ""
    company_name: str = ""
    file_description: str = ""
    version: int = 0
    full_version: str = ""
    legal_copyright: str = ""
    product_name: str = ""
    product_version: str = ""


def _plist_string(plist: dict, key: str) -> str:
    value = plist.get(key, "")
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def parse_info_plist(data: bytes) -> AppInfo:
    """Read the version and copyright from the bytes of an ``Info.plist``.

    Raises ValueError if the data is not a property list dictionary.
    """
    try:
        plist = plistlib.loads(bytes(data))
    except (plistlib.InvalidFileException, ExpatError, ValueError) as exc:
        raise ValueError(f"invalid property list: {exc}") from exc
    if not isinstance(plist, dict):
        raise ValueError("property list is not a dictionary")
    full_version = _plist_string(plist, "CFBundleShortVersionString")
    return AppInfo(
        full_version=full_version,
        version=must_any_to_int(full_version.split(".")[0]),
        company_name=_plist_string(plist, "NSHumanReadableCopyright"),
    )


def _bundle_info_path(file_path: str) -> str:
    parts = [p for p in file_path.split(os.sep)[:-2] if p]
    return os.path.normpath(os.path.join(os.sep, *parts, INFO_FILE))


def load_app_info(file_path: str) -> AppInfo:
    """Return what is known about the application at ``file_path``.

    On macOS the bundle's ``Info.plist`` two levels above the executable is
    read; elsewhere only the path is recorded.
    """
    if sys.platform != "darwin":
        return AppInfo(file_path=file_path)
    with open(_bundle_info_path(file_path), "rb") as fh:
        info = parse_info_plist(fh.read())
    return dataclasses.replace(info, file_path=file_path)