"""Version string of the running program and its build environment."""

from __future__ import annotations

import platform
import sys

__all__ = ["VERSION", "get_more"]

VERSION = "(dev)"

_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
}


def _os_name() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def _arch_name() -> str:
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine or "unknown")


def _build_info() -> str:
    lines = [
        f"python\t{platform.python_version()}",
        "path\tchatlog",
        f"mod\tchatlog\t{VERSION}",
        f"build\timplementation={platform.python_implementation()}",
        f"build\tGOOS={_os_name()}",
        f"build\tGOARCH={_arch_name()}",
    ]
    return "\n".join(lines) + "\n"


def get_more(include_modules: bool) -> str:
    """Return a one-line version summary, or indented build details."""
    if include_modules:
        info = _build_info()
        if info:
            return "\t" + info[:-1].replace("\n", "\n\t") + "\n"
    return f"version {VERSION} python{platform.python_version()} {_os_name()}/{_arch_name()}\n"