[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chatlog"
version = "0.1.0"
description = "Building blocks for chat history tools: time-range parsing, .dat image decoding, decompression, JSON settings, temporary file copies and file monitoring."
requires-python = ">=3.10"
keywords = [
    "chat",
    "chatlog",
    "time-range",
    "dat",
    "lz4",
    "zstd",
    "file-monitor",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Utilities",
]
dependencies = [
    "cryptography",
    "lz4",
    "zstandard",
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["chatlog"]

[tool.hatch.build.targets.sdist]
include = [
    "chatlog",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
