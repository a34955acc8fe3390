import os
import sys

import pytest

from chatlog.fsutil import (
    byte_count_si,
    default_work_dir,
    find_files_with_patterns,
    get_dir_size,
    prepare_dir,
)


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "b.txt").write_text("b")
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "skip.log").write_text("x")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "c.txt").write_text("c")
    return tmp_path


def test_find_non_recursive(tree):
    found = find_files_with_patterns(str(tree), r"\.txt$", False)
    assert found == [str(tree / "a.txt"), str(tree / "b.txt")]


def test_find_recursive(tree):
    found = find_files_with_patterns(str(tree), r"\.txt$", True)
    assert sorted(found) == sorted(
        [str(tree / "a.txt"), str(tree / "b.txt"), str(tree / "sub" / "c.txt")]
    )


def test_find_invalid_pattern(tree):
    with pytest.raises(ValueError):
        find_files_with_patterns(str(tree), "(", True)


def test_find_not_a_directory(tree):
    with pytest.raises(NotADirectoryError):
        find_files_with_patterns(str(tree / "a.txt"), ".*", True)


def test_find_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_files_with_patterns(str(tmp_path / "missing"), ".*", True)


def test_byte_count_si_small():
    assert byte_count_si(999) == "999 B"


def test_byte_count_si_kilo():
    assert byte_count_si(1000) == "1.0 kB"


def test_byte_count_si_units_grow():
    assert byte_count_si(10**6).endswith("MB")
    assert byte_count_si(10**9).endswith("GB")


def test_get_dir_size_of_file(tmp_path):
    f = tmp_path / "data.bin"
    f.write_bytes(b"x" * 1500)
    assert get_dir_size(str(f)) == byte_count_si(1500)


def test_get_dir_size_missing(tmp_path):
    assert get_dir_size(str(tmp_path / "nope")) == "0 B"


def test_default_work_dir_linux(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_work_dir("acc") == os.path.join(str(tmp_path), "chatlog", "acc")
    assert default_work_dir("") == os.path.join(str(tmp_path), "chatlog")


def test_default_work_dir_darwin(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "darwin")
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_work_dir("acc") == os.path.join(
        str(tmp_path), "Documents", "chatlog", "acc"
    )


def test_prepare_dir_creates(tmp_path):
    target = tmp_path / "x" / "y"
    prepare_dir(str(target))
    assert target.is_dir()
    prepare_dir(str(target))
    assert target.is_dir()


def test_prepare_dir_file(tmp_path):
    f = tmp_path / "file"
    f.write_text("")
    with pytest.raises(NotADirectoryError):
        prepare_dir(str(f))