import os
import threading

import pytest

from chatlog.filegroup import EventOp, FileEvent, FileGroup


@pytest.fixture
def tree(tmp_path):
    root = tmp_path.resolve() / "root"
    (root / "sub").mkdir(parents=True)
    (root / "b.db").write_bytes(b"b")
    (root / "a.db").write_bytes(b"a")
    (root / "x.txt").write_bytes(b"x")
    (root / "sub" / "c.db").write_bytes(b"c")
    return root


def test_invalid_pattern_raises_value_error():
    with pytest.raises(ValueError):
        FileGroup("g", "/tmp", "([unclosed", [])


def test_root_dir_is_normalised():
    group = FileGroup("g", os.path.join(os.sep, "a", "b", "..", "c"), "x", None)
    assert group.root_dir == os.path.join(os.sep, "a", "c")
    assert group.pattern_str == "x"
    assert group.blacklist == []


def test_match_inside_root(tree):
    group = FileGroup("g", str(tree), r"\.db$", [])
    assert group.match(str(tree / "a.db"))
    assert group.match(str(tree / "sub" / "c.db"))


def test_match_rejects_outside_root(tree):
    group = FileGroup("g", str(tree / "sub"), r"\.db$", [])
    assert not group.match(str(tree / "a.db"))


def test_match_rejects_pattern_mismatch(tree):
    group = FileGroup("g", str(tree), r"\.db$", [])
    assert not group.match(str(tree / "x.txt"))


def test_match_blacklist_applies_to_relative_path(tree):
    group = FileGroup("g", str(tree), r"\.db$", ["sub"])
    assert not group.match(str(tree / "sub" / "c.db"))
    assert group.match(str(tree / "a.db"))
    # the root itself contains "root" but only the relative part is checked
    other = FileGroup("g", str(tree), r"\.db$", ["root"])
    assert other.match(str(tree / "a.db"))


def test_list_files_in_lexical_order(tree):
    group = FileGroup("g", str(tree), r"\.db$", [])
    assert group.list_files() == [
        str(tree / "a.db"),
        str(tree / "b.db"),
        str(tree / "sub" / "c.db"),
    ]


def test_list_files_missing_root_is_empty(tmp_path):
    group = FileGroup("g", str(tmp_path / "missing"), r".*", [])
    assert group.list_files() == []


def test_list_matching_directories(tree):
    group = FileGroup("g", str(tree), r"\.db$", [])
    assert group.list_matching_directories() == {str(tree), str(tree / "sub")}
    only_txt = FileGroup("t", str(tree), r"\.txt$", [])
    assert only_txt.list_matching_directories() == {str(tree)}


def test_add_and_remove_callback():
    group = FileGroup("g", "/tmp", "x", [])

    def first(event):
        pass

    def second(event):
        pass

    group.add_callback(first)
    group.add_callback(second)
    assert group.callbacks == (first, second)
    assert group.remove_callback(first) is True
    assert group.callbacks == (second,)
    assert group.remove_callback(first) is False


def test_handle_event_calls_callback_for_match(tree):
    group = FileGroup("g", str(tree), r"\.db$", [])
    received = []
    done = threading.Event()

    def callback(event):
        received.append(event)
        done.set()

    group.add_callback(callback)
    event = FileEvent(str(tree / "a.db"), EventOp.WRITE)
    group.handle_event(event)
    assert done.wait(5)
    assert received == [event]


def test_handle_event_ignores_non_matching(tree):
    group = FileGroup("g", str(tree), r"\.db$", [])
    called = threading.Event()
    group.add_callback(lambda event: called.set())
    group.handle_event(FileEvent(str(tree / "x.txt"), EventOp.CREATE))
    assert not called.wait(0.3)


def test_failing_callback_does_not_block_others(tree):
    group = FileGroup("g", str(tree), r"\.db$", [])
    done = threading.Event()

    def broken(event):
        raise RuntimeError("boom")

    group.add_callback(broken)
    group.add_callback(lambda event: done.set())
    group.handle_event(FileEvent(str(tree / "b.db"), EventOp.CREATE))
    assert done.wait(5)


def test_event_with_combined_ops_is_delivered(tree):
    group = FileGroup("g", str(tree), r"\.db$", [])
    received = []
    done = threading.Event()

    def callback(event):
        received.append(event)
        done.set()

    group.add_callback(callback)
    op = EventOp.CREATE | EventOp.WRITE
    event = FileEvent(str(tree / "a.db"), op)
    group.handle_event(event)
    assert done.wait(5)
    assert received == [event]
    assert op & EventOp.WRITE
    assert not op & EventOp.REMOVE