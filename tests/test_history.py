import pytest

from roomchat.history import HistoryFile


def test_check_readable_missing_file_raises(tmp_path):
    history = HistoryFile(tmp_path / "history.info")
    with pytest.raises(FileNotFoundError):
        history.check_readable()


def test_lines_of_missing_file_is_empty(tmp_path):
    assert HistoryFile(tmp_path / "absent.info").lines() == []


def test_append_then_lines_round_trip(tmp_path):
    history = HistoryFile(tmp_path / "history.info")
    entries = ["[07:08:09]<alice>:hi", "系统消息：hello", "[07:08:10]<张三>:你好"]
    for entry in entries:
        history.append(entry)
    assert history.lines() == entries


def test_check_readable_after_append(tmp_path):
    path = tmp_path / "history.info"
    history = HistoryFile(path)
    history.append("first")
    history.check_readable()
    assert history.lines() == ["first"]


def test_each_entry_is_one_line_on_disk(tmp_path):
    path = tmp_path / "history.info"
    history = HistoryFile(str(path))
    history.append("one")
    history.append("two")
    assert path.read_text(encoding="utf-8").splitlines() == ["one", "two"]


def test_existing_content_is_kept(tmp_path):
    path = tmp_path / "history.info"
    path.write_text("old\n", encoding="utf-8")
    history = HistoryFile(path)
    history.append("new")
    assert history.lines() == ["old", "new"]


def test_empty_existing_file_has_no_lines(tmp_path):
    path = tmp_path / "history.info"
    path.write_text("", encoding="utf-8")
    history = HistoryFile(path)
    history.check_readable()
    assert history.lines() == []