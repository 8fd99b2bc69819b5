"""Test the transcript writer."""

import threading

import pytest

from stamprun.errors import LogFileError
from stamprun.logwriter import LogWriter


def test_fresh_file_each_run(tmp_path):
    path = tmp_path / "run.log"
    path.write_text("stale line\n")
    with LogWriter(path) as w:
        w.append("first")
        w.append("")
    assert path.read_text() == "first\n\n"


def test_creates_parent_dirs(tmp_path):
    path = tmp_path / "a" / "b" / "run.log"
    with LogWriter(path) as w:
        w.append("x")
    assert path.read_text() == "x\n"
    assert w.lines == 1


def test_unwritable_path(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(LogFileError) as info:
        LogWriter(blocker / "run.log")
    assert "cannot open log file" in str(info.value)


def test_append_after_close_dropped(tmp_path):
    path = tmp_path / "run.log"
    w = LogWriter(path)
    w.append("kept")
    w.close()
    w.close()
    w.append("dropped")
    assert path.read_text() == "kept\n"


def test_concurrent_appends_stay_whole(tmp_path):
    """Two writers never interleave inside a line."""
    path = tmp_path / "run.log"
    w = LogWriter(path)

    def spam(tag):
        for i in range(300):
            w.append(f"{tag}-{i:04d}-" + tag * 50)

    threads = [threading.Thread(target=spam, args=(t,)) for t in "ab"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    w.close()

    lines = path.read_text().splitlines()
    assert len(lines) == 600
    for tag in "ab":
        own = [ln for ln in lines if ln.startswith(tag + "-")]
        assert own == [f"{tag}-{i:04d}-" + tag * 50 for i in range(300)]


def test_undecodable_bytes_written_back(tmp_path):
    path = tmp_path / "run.log"
    with LogWriter(path) as w:
        w.append(b"caf\xe9".decode("utf-8", "surrogateescape"))
    assert path.read_bytes() == b"caf\xe9\n"
