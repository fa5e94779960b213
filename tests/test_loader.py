from __future__ import annotations

import pytest

from flamedash.errors import TraceFileError
from flamedash.loader import load_records, load_tree, parse_frame, parse_record, parse_records
from flamedash.tree import FrameKey


class TestParseFrame:
    def test_plain_function(self):
        assert parse_frame("main") == FrameKey("main")

    def test_function_with_file_and_line(self):
        key = parse_frame("run (worker.py:42)")
        assert key == FrameKey("run", "worker.py", 42)
        assert key.name == "run (worker.py:42)"

    def test_function_with_file_only(self):
        assert parse_frame("run (worker.py)") == FrameKey("run", "worker.py")

    def test_unusual_text_kept_whole(self):
        assert parse_frame("<lambda> (x)(y)").function == "<lambda> (x)(y)"
        assert parse_frame("thread (0x1f): Main").function == "thread (0x1f): Main"


class TestParseRecord:
    def test_basic_record(self):
        frames, count = parse_record("main;foo;bar 3\n")
        assert [f.function for f in frames] == ["main", "foo", "bar"]
        assert count == 3

    def test_blank_line(self):
        assert parse_record("   \n") is None

    def test_spaces_inside_frames(self):
        frames, count = parse_record("main (app.py:1);process 1:\"python x.py\" 7")
        assert count == 7
        assert frames[1].function == 'process 1:"python x.py"'

    @pytest.mark.parametrize("line", ["main;foo", "main;foo x", "main -2", "; 4"])
    def test_malformed(self, line):
        with pytest.raises(ValueError):
            parse_record(line)

    def test_zero_count_is_allowed(self):
        assert parse_record("a 0")[1] == 0


class TestLoadRecords:
    def test_reports_line_number(self):
        with pytest.raises(TraceFileError) as exc:
            parse_records(["a 1", "", "b nope"], path="t.folded")
        assert exc.value.lineno == 3
        assert str(exc.value).startswith("t.folded:3:")

    def test_missing_file(self, tmp_path):
        with pytest.raises(TraceFileError) as exc:
            load_records(str(tmp_path / "missing.folded"))
        assert exc.value.lineno is None

    def test_load_tree(self, tmp_path):
        path = tmp_path / "trace.folded"
        path.write_text("main;foo;bar 3\nmain;baz 2\n\n")
        tree = load_tree(str(path))
        assert tree.total_count == 5
        assert [n.name for n in tree.nodes] == ["all", "main", "foo", "bar", "baz"]
