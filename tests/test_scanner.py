# tests/test_scanner.py
"""
Tests for source file discovery.
"""

import pytest

from leakcheck.errors import ScanError
from leakcheck.scanner import SourceScanner, scan_paths


@pytest.fixture()
def tree(tmp_path):
    root = tmp_path / "src"
    for rel in ("a.cpp", "b.h", "notes.txt", "build/gen.cpp",
                "third_party/x/y.cpp", "third_party/z.hpp"):
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("// %s\n" % rel, encoding="utf-8")
    return root


def rel(root, files):
    return [f.relative_to(root.resolve()).as_posix() for f in files]


class TestSourceScanner:

    def test_walks_in_sorted_order(self, tree):
        files = SourceScanner().scan([tree])
        assert rel(tree, files) == [
            "a.cpp", "b.h", "build/gen.cpp", "third_party/z.hpp", "third_party/x/y.cpp",
        ]
        assert all(f.is_absolute() for f in files)

    def test_exclude_by_name(self, tree):
        files = SourceScanner(excludes=("build", "third_party")).scan([tree])
        assert rel(tree, files) == ["a.cpp", "b.h"]

    def test_exclude_by_path_fragment(self, tree):
        files = SourceScanner(excludes=("third_party/x",)).scan([tree])
        assert "third_party/x/y.cpp" not in rel(tree, files)
        assert "third_party/z.hpp" in rel(tree, files)

    def test_extensions(self, tree):
        files = SourceScanner(extensions=(".H",)).scan([tree])
        assert rel(tree, files) == ["b.h"]

    def test_explicit_file(self, tree):
        scanner = SourceScanner()
        assert scanner.scan_path(tree / "a.cpp") == [tree / "a.cpp"]
        assert scanner.scan_path(tree / "notes.txt") == []

    def test_duplicates_are_dropped(self, tree):
        files = scan_paths([tree / "a.cpp", tree, tree / "a.cpp"])
        assert rel(tree, files).count("a.cpp") == 1
        assert rel(tree, files)[0] == "a.cpp"

    def test_missing_path(self, tmp_path):
        with pytest.raises(ScanError) as excinfo:
            SourceScanner().scan([tmp_path / "nowhere"])
        assert excinfo.value.reason == "no such file or directory"
