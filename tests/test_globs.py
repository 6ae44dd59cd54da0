import os

import pytest

from buildcopy.core.globs import GlobMatcher, match_path, split_patterns


def test_split_patterns():
    assert split_patterns(" a/*.txt, ,b\\c/ ,/d/**") == ["a/*.txt", "b/c/**", "d/**"]
    assert split_patterns(None) == []


@pytest.mark.parametrize(
    "pattern, path, expected",
    [
        ("**", "a/b/c.txt", True),
        ("**/*.txt", "c.txt", True),
        ("**/*.txt", "a/b/c.txt", True),
        ("*.txt", "a/c.txt", False),
        ("a/**/c.txt", "a/c.txt", True),
        ("a/**/c.txt", "a/x/y/c.txt", True),
        ("a/?.txt", "a/c.txt", True),
        ("a/?.txt", "a/cc.txt", False),
        ("a/*", "a/b/c.txt", False),
        ("a/**", "a/b/c.txt", True),
    ],
)
def test_match_path(pattern, path, expected):
    assert match_path(pattern, path) is expected


def test_blank_includes_match_everything():
    matcher = GlobMatcher("", None)

    assert matcher.matches("deep/down/file.bin") is True


def test_excludes_remove_included_paths():
    matcher = GlobMatcher("**/*.jar,**/*.txt", "**/test/**, *.txt")

    assert matcher.filter(["lib/a.jar", "lib/test/b.jar", "notes.txt", "doc/readme.txt"]) == [
        "doc/readme.txt",
        "lib/a.jar",
    ]


def test_scan_walks_tree_in_sorted_order(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "a" / "x").mkdir(parents=True)
    (tmp_path / "b" / "2.txt").write_text("2")
    (tmp_path / "a" / "x" / "1.txt").write_text("1")
    (tmp_path / "top.log").write_text("log")

    assert list(GlobMatcher("**/*.txt").scan(tmp_path)) == ["a/x/1.txt", "b/2.txt"]
    assert list(GlobMatcher("**", "a/").scan(tmp_path)) == ["top.log", "b/2.txt"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_scan_reports_directory_links_without_following(tmp_path):
    (tmp_path / "real").mkdir()
    (tmp_path / "real" / "f.txt").write_text("f")
    (tmp_path / "link").symlink_to(tmp_path / "real", target_is_directory=True)

    assert list(GlobMatcher("**").scan(tmp_path)) == ["link", "real/f.txt"]
