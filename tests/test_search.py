"""Tests for the bounded recursive search."""
import os

import pytest

from filevue_backend.errors import InvalidInput, NotFound, OutsideRoot
from filevue_backend.sandbox import PathSandbox
from filevue_backend.search import SearchEngine


class SteppingClock:
    """Advances by ``step`` seconds every time it is read."""

    def __init__(self, step: float) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


@pytest.fixture
def frozen_engine(sandbox):
    return SearchEngine(sandbox, clock=lambda: 0.0)


class TestBudgets:
    def test_limit_truncates(self, tmp_path):
        root = tmp_path / "many"
        root.mkdir()
        for i in range(1000):
            (root / f"match-{i:04d}.txt").write_text("")
        engine = SearchEngine(PathSandbox(root), clock=lambda: 0.0)

        outcome = engine.search(".", "match", limit=10)

        assert len(outcome.matches) == 10
        assert outcome.truncated
        assert not outcome.timed_out

    def test_timeout_stops_search(self, tmp_path):
        root = tmp_path / "slow"
        root.mkdir()
        for i in range(50):
            (root / f"file-{i}.txt").write_text("")
        # Every clock read costs 100ms against a 1s budget.
        engine = SearchEngine(PathSandbox(root), clock=SteppingClock(0.1))

        outcome = engine.search(".", "file", limit=500, timeout_ms=1000)

        assert outcome.timed_out
        assert len(outcome.matches) < 50

    def test_empty_query_with_real_clock(self, tmp_path):
        root = tmp_path / "wide"
        root.mkdir()
        for i in range(1000):
            (root / f"entry-{i:04d}.txt").write_text("")
        engine = SearchEngine(PathSandbox(root))

        outcome = engine.search(".", "", limit=10, timeout_ms=5)

        assert len(outcome.matches) <= 10
        assert outcome.truncated or outcome.timed_out

    @pytest.mark.parametrize(
        "raw,expected",
        [(None, 100), ("abc", 100), (0, 100), (-5, 100), (10, 10), ("25", 25), (10_000, 500)],
    )
    def test_limit_clamping(self, frozen_engine, raw, expected):
        assert frozen_engine.clamp_limit(raw) == expected

    @pytest.mark.parametrize("raw,expected", [(None, 10_000), (1, 1), (99_999, 30_000)])
    def test_timeout_clamping(self, frozen_engine, raw, expected):
        assert frozen_engine.clamp_timeout(raw) == expected


class TestMatching:
    def test_case_insensitive_substring(self, frozen_engine):
        outcome = frozen_engine.search(".", "README")
        assert [m.path for m in outcome.matches] == ["docs/readme.txt"]

    def test_directories_sorted_first(self, frozen_engine, root):
        (root / "docs" / "nested" / "deep-dir").mkdir()
        outcome = frozen_engine.search(".", "deep")
        assert [(m.name, m.is_directory) for m in outcome.matches] == [
            ("deep-dir", True),
            ("deep.md", False),
        ]

    def test_result_fields(self, frozen_engine):
        (match,) = frozen_engine.search("docs", "readme").matches
        data = match.to_dict()
        assert data["path"] == "docs/readme.txt"
        assert data["isDirectory"] is False
        assert data["size"] == len("hello world\n")
        assert data["mimeType"] == "text/plain"

    def test_symlinked_directories_not_followed(self, frozen_engine, root, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "leak.txt").write_text("")
        os.symlink(outside, root / "portal")
        names = [m.name for m in frozen_engine.search(".", "").matches]
        assert "portal" in names
        assert "leak.txt" not in names

    def test_symlinked_directory_reported_as_directory(self, frozen_engine, root, tmp_path):
        outside = tmp_path / "elsewhere"
        outside.mkdir()
        (outside / "portal-inner.txt").write_text("")
        os.symlink(outside, root / "portal")
        matches = frozen_engine.search(".", "portal").matches
        assert [(m.path, m.is_directory, m.mime_type) for m in matches] == [("portal", True, None)]

    @pytest.mark.skipif(os.geteuid() == 0, reason="root ignores directory permissions")
    def test_unreadable_directory_skipped(self, frozen_engine, root):
        locked = root / "locked"
        locked.mkdir()
        (locked / "readme-hidden.txt").write_text("")
        locked.chmod(0)
        try:
            outcome = frozen_engine.search(".", "readme")
        finally:
            locked.chmod(0o755)
        assert [m.path for m in outcome.matches] == ["docs/readme.txt"]


class TestErrors:
    def test_missing_start(self, frozen_engine):
        with pytest.raises(NotFound):
            frozen_engine.search("nope", "x")

    def test_start_must_be_directory(self, frozen_engine):
        with pytest.raises(InvalidInput):
            frozen_engine.search("notes.txt", "x")

    def test_start_outside_root(self, frozen_engine):
        with pytest.raises(OutsideRoot):
            frozen_engine.search("..", "x")
