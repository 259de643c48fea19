"""
HTML report file store tests
"""
import os
from datetime import datetime, timedelta

import pytest

from errors import ReportFileError
from unified.html_files import HtmlReportStore


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2025, 7, 22, 9, 0, 0))


@pytest.fixture
def store(tmp_path, clock):
    return HtmlReportStore(str(tmp_path / "reports"), "https://ads.example.com/", clock=clock)


class TestFilenames:
    def test_appends_extension(self):
        assert HtmlReportStore.validate_filename("july_report") == "july_report.html"

    def test_accepts_korean(self):
        assert HtmlReportStore.validate_filename("7월-성과.html") == "7월-성과.html"

    @pytest.mark.parametrize("name", ["../etc/passwd", "a/b.html", "bad name.html", "x..html", "<script>.html"])
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(ReportFileError):
            HtmlReportStore.validate_filename(name)

    def test_rejects_long_names(self):
        with pytest.raises(ReportFileError):
            HtmlReportStore.validate_filename("a" * 101)

    def test_default_name_uses_keyword_and_time(self, store):
        assert store.default_filename("치과 이벤트") == "report_치과_이벤트_20250722_090000.html"
        assert store.default_filename("") == "report_20250722_090000.html"


class TestSave:
    def test_save_returns_link(self, store):
        saved = store.save("<html>보고서</html>", filename="report1")
        assert saved["filename"] == "report1.html"
        assert saved["download_url"] == "https://ads.example.com/download/report1.html"
        assert saved["valid_minutes"] == 30
        assert saved["expires_at"] == "2025-07-22T09:30:00"
        assert saved["size"] == len("<html>보고서</html>".encode("utf-8"))
        with open(saved["file_path"], encoding="utf-8") as f:
            assert f.read() == "<html>보고서</html>"

    def test_korean_name_is_quoted_in_url(self, store):
        saved = store.save("x", filename="성과")
        assert saved["download_url"].endswith("/download/%EC%84%B1%EA%B3%BC.html")

    def test_resolve_until_expiry(self, store, clock):
        saved = store.save("x", filename="r")
        assert store.resolve("r.html") == saved["file_path"]
        clock.now += timedelta(minutes=31)
        assert store.resolve("r.html") is None

    def test_resolve_rejects_traversal_and_missing(self, store):
        store.save("x", filename="r")
        assert store.resolve("../r.html") is None
        assert store.resolve("missing.html") is None

    def test_cleanup_removes_expired_only(self, store, clock):
        old = store.save("old", filename="old")
        clock.now += timedelta(minutes=20)
        fresh = store.save("new", filename="new")
        clock.now += timedelta(minutes=15)
        assert store.cleanup() == 1
        assert not os.path.exists(old["file_path"])
        assert os.path.exists(fresh["file_path"])

    def test_overwrite_renews_validity(self, store, clock):
        store.save("v1", filename="same")
        clock.now += timedelta(minutes=25)
        store.save("v2", filename="same")
        clock.now += timedelta(minutes=25)
        assert store.resolve("same.html") is not None
