"""Generated HTML report files and their download links."""
import logging
import os
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from errors import ReportFileError

logger = logging.getLogger(__name__)

FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9ㄱ-ㅎㅏ-ㅣ가-힣._-]+\.html$")
MAX_FILENAME_LENGTH = 100
LINK_VALIDITY_MINUTES = 30


class HtmlReportStore:
    """Writes reports into one directory; files expire after the validity window."""

    def __init__(self, directory: str, base_url: str, validity_minutes: int = LINK_VALIDITY_MINUTES,
                 clock: Callable[[], datetime] = datetime.now):
        self.directory = os.path.abspath(directory)
        self.base_url = base_url.rstrip("/")
        self.validity = timedelta(minutes=validity_minutes)
        self._clock = clock

    def ensure_directory(self) -> None:
        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            raise ReportFileError(f"리포트 디렉터리를 만들 수 없습니다: {e}") from e

    @staticmethod
    def validate_filename(filename: str) -> str:
        filename = (filename or "").strip()
        if not filename.endswith(".html"):
            filename = f"{filename}.html"
        if len(filename) > MAX_FILENAME_LENGTH:
            raise ReportFileError(f"파일명은 {MAX_FILENAME_LENGTH}자를 초과할 수 없습니다")
        if ".." in filename or not FILENAME_PATTERN.match(filename):
            raise ReportFileError("파일명에는 영문, 숫자, 한글, '.', '_', '-'만 사용할 수 있습니다")
        return filename

    def default_filename(self, keyword: Optional[str] = None) -> str:
        stem = re.sub(r"[^A-Za-z0-9ㄱ-ㅎㅏ-ㅣ가-힣_-]+", "_", keyword or "").strip("_")[:40]
        stamp = self._clock().strftime("%Y%m%d_%H%M%S")
        return f"report_{stem + '_' if stem else ''}{stamp}.html"

    def download_url(self, filename: str) -> str:
        return f"{self.base_url}/download/{quote(filename)}"

    def _modified_at(self, path: str) -> datetime:
        return datetime.fromtimestamp(os.path.getmtime(path))

    def save(self, content: str, filename: Optional[str] = None, keyword: Optional[str] = None) -> Dict[str, Any]:
        """Write (or overwrite) a report. Overwriting renews the link validity."""
        filename = self.validate_filename(filename) if filename else self.default_filename(keyword)
        self.ensure_directory()
        self.cleanup()

        path = os.path.join(self.directory, filename)
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise ReportFileError(f"리포트 파일을 저장할 수 없습니다: {e}") from e

        now = self._clock()
        # Timestamp the file with our clock so expiry checks agree with it
        os.utime(path, (now.timestamp(), now.timestamp()))
        logger.info(f"Saved HTML report {path} ({len(content)} chars)")
        return {
            "filename": filename,
            "file_path": path,
            "download_url": self.download_url(filename),
            "expires_at": (now + self.validity).isoformat(timespec="seconds"),
            "valid_minutes": int(self.validity.total_seconds() // 60),
            "size": len(content.encode("utf-8")),
        }

    def is_expired(self, path: str) -> bool:
        return self._clock() - self._modified_at(path) > self.validity

    def cleanup(self) -> int:
        """Delete expired report files; returns how many were removed."""
        if not os.path.isdir(self.directory):
            return 0
        removed = 0
        for name in os.listdir(self.directory):
            path = os.path.join(self.directory, name)
            if not name.endswith(".html") or not os.path.isfile(path):
                continue
            try:
                if self.is_expired(path):
                    os.remove(path)
                    removed += 1
            except OSError as e:
                logger.warning(f"Could not remove expired report {path}: {e}")
        if removed:
            logger.info(f"Removed {removed} expired HTML report(s)")
        return removed

    def resolve(self, filename: str) -> Optional[str]:
        """Path of a downloadable report, or None if invalid, missing or expired."""
        try:
            filename = self.validate_filename(filename)
        except ReportFileError:
            return None
        path = os.path.abspath(os.path.join(self.directory, filename))
        if os.path.dirname(path) != self.directory or not os.path.isfile(path):
            return None
        if self.is_expired(path):
            return None
        return path


_store: Optional[HtmlReportStore] = None


def get_report_store() -> HtmlReportStore:
    global _store
    if _store is None:
        from config import settings
        base_url = settings.external_url or f"http://localhost:{settings.port}"
        _store = HtmlReportStore(settings.report_dir, base_url)
    return _store
