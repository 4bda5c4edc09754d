"""WebDAV 업로드 클라이언트.

완료된 백업 파일을 ``remote.url + 파일명`` 으로 HTTP PUT 한다 (Basic 인증).
외부 의존성 없이 ``urllib.request`` 로 구현하며, 본문은 열린 파일 핸들을
그대로 넘겨 스트리밍한다.

2xx 이외의 응답, 네트워크 오류, 파일 오류는 모두 실패로 보고하고
재시도하지 않는다. 결과 보고 방식은 호출자(백업 실행기)가 결정한다.
"""

from __future__ import annotations

import base64
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path

from pgtray.config import RemoteConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    """업로드 실행 결과."""

    source: Path
    url: str
    success: bool
    message: str | None = None


class UploadError(Exception):
    """업로드 실패 (내부에서 :class:`UploadResult` 로 변환된다).

    Attributes:
        status: HTTP 상태 코드 (네트워크 오류면 None)
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        """초기화."""
        super().__init__(message)
        self.status = status


def build_upload_url(base_url: str, filename: str) -> str:
    """업로드 대상 URL 구성.

    기본 URL이 ``/`` 로 끝나지 않으면 붙이고, 파일명은 URL 인코딩한다.
    """
    if not base_url.endswith("/"):
        base_url += "/"
    return base_url + urllib.parse.quote(filename)


def _basic_auth_header(user: str, password: str) -> str:
    """Authorization 헤더 값 생성."""
    token = base64.b64encode(f"{user}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


class WebDAVUploader:
    """WebDAV PUT 업로더.

    Args:
        config: 원격 저장소 설정 (URL, 계정, 타임아웃)
    """

    def __init__(self, config: RemoteConfig) -> None:
        if not config.url:
            raise ValueError("remote url이 비어 있습니다")
        self._config = config

    def upload(self, path: Path) -> UploadResult:
        """파일 하나를 업로드한다.

        Returns:
            UploadResult. 실패해도 예외를 발생시키지 않는다.
        """
        url = build_upload_url(self._config.url, path.name)
        logger.info("Uploading to: %s", url)
        try:
            status = self._put(path, url)
        except UploadError as e:
            logger.warning("Upload failed: %s", e)
            return UploadResult(source=path, url=url, success=False, message=str(e))

        logger.info("Upload complete (HTTP %d): %s", status, path.name)
        return UploadResult(source=path, url=url, success=True)

    def _put(self, path: Path, url: str) -> int:
        """HTTP PUT 실행.

        Returns:
            HTTP 상태 코드 (2xx)

        Raises:
            UploadError: 파일 오류, HTTP 오류, 네트워크 오류
        """
        try:
            size = path.stat().st_size
            with path.open("rb") as body:
                req = urllib.request.Request(  # noqa: S310
                    url,
                    data=body,
                    headers={
                        "Authorization": _basic_auth_header(
                            self._config.user, self._config.password
                        ),
                        "Content-Type": "application/octet-stream",
                        "Content-Length": str(size),
                    },
                    method="PUT",
                )
                with urllib.request.urlopen(  # noqa: S310
                    req, timeout=self._config.timeout_sec
                ) as resp:
                    status = resp.status
        except urllib.error.HTTPError as e:
            raise UploadError(f"HTTP {e.code} {e.reason}", status=e.code) from e
        except urllib.error.URLError as e:
            raise UploadError(f"network error: {e.reason}") from e
        except OSError as e:
            raise UploadError(f"upload failed: {e}") from e

        if not 200 <= status < 300:
            raise UploadError(f"unexpected HTTP status {status}", status=status)
        return status
