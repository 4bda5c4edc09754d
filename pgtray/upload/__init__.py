"""원격 저장소 업로드 모듈."""

from pgtray.upload.webdav import (
    UploadError,
    UploadResult,
    WebDAVUploader,
    build_upload_url,
)

__all__ = [
    "UploadError",
    "UploadResult",
    "WebDAVUploader",
    "build_upload_url",
]
