import logging
import time
from typing import Optional

import requests
from fastapi import Depends, UploadFile

from auth import get_app_settings, get_bearer_token
from config import Settings

logger = logging.getLogger(__name__)


def build_object_path(entity: str, entity_id, subpath: str, filename: str) -> str:
    """Object key for an upload: ``{entity}/{id}/{subpath}/{timestamp}_{filename}``."""
    timestamp = int(time.time() * 1000)
    return f"{entity}/{entity_id}/{subpath}/{timestamp}_{filename}"


def media_type(content_type: Optional[str]) -> str:
    if not content_type:
        return "file"
    return content_type.split("/", 1)[0]


class StorageSession:
    """Object-storage access bound to one caller's credential.

    ``upload`` returns the public URL of the stored object or None when the
    provider refused it; callers treat None as "skip this attachment".
    """

    def __init__(self, base_url: str, api_key: str, access_token: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout

    def _headers(self, content_type: Optional[str] = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token}",
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

    def path_from_url(self, bucket: str, url: str) -> Optional[str]:
        marker = f"/{bucket}/"
        if marker not in url:
            return None
        return url.split(marker, 1)[1]

    def upload(self, bucket: str, content: bytes, path: str, content_type: Optional[str] = None) -> Optional[str]:
        try:
            response = requests.post(
                f"{self.base_url}/storage/v1/object/{bucket}/{path}",
                data=content,
                headers=self._headers(content_type or "application/octet-stream"),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Upload to %s/%s failed: %s", bucket, path, exc)
            return None
        return self.public_url(bucket, path)

    def delete(self, bucket: str, url: Optional[str]) -> None:
        if not url:
            return
        path = self.path_from_url(bucket, url)
        if not path:
            logger.warning("Not deleting %s: not an object of bucket %s", url, bucket)
            return
        try:
            response = requests.delete(
                f"{self.base_url}/storage/v1/object/{bucket}",
                json={"prefixes": [path]},
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Delete of %s/%s failed: %s", bucket, path, exc)

    def upload_file(self, bucket: str, file: Optional[UploadFile], entity: str, entity_id, subpath: str) -> Optional[dict]:
        """Upload an incoming multipart file; returns url/type/size or None."""
        if file is None or not file.filename:
            return None
        content = file.file.read()
        path = build_object_path(entity, entity_id, subpath, file.filename)
        url = self.upload(bucket, content, path, file.content_type)
        if url is None:
            return None
        return {"url": url, "type": media_type(file.content_type), "size": len(content)}


def get_storage_session(
    token: str = Depends(get_bearer_token),
    settings: Settings = Depends(get_app_settings),
) -> StorageSession:
    return StorageSession(
        base_url=settings.storage_base_url,
        api_key=settings.identity_api_key,
        access_token=token,
        timeout=settings.http_timeout,
    )
