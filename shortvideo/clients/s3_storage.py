from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError


class S3StorageClient:
    """Artifact store for finished videos.

    Objects go to S3 when a bucket and credentials are configured; otherwise
    they are written beneath ``local_root`` using the same key layout.
    """

    def __init__(
        self,
        bucket: str,
        access_key: str | None,
        secret_key: str | None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        public_url: str | None = None,
        addressing_style: str | None = None,
        local_root: str | os.PathLike[str] = "data/artifacts",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.bucket = (bucket or "").strip()
        self.access_key = (access_key or "").strip()
        self.secret_key = (secret_key or "").strip()
        self.endpoint_url = (endpoint_url or "").rstrip("/") or None
        self.region_name = (region_name or "").strip() or None
        self.public_url_base = (public_url or "").rstrip("/")
        self.local_root = Path(local_root)
        self.log = logger or logging.getLogger(__name__)
        self._client = None
        if self.is_configured():
            session = boto3.session.Session(
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region_name,
            )
            config = BotoConfig(
                s3={"addressing_style": (addressing_style or "virtual").lower()}
            )
            self._client = session.client("s3", endpoint_url=self.endpoint_url, config=config)

    def is_configured(self) -> bool:
        return bool(self.bucket and self.access_key and self.secret_key)

    def upload_file(self, path: str, source: str | os.PathLike[str], content_type: str = "video/mp4") -> str:
        key = self._normalize_path(path)
        if self._client is None:
            target = self._local_path(key)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
            return self.public_url(key)
        try:
            self._client.upload_file(
                str(source),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise ValueError(f"S3 upload failed: {exc}") from exc
        return self.public_url(key)

    def download_bytes(self, path: str) -> bytes:
        key = self._normalize_path(path)
        if self._client is None:
            target = self._local_path(key)
            if not target.is_file():
                raise ValueError("object not found in local storage")
            return target.read_bytes()
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            body = response.get("Body")
            if body is None:
                return b""
            return body.read()
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover
            raise ValueError(f"S3 download failed: {exc}") from exc

    def delete(self, path: str) -> None:
        key = self._normalize_path(path)
        if self._client is None:
            target = self._local_path(key)
            if target.is_file():
                target.unlink()
            parent = target.parent
            if parent != self.local_root and parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()
            self.log.debug("local artifact deleted", extra={"key": key})
            return
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover
            raise ValueError(f"S3 delete failed: {exc}") from exc

    def public_url(self, path: str) -> str:
        clean = self._normalize_path(path)
        if self.public_url_base:
            return f"{self.public_url_base}/{clean}"
        if self._client is None:
            return self._local_path(clean).resolve().as_uri()
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{clean}"
        return f"/{self.bucket}/{clean}"

    def _local_path(self, key: str) -> Path:
        return self.local_root.joinpath(*key.split("/"))

    def _normalize_path(self, path: str | None) -> str:
        if not path:
            return ""
        return "/".join(part for part in path.strip().split("/") if part and part not in (".", ".."))
