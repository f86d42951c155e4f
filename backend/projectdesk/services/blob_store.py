"""
BlobStore — project files and photos on disk, handed out by URL.

Layout: ``{root}/{bucket}/projects/{project_id}/{filename}``. Uploads upsert
(same name overwrites). Private buckets ("files") are reachable only through
time-limited signed URLs; public buckets ("photos") get a permanent URL.

Signed URLs carry a JWT (bucket, path, exp) signed with BLOB_SIGNING_KEY.
"""
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote, urlparse, parse_qs

from jose import jwt, JWTError

from projectdesk.config import (
    BLOB_LIST_LIMIT,
    BLOB_PUBLIC_BASE_URL,
    BLOB_ROOT,
    BLOB_SIGNING_ALGORITHM,
    BLOB_SIGNING_KEY,
    BUCKETS,
    SIGNED_URL_TTL_SECONDS,
)

logger = logging.getLogger("projectdesk-blobs")


class BlobStoreError(Exception):
    pass


@dataclass
class BlobEntry:
    name: str
    path: str
    size: int
    updated_at: datetime


def _safe_name(filename: str) -> str:
    return filename.replace("/", "_").replace("\\", "_").replace("..", "_")


def project_prefix(project_id: str) -> str:
    return f"projects/{_safe_name(str(project_id))}/"


class BlobStore:

    def __init__(
        self,
        root: str = BLOB_ROOT,
        public_base_url: str = BLOB_PUBLIC_BASE_URL,
        signing_key: str = BLOB_SIGNING_KEY,
        algorithm: str = BLOB_SIGNING_ALGORITHM,
        buckets: Optional[Dict[str, bool]] = None,
    ):
        self.root = os.path.abspath(root)
        self.public_base_url = public_base_url.rstrip("/")
        self._key = signing_key
        self._algorithm = algorithm
        self.buckets = dict(BUCKETS if buckets is None else buckets)

    # ── Paths ─────────────────────────────────────────────────────────────────

    def is_public(self, bucket: str) -> bool:
        self._bucket_dir(bucket)
        return self.buckets[bucket]

    def _bucket_dir(self, bucket: str) -> str:
        if bucket not in self.buckets:
            raise BlobStoreError(f"Unknown bucket '{bucket}'")
        return os.path.join(self.root, bucket)

    def _resolve(self, bucket: str, path: str) -> str:
        base = self._bucket_dir(bucket)
        full = os.path.abspath(os.path.join(base, path))
        if not full.startswith(base + os.sep):
            raise BlobStoreError(f"Path escapes bucket: {path}")
        return full

    # ── Operations ────────────────────────────────────────────────────────────

    def upload(self, bucket: str, project_id: str, filename: str, data: bytes) -> str:
        """Store *data* under the project's prefix and return its bucket path."""
        path = f"{project_prefix(project_id)}{_safe_name(filename)}"
        full = self._resolve(bucket, path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error("Upload failed", extra={"bucket": bucket, "path": path})
            raise BlobStoreError(f"Upload of {path} failed: {e}") from e
        logger.info("Uploaded %d bytes", len(data), extra={"bucket": bucket, "path": path})
        return path

    def list(self, bucket: str, project_id: str, limit: int = BLOB_LIST_LIMIT) -> List[BlobEntry]:
        """Files under the project's prefix, most recently updated first."""
        prefix = project_prefix(project_id)
        directory = self._resolve(bucket, prefix)
        if not os.path.isdir(directory):
            return []
        entries: List[BlobEntry] = []
        try:
            for name in os.listdir(directory):
                full = os.path.join(directory, name)
                if not os.path.isfile(full):
                    continue
                stat = os.stat(full)
                entries.append(BlobEntry(
                    name=name,
                    path=f"{prefix}{name}",
                    size=stat.st_size,
                    updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                ))
        except OSError as e:
            raise BlobStoreError(f"Listing {bucket}/{prefix} failed: {e}") from e
        entries.sort(key=lambda e: e.updated_at, reverse=True)
        return entries[:limit]

    def read(self, bucket: str, path: str) -> bytes:
        full = self._resolve(bucket, path)
        try:
            with open(full, "rb") as f:
                return f.read()
        except OSError as e:
            raise BlobStoreError(f"Read of {bucket}/{path} failed: {e}") from e

    def remove(self, bucket: str, path: str) -> None:
        """Delete a stored file. Removing a missing file is a no-op."""
        full = self._resolve(bucket, path)
        try:
            os.remove(full)
        except FileNotFoundError:
            return
        except OSError as e:
            raise BlobStoreError(f"Remove of {bucket}/{path} failed: {e}") from e
        logger.info("Removed blob", extra={"bucket": bucket, "path": path})

    # ── URLs ──────────────────────────────────────────────────────────────────

    def url_for(
        self,
        bucket: str,
        path: str,
        expires_in: int = SIGNED_URL_TTL_SECONDS,
        now: Optional[float] = None,
    ) -> str:
        """Public URL for public buckets, a signed URL valid *expires_in* seconds otherwise."""
        self._resolve(bucket, path)
        quoted = quote(path)
        if self.is_public(bucket):
            return f"{self.public_base_url}/public/{bucket}/{quoted}"
        issued = time.time() if now is None else now
        token = jwt.encode(
            {"bucket": bucket, "path": path, "exp": int(issued + expires_in)},
            self._key,
            algorithm=self._algorithm,
        )
        return f"{self.public_base_url}/sign/{bucket}/{quoted}?token={token}"

    def verify_signed_url(self, url_or_token: str) -> Tuple[str, str]:
        """Return (bucket, path) for a valid, unexpired signed URL or bare token."""
        token = url_or_token
        if "?" in url_or_token:
            values = parse_qs(urlparse(url_or_token).query).get("token")
            if not values:
                raise BlobStoreError("Signed URL carries no token")
            token = values[0]
        try:
            claims = jwt.decode(token, self._key, algorithms=[self._algorithm])
        except JWTError as e:
            raise BlobStoreError(f"Invalid or expired signed URL: {e}") from e
        bucket, path = claims.get("bucket"), claims.get("path")
        if not bucket or not path:
            raise BlobStoreError("Signed URL token is missing bucket/path claims")
        return bucket, path
