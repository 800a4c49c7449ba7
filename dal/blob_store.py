"""Async bucketed object store on the local filesystem.

Objects live under ``<root>/<bucket>/<path>`` and are written with
`aiofiles`. The store publishes two kinds of URLs for the
``/storage/{bucket}/{path}`` route: plain public URLs and HMAC-signed URLs
that expire.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import re
import time
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

import aiofiles
import aiofiles.os

from models.errors import BlobExistsError, BlobNotFoundError, UpstreamError, ValidationError

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def strip_bucket_prefix(path: str, bucket: str) -> str:
	"""Drop a redundant leading ``<bucket>/`` segment and leading slashes."""
	cleaned = (path or "").strip()
	prefix = f"{bucket}/"
	if cleaned.startswith(prefix):
		cleaned = cleaned[len(prefix):]
	return cleaned.lstrip("/")


class LocalBlobStore:
	"""Blob storage client with bucket semantics and URL signing.

	Usage:
		store = LocalBlobStore("/var/gallery/storage", signing_secret="...")
		path = await store.upload("originals", "user-1/123-cat.jpg", data)
		url = await store.create_signed_url("originals", path, expires=3600)
	"""

	def __init__(
		self,
		root_dir: Optional[Path | str] = None,
		*,
		public_base_url: Optional[str] = None,
		signing_secret: Optional[str] = None,
	) -> None:
		root = root_dir or os.getenv("STORAGE_DIR")
		if not root:
			raise RuntimeError("STORAGE_DIR environment variable must be set to a writable directory.")
		self.root = Path(root).expanduser()
		self.root.mkdir(parents=True, exist_ok=True)
		base = public_base_url if public_base_url is not None else os.getenv("PUBLIC_BASE_URL", "")
		self.public_base_url = base.rstrip("/")
		secret = signing_secret if signing_secret is not None else os.getenv("STORAGE_SIGNING_SECRET", "")
		self._secret = secret.encode("utf-8") if secret else None

	@property
	def can_sign(self) -> bool:
		return self._secret is not None

	def _object_path(self, bucket: str, path: str) -> tuple[str, Path]:
		"""Validate `bucket`/`path` and return the normalized key and file path."""
		if not bucket or not _BUCKET_RE.match(bucket):
			raise ValidationError(f"Invalid bucket name: {bucket!r}")
		key = (path or "").strip().lstrip("/")
		parts = key.split("/")
		if not key or any(part in ("", ".", "..") for part in parts):
			raise ValidationError(f"Invalid object path: {path!r}")
		return key, self.root / bucket / Path(*parts)

	async def upload(self, bucket: str, path: str, data: bytes, *, upsert: bool = False) -> str:
		"""Write `data` to `bucket`/`path` and return the normalized key.

		Raises:
			BlobExistsError: If the object exists and `upsert` is False.
		"""
		key, target = self._object_path(bucket, path)
		await aiofiles.os.makedirs(target.parent, exist_ok=True)
		mode = "wb" if upsert else "xb"
		try:
			async with aiofiles.open(target, mode) as f:
				await f.write(data)
		except FileExistsError as exc:
			raise BlobExistsError(f"The resource already exists: {bucket}/{key}") from exc
		except OSError as exc:
			raise UpstreamError(f"Failed to write {bucket}/{key}: {exc}") from exc
		return key

	async def download(self, bucket: str, path: str) -> bytes:
		"""Return the bytes stored at `bucket`/`path`."""
		key, target = self._object_path(bucket, path)
		try:
			async with aiofiles.open(target, "rb") as f:
				return await f.read()
		except FileNotFoundError as exc:
			raise BlobNotFoundError(f"Object not found: {bucket}/{key}") from exc

	async def exists(self, bucket: str, path: str) -> bool:
		_, target = self._object_path(bucket, path)
		return await aiofiles.os.path.isfile(target)

	def local_path(self, bucket: str, path: str) -> Path:
		"""Return the filesystem path backing an object (it may not exist)."""
		return self._object_path(bucket, path)[1]

	def public_url(self, bucket: str, path: str) -> str:
		key, _ = self._object_path(bucket, path)
		return f"{self.public_base_url}/storage/{bucket}/{quote(key)}"

	def _signature(self, bucket: str, key: str, expires_at: int) -> str:
		if self._secret is None:
			raise UpstreamError("Storage signing secret is not configured.")
		message = f"{bucket}/{key}:{expires_at}".encode("utf-8")
		return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

	async def create_signed_url(self, bucket: str, path: str, expires: int = 3600) -> str:
		"""Return a URL granting read access to an existing object for `expires` seconds."""
		if expires <= 0:
			raise ValidationError("expires must be a positive number of seconds")
		key, target = self._object_path(bucket, path)
		if not await aiofiles.os.path.isfile(target):
			raise BlobNotFoundError(f"Object not found: {bucket}/{key}")
		expires_at = int(time.time()) + int(expires)
		query = urlencode({"expires": expires_at, "signature": self._signature(bucket, key, expires_at)})
		return f"{self.public_base_url}/storage/{bucket}/{quote(key)}?{query}"

	def verify_signature(self, bucket: str, path: str, expires_at: int, signature: str) -> bool:
		"""Return True when `signature` is valid for the object and not expired."""
		if self._secret is None or expires_at < int(time.time()):
			return False
		key, _ = self._object_path(bucket, path)
		expected = self._signature(bucket, key, expires_at)
		return hmac.compare_digest(expected, signature or "")
