import base64
import binascii
import logging
import os
import re
import uuid
from typing import NamedTuple, Optional

import httpx

from .exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

# Environment variables
STORAGE_URL = os.getenv("STORAGE_URL", "http://localhost:54321/storage/v1")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "item-images")
SERVICE_ROLE_KEY = os.getenv("SERVICE_ROLE_KEY", "")

DATA_URL_PATTERN = re.compile(r"^data:(?P<type>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}


class Blob(NamedTuple):
    content_type: str
    data: bytes


def decode_data_url(value: str) -> Blob:
    """Decode a base64 ``data:`` URL sent by the client"""
    match = DATA_URL_PATTERN.match(value.strip())
    if not match:
        raise ValidationError("Expected a base64 data URL")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 payload: {e}") from e
    if not data:
        raise ValidationError("Empty file")
    return Blob(match.group("type"), data)


def key_from_url(url: str) -> str:
    """Storage key is the last path segment of the public URL"""
    return url.rstrip("/").split("/")[-1].split("?")[0]


class StorageClient:
    """Client for the object storage bucket holding item photos and signatures"""

    def __init__(
        self,
        base_url: str = STORAGE_URL,
        bucket: str = STORAGE_BUCKET,
        api_key: str = SERVICE_ROLE_KEY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.api_key = api_key
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.AsyncClient(headers=headers, transport=self.transport, timeout=30.0)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/object/public/{self.bucket}/{key}"

    async def upload(self, blob: Blob, prefix: str = "") -> str:
        """Upload a file and return its public URL"""
        extension = EXTENSIONS.get(blob.content_type, "bin")
        key = f"{prefix}{uuid.uuid4().hex}.{extension}"
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/object/{self.bucket}/{key}",
                    content=blob.data,
                    headers={"Content-Type": blob.content_type},
                )
        except httpx.HTTPError as e:
            logger.error(f"Error communicating with storage service: {e}")
            raise StorageError(f"Upload failed: {e}") from e
        if response.status_code not in (200, 201):
            logger.error(f"Upload of {key} failed: Status {response.status_code}")
            raise StorageError(f"Upload failed with status {response.status_code}")
        return self.public_url(key)

    async def upload_data_url(self, value: Optional[str], prefix: str = "") -> Optional[str]:
        if not value:
            return None
        return await self.upload(decode_data_url(value), prefix=prefix)

    async def download(self, url: str) -> Optional[bytes]:
        """Fetch a stored file; None when it cannot be retrieved"""
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Error downloading {url}: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"Download of {url} failed: Status {response.status_code}")
            return None
        return response.content

    async def delete(self, url: Optional[str]) -> bool:
        """Best-effort delete of a stored file referenced by URL"""
        if not url:
            return False
        key = key_from_url(url)
        try:
            async with self._client() as client:
                response = await client.delete(f"{self.base_url}/object/{self.bucket}/{key}")
        except httpx.HTTPError as e:
            logger.error(f"Error deleting {key} from storage: {e}")
            return False
        if response.status_code not in (200, 204):
            logger.warning(f"Delete of {key} failed: Status {response.status_code}")
            return False
        return True


def get_storage() -> StorageClient:
    """Dependency returning the storage client"""
    return StorageClient()
