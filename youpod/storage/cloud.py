import hashlib
import logging
import mimetypes
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from youpod.config.settings import StorageConfig
from .base import BaseStorage

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".xml": "application/xml",
    ".jpg": "image/jpeg",
    ".mp3": "audio/mpeg",
    ".mp4": "video/mp4",
}


def _content_type(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix in CONTENT_TYPES:
        return CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def file_md5(path) -> str:
    """Hex MD5 of a file, read in chunks."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class CloudStorage(BaseStorage):
    """A client for Cloudflare R2 (S3 API)."""

    def __init__(self, config: StorageConfig, client=None, skip_existing: bool = True):
        if not config.bucket:
            raise RuntimeError("Missing storage.bucket in config.yml")

        self.bucket_name = config.bucket
        self.public_url = (config.public_url or f"https://{config.bucket}.r2.dev").rstrip("/")
        self.skip_existing = skip_existing
        self.uploaded_files = 0
        self.skipped_files = 0

        if client is not None:
            self.client = client
            return

        if not config.endpoint_url or not config.access_key_id or not config.secret_access_key:
            raise RuntimeError(
                "Missing required environment variables for cloud storage client."
                " Please ensure R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, and R2_SECRET_ACCESS_KEY are set."
            )

        session = boto3.session.Session()
        self.client = session.client(
            "s3",
            region_name="auto",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
        )

    def get_client(self):
        """Returns the initialized cloud storage client."""
        return self.client

    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        """Public URL of an object.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Return:
            str: The public URL of the object.
        """
        return f"{self.public_url}/{self._join(workspace, filename)}"

    def _remote_etag(self, key: str) -> Optional[str]:
        """ETag of an object without quotes, or None if it does not exist."""
        try:
            response = self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return None
            raise
        etag = response.get("ETag")
        return etag.strip('"') if etag else None

    def file_exist(self, workspace: str, filename: str) -> bool:
        """
        Check if an object exists in the bucket.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the file.

        Returns:
            bool: True if the object exists, False otherwise.
        """
        return self._remote_etag(self._join(workspace, filename)) is not None

    def save_file(self, workspace: str, filename: str, content: str) -> str:
        """Uploads text content as an object.

        Args:
            workspace (str): The workspace (prefix) path.
            filename (str): The name of the object.
            content (str): The content to upload.

        Returns:
            str: The public URL of the object.
        """
        key = self._join(workspace, filename)
        data = content.encode("utf-8")
        try:
            if self.skip_existing and self._remote_etag(key) == hashlib.md5(data).hexdigest():
                self.skipped_files += 1
                logger.info(f"Unchanged, skipping upload: {key}")
                return self._get_absolute_filename(workspace, filename)

            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=_content_type(filename),
            )
        except ClientError as e:
            raise RuntimeError(f"Error saving file to cloud storage: {e}") from e

        self.uploaded_files += 1
        logger.info(f"Uploaded {key}")
        return self._get_absolute_filename(workspace, filename)

    def upload_file(self, local_path, key: str, content_type: Optional[str] = None) -> str:
        """
        Upload a local file, skipping it when the remote copy is identical.

        Args:
            local_path: File to upload
            key: Object key ("podcasts/<slug>/media/<id>.mp4")
            content_type: MIME type (guessed from the key when None)

        Returns:
            str: The public URL of the object

        Raises:
            RuntimeError: If the upload fails
        """
        try:
            if self.skip_existing and self._remote_etag(key) == file_md5(local_path):
                self.skipped_files += 1
                logger.info(f"Unchanged, skipping upload: {key}")
                return f"{self.public_url}/{key}"

            # Single-part upload so the ETag stays the plain MD5 of the file
            with open(local_path, "rb") as body:
                self.client.put_object(
                    Bucket=self.bucket_name,
                    Key=key,
                    Body=body,
                    ContentType=content_type or _content_type(key),
                )
        except (ClientError, OSError) as e:
            raise RuntimeError(f"Error uploading {local_path} to {key}: {e}") from e

        self.uploaded_files += 1
        logger.info(f"Uploaded {local_path} -> {key}")
        return f"{self.public_url}/{key}"
