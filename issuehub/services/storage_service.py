"""MinIO-backed object storage for issue attachments.

Only the bytes live in the bucket; attachment metadata is stored in the
database and the bucket key is the link between the two.
"""

import io
from datetime import timedelta
from typing import Optional
from uuid import UUID, uuid4

from minio import Minio
from minio.error import S3Error

from ..config import settings
from ..errors import ObjectStorageError


class ObjectStorage:
    """
    Service for interacting with MinIO object storage.

    The client is created lazily and the bucket is created on first write.
    """

    def __init__(self, bucket: Optional[str] = None) -> None:
        self._client: Optional[Minio] = None
        self._bucket = bucket
        self._bucket_ready = False

    @property
    def bucket(self) -> str:
        return self._bucket or settings.minio_bucket

    @property
    def client(self) -> Minio:
        """
        Get the MinIO client instance, creating it if necessary.

        Raises:
            ObjectStorageError: If client creation fails
        """
        if self._client is None:
            try:
                self._client = Minio(
                    endpoint=settings.minio_endpoint,
                    access_key=settings.minio_access_key,
                    secret_key=settings.minio_secret_key,
                    secure=settings.minio_secure,
                )
            except Exception as e:
                raise ObjectStorageError(f"Failed to create MinIO client: {str(e)}")
        return self._client

    def ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
        except S3Error as e:
            raise ObjectStorageError(f"Failed to create bucket '{self.bucket}': {str(e)}")
        self._bucket_ready = True

    def put(
        self,
        data: bytes,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        """
        Upload bytes under ``key``.

        Returns:
            A signed download URL for the stored object

        Raises:
            ObjectStorageError: If the upload fails
        """
        self.ensure_bucket()
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as e:
            raise ObjectStorageError(f"Failed to upload file: {str(e)}")
        return self.signed_url(key)

    def delete(self, key: str) -> None:
        """
        Remove the object stored under ``key``.

        Raises:
            ObjectStorageError: If deletion fails
        """
        try:
            self.client.remove_object(self.bucket, key)
        except S3Error as e:
            raise ObjectStorageError(f"Failed to delete file: {str(e)}")

    def signed_url(self, key: str, ttl: Optional[timedelta] = None) -> str:
        """
        Presigned download URL for ``key``.

        Args:
            key: Object key in the bucket
            ttl: URL lifetime (default: ``attachment_url_ttl_minutes``)

        Raises:
            ObjectStorageError: If URL generation fails
        """
        if ttl is None:
            ttl = timedelta(minutes=settings.attachment_url_ttl_minutes)
        try:
            return self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=ttl,
            )
        except S3Error as e:
            raise ObjectStorageError(f"Failed to generate download URL: {str(e)}")

    @staticmethod
    def generate_key(issue_id: UUID, filename: str) -> str:
        """
        Unique key for an upload: ``issues/{issue_id}/{uuid}_{filename}``.
        """
        clean_filename = filename.replace("/", "_").replace("\\", "_")
        return f"issues/{issue_id}/{uuid4().hex[:8]}_{clean_filename}"


# Global service instance
object_storage = ObjectStorage()


def get_object_storage() -> ObjectStorage:
    """FastAPI dependency for the object storage instance."""
    return object_storage
