"""
Storage handlers for backup artifacts.

Supports:
- S3Storage: durable remote tier (AWS S3 or any S3 compatible provider)
- LocalStorage: staging tier on the local filesystem
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any
import boto3
from botocore.exceptions import ClientError, BotoCoreError

from xtraship.errors import FatalError


DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024  # 5MB, S3 minimum multipart part size


class StorageError(FatalError):
    """Raised when storage operation fails."""
    pass


@dataclass
class ListResult:
    """One page of an object listing."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    truncated: bool = False


class S3Storage:
    """
    Handler for the remote tier.

    All artifacts of one database live under a single root prefix:
    {root}/{filename}
    """

    def __init__(self, access_key: str, secret_key: str, bucket_name: str, root: str,
                 region: str = 'us-east-1', endpoint_url: Optional[str] = None):
        """
        Initialize S3 storage handler.

        Args:
            access_key: Access key ID
            secret_key: Secret access key
            bucket_name: Bucket name
            root: Key prefix for this database's artifacts, e.g. 'db_fra1_01/full'
            region: Region (default: us-east-1)
            endpoint_url: Custom endpoint for S3 compatible providers
        """
        self.bucket_name = bucket_name
        self.region = region
        self.root = root.strip('/')

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                endpoint_url=endpoint_url
            )
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    def key_for(self, filename: str) -> str:
        """Object key of an artifact filename under the root."""
        return f"{self.root}/{filename}"

    def is_root_readable(self) -> bool:
        """
        Check that the bucket is reachable and the root prefix can be listed.

        Returns:
            True if the root can be read, False otherwise
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            self.s3_client.list_objects_v2(
                Bucket=self.bucket_name,
                Prefix=f"{self.root}/",
                MaxKeys=1
            )
            return True
        except (ClientError, BotoCoreError):
            return False

    def exists(self, s3_key: str) -> bool:
        """
        Check whether an object exists.

        Raises:
            StorageError: If the check fails for a reason other than absence
        """
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=s3_key)
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise StorageError(f"S3 head failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 head failed: {e}")

    def upload(self, local_path: str, s3_key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bool:
        """
        Upload a local file to the given key.

        Files larger than one chunk go through a multipart upload.

        Returns:
            True once the provider accepted the upload

        Raises:
            StorageError: If upload fails
        """
        if not os.path.exists(local_path):
            raise StorageError(f"Local file not found: {local_path}")

        try:
            file_size = os.path.getsize(local_path)

            if file_size > chunk_size:
                self._multipart_upload(local_path, s3_key, chunk_size)
            else:
                self._simple_upload(local_path, s3_key)

            return True

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 upload failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 upload failed: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read {local_path}: {e}")

    def _simple_upload(self, local_path: str, s3_key: str):
        with open(local_path, 'rb') as f:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=f
            )

    def _multipart_upload(self, local_path: str, s3_key: str, chunk_size: int):
        """
        Upload large file using multipart upload.

        Args:
            local_path: Path to local file
            s3_key: S3 object key
            chunk_size: Size of each uploaded part in bytes
        """
        response = self.s3_client.create_multipart_upload(
            Bucket=self.bucket_name,
            Key=s3_key
        )
        upload_id = response['UploadId']

        parts = []

        try:
            with open(local_path, 'rb') as f:
                part_number = 1

                while True:
                    data = f.read(chunk_size)
                    if not data:
                        break

                    response = self.s3_client.upload_part(
                        Bucket=self.bucket_name,
                        Key=s3_key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=data
                    )

                    parts.append({
                        'PartNumber': part_number,
                        'ETag': response['ETag']
                    })

                    part_number += 1

            self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=s3_key,
                UploadId=upload_id,
                MultipartUpload={'Parts': parts}
            )

        except Exception:
            self.s3_client.abort_multipart_upload(
                Bucket=self.bucket_name,
                Key=s3_key,
                UploadId=upload_id
            )
            raise

    def delete(self, s3_key: str) -> bool:
        """
        Delete an object.

        Returns:
            True when the provider acknowledged the deletion

        Raises:
            StorageError: If deletion fails
        """
        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=s3_key
            )
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 delete failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete from S3: {e}")

    def list_objects(self, prefix: Optional[str] = None) -> ListResult:
        """
        List objects under a prefix with a single request.

        Pagination is deliberately not followed; callers decide what to do
        with a truncated result.

        Args:
            prefix: Key prefix (defaults to the root)

        Returns:
            ListResult with 'Key', 'LastModified' and 'Size' dicts

        Raises:
            StorageError: If listing fails
        """
        if prefix is None:
            prefix = f"{self.root}/"

        try:
            response = self.s3_client.list_objects_v2(Bucket=self.bucket_name, Prefix=prefix)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 list failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to list S3 objects: {e}")

        items = [
            {
                'Key': obj['Key'],
                'LastModified': obj['LastModified'],
                'Size': obj['Size']
            }
            for obj in response.get('Contents', [])
        ]

        return ListResult(items=items, truncated=bool(response.get('IsTruncated', False)))


class LocalStorage:
    """
    Handler for the staging tier.

    Holds artifacts and their logs for one database as flat files:
    {root}/{filename}
    """

    def __init__(self, root: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize local storage handler.

        Args:
            root: Staging directory for this database
            chunk_size: Part size used when transferring to the remote tier
        """
        self.root = Path(root)
        self.chunk_size = chunk_size

    def get_path(self, filename: str) -> str:
        """Full filesystem path of a file in the staging directory."""
        return str(self.root / filename)

    def ensure_root(self):
        """
        Create the staging directory if it doesn't exist.

        Raises:
            StorageError: If the directory cannot be created
        """
        try:
            self.root.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Error creating directory {self.root}: {e}")

    def list_entries(self) -> List[str]:
        """
        List entry names in the staging directory.

        Returns:
            Sorted list of names, empty if the directory doesn't exist
        """
        if not self.root.exists():
            return []

        try:
            return sorted(entry.name for entry in self.root.iterdir())
        except OSError as e:
            raise StorageError(f"Failed to list {self.root}: {e}")

    def delete(self, filename: str):
        """
        Delete a file from the staging directory.

        Raises:
            StorageError: If deletion fails
        """
        full_path = self.root / filename

        try:
            full_path.unlink()
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete {full_path}: {e}")

    def transfer(self, filename: str, s3_key: str, remote: S3Storage) -> bool:
        """
        Copy a staged file to the remote tier.

        Returns:
            Result of the remote upload call
        """
        return remote.upload(self.get_path(filename), s3_key, chunk_size=self.chunk_size)
