"""
Blob backends that issue capability URLs.

A capability URL grants exactly one permission class (write-only for upload,
read-only for download) on exactly one object name, and stops working when its
TTL runs out. The mediating server hands these URLs out and never touches the
ciphertext itself.

Both backends provision their container / bucket lazily, right before the
first write capability, and treat "someone else created it first" as success.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, generate_blob_sas
import boto3
from botocore.exceptions import ClientError

from ..core.exceptions import ConfigurationError, InvalidInputError
from ..core.models import utc_now

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_TTL = timedelta(minutes=10)
DEFAULT_DOWNLOAD_TTL = timedelta(minutes=30)


class BlobBackend(ABC):
    """Capability issuance plus the one direct operation the server needs: delete."""

    def __init__(self):
        self._container_ready = False
        self._provision_lock = threading.Lock()

    def ensure_container(self) -> None:
        """Create the backing container once per process; safe under races."""
        if self._container_ready:
            return
        with self._provision_lock:
            if self._container_ready:
                return
            self._create_container()
            self._container_ready = True

    def issue_write_capability(self, object_name: str, ttl: timedelta = DEFAULT_UPLOAD_TTL) -> str:
        _check_request(object_name, ttl)
        self.ensure_container()
        url = self._sign(object_name, ttl, write=True)
        logger.info("Issued write capability for %s (ttl %ss)", object_name, int(ttl.total_seconds()))
        return url

    def issue_read_capability(self, object_name: str, ttl: timedelta = DEFAULT_DOWNLOAD_TTL) -> str:
        _check_request(object_name, ttl)
        url = self._sign(object_name, ttl, write=False)
        logger.info("Issued read capability for %s (ttl %ss)", object_name, int(ttl.total_seconds()))
        return url

    @abstractmethod
    def _create_container(self) -> None:
        ...

    @abstractmethod
    def _sign(self, object_name: str, ttl: timedelta, write: bool) -> str:
        ...

    @abstractmethod
    def delete_object(self, object_name: str) -> bool:
        """Delete the backing object; returns False if it was already gone."""


def _check_request(object_name: str, ttl: timedelta) -> None:
    if not object_name:
        raise InvalidInputError("object name required")
    if ttl.total_seconds() <= 0:
        raise InvalidInputError("capability ttl must be positive")


def parse_connection_string(connection_string: str) -> dict:
    """Split an Azure storage connection string into its key=value parts."""
    parts = {}
    for part in connection_string.split(";"):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        parts[key.strip()] = value.strip()
    return parts


class AzureBlobBackend(BlobBackend):
    """Azure Blob Storage backend; capabilities are blob-scoped SAS URLs."""

    def __init__(
        self,
        service_client: BlobServiceClient,
        container_name: str,
        account_key: Optional[str] = None,
    ):
        super().__init__()
        if not container_name:
            raise ConfigurationError("Azure container name is required")
        self.service_client = service_client
        self.container_name = container_name
        self.account_name = service_client.account_name
        credential = getattr(service_client, "credential", None)
        self.account_key = account_key or getattr(credential, "account_key", None)
        if not self.account_key:
            raise ConfigurationError("Azure account key is required to sign SAS URLs")

    @classmethod
    def from_settings(cls, settings) -> "AzureBlobBackend":
        account_name = settings.azure_account_name
        account_key = settings.azure_account_key
        if settings.azure_connection_string:
            parsed = parse_connection_string(settings.azure_connection_string)
            account_key = account_key or parsed.get("AccountKey")
            service = BlobServiceClient.from_connection_string(settings.azure_connection_string)
        elif account_name and account_key:
            service = BlobServiceClient(
                account_url=f"https://{account_name}.blob.core.windows.net",
                credential={"account_name": account_name, "account_key": account_key},
            )
        else:
            raise ConfigurationError(
                "Azure storage credentials not configured: set AZURE_STORAGE_CONNECTION_STRING "
                "or AZURE_STORAGE_ACCOUNT and AZURE_STORAGE_KEY"
            )
        return cls(service, settings.azure_container_name, account_key=account_key)

    def _create_container(self) -> None:
        container = self.service_client.get_container_client(self.container_name)
        try:
            container.create_container()
            logger.info("Container %s created", self.container_name)
        except ResourceExistsError:
            # already there, or a concurrent request won the race
            pass

    def _sign(self, object_name: str, ttl: timedelta, write: bool) -> str:
        if write:
            permission = BlobSasPermissions(create=True, write=True)
        else:
            permission = BlobSasPermissions(read=True)
        sas = generate_blob_sas(
            account_name=self.account_name,
            container_name=self.container_name,
            blob_name=object_name,
            account_key=self.account_key,
            permission=permission,
            expiry=utc_now() + ttl,
            protocol="https",
        )
        blob = self.service_client.get_blob_client(container=self.container_name, blob=object_name)
        return f"{blob.url}?{sas}"

    def delete_object(self, object_name: str) -> bool:
        blob = self.service_client.get_blob_client(container=self.container_name, blob=object_name)
        try:
            blob.delete_blob()
        except ResourceNotFoundError:
            logger.info("Blob %s already absent", object_name)
            return False
        logger.info("Deleted blob %s", object_name)
        return True


class S3BlobBackend(BlobBackend):
    """S3-compatible backend (AWS, R2, MinIO); capabilities are presigned URLs."""

    def __init__(self, client, bucket_name: str):
        super().__init__()
        if not bucket_name:
            raise ConfigurationError("S3 bucket name is required")
        self.client = client
        self.bucket_name = bucket_name

    @classmethod
    def from_settings(cls, settings) -> "S3BlobBackend":
        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url or None,
            region_name=settings.s3_region or None,
        )
        return cls(client, settings.s3_bucket_name)

    def _create_container(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
            return
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code not in ("404", "NoSuchBucket", "NotFound"):
                raise

        region = self.client.meta.region_name
        kwargs = {"Bucket": self.bucket_name}
        if region and region not in ("us-east-1", "auto"):
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            self.client.create_bucket(**kwargs)
            logger.info("Bucket %s created", self.bucket_name)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                raise

    def _sign(self, object_name: str, ttl: timedelta, write: bool) -> str:
        return self.client.generate_presigned_url(
            "put_object" if write else "get_object",
            Params={"Bucket": self.bucket_name, "Key": object_name},
            ExpiresIn=int(ttl.total_seconds()),
        )

    def delete_object(self, object_name: str) -> bool:
        # DeleteObject answers 204 for a missing key too, so look first
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=object_name)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404", "NotFound"):
                logger.info("Object %s already absent", object_name)
                return False
            raise
        self.client.delete_object(Bucket=self.bucket_name, Key=object_name)
        logger.info("Deleted object %s", object_name)
        return True
