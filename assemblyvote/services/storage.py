"""Object storage for signed proxy documents."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import-untyped]

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.core.errors import ExternalDependencyFailed

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def put(self, proxy_id: str, payload: bytes, *, filename: str | None = None) -> str:
        ...

    def delete(self, url: str) -> None:
        ...


class ProxyDocumentStore:
    """Keeps proxy PDFs under ``s3://<bucket>/<prefix>/<proxy id>/``."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        s3_client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._s3_client_factory = s3_client_factory or self._default_s3_client
        self._s3_client: Any | None = None
        self._bucket_ready = False

    def _default_s3_client(self) -> Any:
        return boto3.client(
            "s3",
            region_name=self._settings.aws_region,
            endpoint_url=self._settings.s3_endpoint_url,
        )

    def _get_s3_client(self) -> Any:
        if self._s3_client is None:
            self._s3_client = self._s3_client_factory()
        return self._s3_client

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        client = self._get_s3_client()
        bucket = self._settings.proxy_document_bucket
        try:
            client.head_bucket(Bucket=bucket)
        except ClientError:
            client.create_bucket(Bucket=bucket)
        self._bucket_ready = True

    def put(self, proxy_id: str, payload: bytes, *, filename: str | None = None) -> str:
        extension = "pdf"
        if filename and "." in filename:
            extension = filename.rsplit(".", 1)[-1].lower()
        key = f"{self._settings.proxy_document_prefix.rstrip('/')}/{proxy_id}/{uuid4().hex}.{extension}"
        try:
            self._ensure_bucket()
            self._get_s3_client().put_object(
                Bucket=self._settings.proxy_document_bucket,
                Key=key,
                Body=payload,
                ContentType="application/pdf" if extension == "pdf" else "application/octet-stream",
                Metadata={"proxy_id": proxy_id, "filename": filename or ""},
            )
        except (BotoCoreError, ClientError) as exc:
            raise ExternalDependencyFailed(f"Could not store proxy document: {exc}") from exc
        url = f"s3://{self._settings.proxy_document_bucket}/{key}"
        logger.info("stored proxy document", extra={"proxy_id": proxy_id, "location": url})
        return url

    def delete(self, url: str) -> None:
        bucket, key = self._split(url)
        try:
            self._get_s3_client().delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise ExternalDependencyFailed(f"Could not delete proxy document: {exc}") from exc
        logger.info("deleted proxy document", extra={"location": url})

    @staticmethod
    def _split(url: str) -> tuple[str, str]:
        if not url.startswith("s3://") or "/" not in url[5:]:
            raise ExternalDependencyFailed(f"Unsupported document location '{url}'")
        bucket, _, key = url[5:].partition("/")
        return bucket, key


__all__ = ["DocumentStore", "ProxyDocumentStore"]
