"""Request audit trail: masked request records shipped to object storage."""
from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError  # type: ignore[import-untyped]
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from assemblyvote.core.config import Settings

# OTP codes and passwords are never written, not even partially.
_SECRET_KEYS = {"code", "otp", "otp_code", "password", "refresh_token"}
_PERSONAL_KEYS = {
    "email",
    "phone",
    "document",
    "document_id",
    "document_number",
    "representative",
    "principal_document",
    "external_doc",
}


def _mask_personal(value: Any) -> Any:
    if isinstance(value, str):
        if "@" in value:
            name, _, domain = value.partition("@")
            hidden = name[0] + "***" if name else "***"
            return f"{hidden}@{domain}" if domain else "***@***"
        if len(value) > 4:
            return f"***{value[-4:]}"
        return "***"
    return "***"


def mask_payload(value: Any) -> Any:
    """Recursively hide secrets and personal identifiers in a JSON-like payload."""
    if isinstance(value, list):
        return [mask_payload(item) for item in value]
    if not isinstance(value, dict):
        return value
    sanitized: dict[str, Any] = {}
    for key, item in value.items():
        lowered = str(key).lower()
        if lowered in _SECRET_KEYS:
            sanitized[key] = "***"
        elif lowered in _PERSONAL_KEYS:
            sanitized[key] = _mask_personal(item)
        else:
            sanitized[key] = mask_payload(item)
    return sanitized


@dataclass(slots=True)
class AuditLogRecord:
    """Structured log entry emitted by the middleware."""

    timestamp: str
    request_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    identity_id: str | None
    role: str | None
    ip_address: str | None
    user_agent: str | None
    query: dict[str, Any]
    body: Any

    def to_json(self) -> str:
        payload = asdict(self)
        payload["duration_ms"] = round(self.duration_ms, 2)
        return json.dumps(payload, default=str)


class S3AuditSink:
    """Appends audit records to a per-day object in the audit bucket."""

    def __init__(
        self,
        settings: Settings,
        *,
        logger: logging.Logger,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._settings = settings
        self._logger = logger
        self._client_factory = client_factory or self._default_client_factory
        self._client: Any | None = None
        self._bucket_ready = False

    def reset(self) -> None:
        self._client = None
        self._bucket_ready = False

    def _default_client_factory(self) -> Any:
        return boto3.client(
            "s3",
            region_name=self._settings.aws_region,
            endpoint_url=self._settings.s3_endpoint_url,
        )

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def _ensure_bucket(self, client: Any) -> bool:
        if self._bucket_ready:
            return True
        bucket = self._settings.audit_log_bucket
        try:
            client.head_bucket(Bucket=bucket)
        except ClientError:
            params: dict[str, Any] = {"Bucket": bucket}
            if self._settings.aws_region != "us-east-1" and self._settings.s3_endpoint_url is None:
                params["CreateBucketConfiguration"] = {"LocationConstraint": self._settings.aws_region}
            try:
                client.create_bucket(**params)
            except ClientError as exc:  # pragma: no cover - configuration issues
                self._logger.error("failed to create audit bucket", extra={"error": str(exc)})
                return False
        self._bucket_ready = True
        return True

    def _daily_key(self) -> str:
        now = datetime.now(timezone.utc)
        prefix = self._settings.audit_log_prefix.rstrip("/")
        return f"{prefix}/{now:%Y/%m/%d}/audit.log"

    def write(self, record: AuditLogRecord) -> None:
        rate = self._settings.audit_log_sample_rate
        if rate <= 0 or (rate < 1 and random.random() > rate):
            return
        try:
            client = self._get_client()
            if not self._ensure_bucket(client):
                return
            key = self._daily_key()
            try:
                existing = client.get_object(Bucket=self._settings.audit_log_bucket, Key=key)["Body"].read()
            except client.exceptions.NoSuchKey:  # type: ignore[attr-defined]
                existing = b""
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") not in {"404", "NoSuchKey"}:
                    raise
                existing = b""
            client.put_object(
                Bucket=self._settings.audit_log_bucket,
                Key=key,
                Body=existing + record.to_json().encode("utf-8") + b"\n",
                ContentType="application/json",
            )
        except Exception as exc:  # pragma: no cover - S3 connectivity issues
            self._logger.error("failed to persist audit record", extra={"error": str(exc)})


class AuditMiddleware(BaseHTTPMiddleware):
    """Starlette middleware capturing a masked audit trail of every request."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        settings: Settings,
        logger: logging.Logger | None = None,
        s3_client_factory: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(app)
        self._logger = logger or logging.getLogger("audit")
        self.sink = S3AuditSink(settings, logger=self._logger, client_factory=s3_client_factory)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        body_bytes = await request.body()
        self._set_body(request, body_bytes)

        masked_body = None
        if body_bytes:
            try:
                masked_body = mask_payload(json.loads(body_bytes))
            except ValueError:
                masked_body = "<binary>"

        response = await call_next(request)

        record = AuditLogRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=(time.perf_counter() - start) * 1000,
            identity_id=getattr(request.state, "identity_id", None),
            role=getattr(request.state, "role", None),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            query=mask_payload(dict(request.query_params.multi_items())),
            body=masked_body,
        )

        self._logger.info(record.to_json())
        self.sink.write(record)

        response.headers["X-Request-ID"] = request_id
        return response

    @staticmethod
    def _set_body(request: Request, body: bytes) -> None:
        async def receive() -> dict[str, Any]:
            nonlocal consumed
            if consumed:
                return {"type": "http.request", "body": b"", "more_body": False}
            consumed = True
            return {"type": "http.request", "body": body, "more_body": False}

        consumed = False
        request._receive = receive  # type: ignore[attr-defined]


__all__ = ["AuditLogRecord", "AuditMiddleware", "S3AuditSink", "mask_payload"]
