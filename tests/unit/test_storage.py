from __future__ import annotations

import pytest

from assemblyvote.core.config import get_settings
from assemblyvote.core.errors import ExternalDependencyFailed
from assemblyvote.services.storage import ProxyDocumentStore


def test_put_creates_bucket_and_stores_document(audit_s3_client) -> None:
    store = ProxyDocumentStore(settings=get_settings(), s3_client_factory=lambda: audit_s3_client)

    url = store.put("proxy-1", b"%PDF-1.7", filename="Poder.PDF")

    assert url.startswith("s3://assembly-proxy-documents/proxies/proxy-1/")
    assert url.endswith(".pdf")
    key = url.removeprefix("s3://assembly-proxy-documents/")
    assert audit_s3_client.buckets["assembly-proxy-documents"][key] == b"%PDF-1.7"

    store.delete(url)
    assert audit_s3_client.buckets["assembly-proxy-documents"] == {}


def test_delete_rejects_foreign_locations(audit_s3_client) -> None:
    store = ProxyDocumentStore(settings=get_settings(), s3_client_factory=lambda: audit_s3_client)

    with pytest.raises(ExternalDependencyFailed):
        store.delete("https://example.com/poder.pdf")
    with pytest.raises(ExternalDependencyFailed):
        store.delete("s3://unknown-bucket/proxies/p/x.pdf")
