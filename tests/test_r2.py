"""Tests for R2ObjectStore error mapping (boto3 client is mocked)."""

from __future__ import annotations

import io
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from vpipe.core.exceptions import NotFoundError, StoreError
from vpipe.storage.r2 import R2ObjectStore


def _client_error(code: str, op: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


@pytest.fixture()
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def r2(client: MagicMock) -> R2ObjectStore:
    return R2ObjectStore(client, "media", "https://media.example.com/")


def test_requires_bucket(client: MagicMock) -> None:
    with pytest.raises(StoreError, match="bucket"):
        R2ObjectStore(client, "", "https://x")


def test_public_url_is_deterministic(r2: R2ObjectStore) -> None:
    assert r2.public_url("proxies/p/a.mp4") == "https://media.example.com/proxies/p/a.mp4"


def test_public_url_requires_base(client: MagicMock) -> None:
    with pytest.raises(StoreError):
        R2ObjectStore(client, "media", "").public_url("k")


def test_put_bytes(r2: R2ObjectStore, client: MagicMock) -> None:
    url = r2.put("sprites/p/a.vtt", b"WEBVTT", "text/vtt")
    client.put_object.assert_called_once_with(
        Bucket="media", Key="sprites/p/a.vtt", Body=b"WEBVTT", ContentType="text/vtt"
    )
    assert url == "https://media.example.com/sprites/p/a.vtt"


def test_upload_file_streams(r2: R2ObjectStore, client: MagicMock, tmp_path: Path) -> None:
    f = tmp_path / "thumb.jpg"
    f.write_bytes(b"jpeg")
    r2.upload_file(f, "thumbnails/p/a.jpg", "image/jpeg")

    kwargs = client.upload_fileobj.call_args.kwargs
    assert kwargs["Key"] == "thumbnails/p/a.jpg"
    assert kwargs["ExtraArgs"] == {"ContentType": "image/jpeg"}


def test_put_failure_is_store_error(r2: R2ObjectStore, client: MagicMock) -> None:
    client.put_object.side_effect = EndpointConnectionError(endpoint_url="https://r2")
    with pytest.raises(StoreError):
        r2.put("k", b"x", "text/plain")


def test_get_missing_key_is_not_found(r2: R2ObjectStore, client: MagicMock) -> None:
    client.get_object.side_effect = _client_error("NoSuchKey")
    with pytest.raises(NotFoundError):
        r2.get("videos/p/missing.mp4")


def test_get_other_error_is_store_error(r2: R2ObjectStore, client: MagicMock) -> None:
    client.get_object.side_effect = _client_error("AccessDenied")
    with pytest.raises(StoreError) as exc_info:
        r2.get("k")
    assert not isinstance(exc_info.value, NotFoundError)


def test_download_to_writes_file(r2: R2ObjectStore, client: MagicMock, tmp_path: Path) -> None:
    client.get_object.return_value = {"Body": io.BytesIO(b"video-bytes")}
    out = r2.download_to("videos/p/a.mp4", tmp_path / "a.mp4")
    assert out.read_bytes() == b"video-bytes"


def test_delete_missing_key_is_not_an_error(r2: R2ObjectStore, client: MagicMock) -> None:
    client.delete_object.side_effect = _client_error("NoSuchKey", "DeleteObject")
    r2.delete("gone")


def test_delete_failure_is_store_error(r2: R2ObjectStore, client: MagicMock) -> None:
    client.delete_object.side_effect = _client_error("InternalError", "DeleteObject")
    with pytest.raises(StoreError):
        r2.delete("k")


def test_signed_url(r2: R2ObjectStore, client: MagicMock) -> None:
    client.generate_presigned_url.return_value = "https://signed"
    assert r2.signed_url("k", expires_in=60) == "https://signed"
    assert client.generate_presigned_url.call_args.kwargs["ExpiresIn"] == 60


def test_signed_url_defaults_to_configured_expiry(client: MagicMock) -> None:
    r2 = R2ObjectStore(client, "media", "https://media.example.com", signed_url_expires=900)
    r2.signed_url("k")
    assert client.generate_presigned_url.call_args.kwargs["ExpiresIn"] == 900
