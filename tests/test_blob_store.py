import asyncio
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from studious.core.errors import StorageError, ValidationError
from studious.services.blob_store import BlobStore


def client_error(code, operation="DeleteObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def make_store():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://bucket.s3.test/signed"
    return BlobStore(client, "studious-files", signed_url_ttl_seconds=300), client


def test_read_url_is_valid_for_five_minutes():
    store, client = make_store()
    url = asyncio.run(store.issue_signed_url("abc.png", "read"))

    assert url == "https://bucket.s3.test/signed"
    client.generate_presigned_url.assert_called_once_with(
        "get_object",
        Params={"Bucket": "studious-files", "Key": "abc.png"},
        ExpiresIn=300,
    )


def test_write_url_binds_content_type():
    store, client = make_store()
    asyncio.run(store.issue_signed_url("abc.png", "write", content_type="image/png"))

    client.generate_presigned_url.assert_called_once_with(
        "put_object",
        Params={"Bucket": "studious-files", "Key": "abc.png", "ContentType": "image/png"},
        ExpiresIn=300,
    )


def test_unknown_action_rejected():
    store, client = make_store()
    with pytest.raises(ValidationError):
        asyncio.run(store.issue_signed_url("abc.png", "delete"))
    client.generate_presigned_url.assert_not_called()


def test_put_uploads_body_and_content_type():
    store, client = make_store()
    asyncio.run(store.put(b"data", "thumbnails/x.jpg", "image/jpeg"))

    client.put_object.assert_called_once_with(
        Bucket="studious-files",
        Key="thumbnails/x.jpg",
        Body=b"data",
        ContentType="image/jpeg",
    )


def test_put_failure_raises_storage_error():
    store, client = make_store()
    client.put_object.side_effect = client_error("AccessDenied", "PutObject")
    with pytest.raises(StorageError):
        asyncio.run(store.put(b"data", "x.jpg", "image/jpeg"))


def test_delete_of_missing_object_succeeds():
    store, client = make_store()
    client.delete_object.side_effect = client_error("NoSuchKey")
    asyncio.run(store.delete_object("gone.png"))


def test_delete_failure_raises_storage_error():
    store, client = make_store()
    client.delete_object.side_effect = client_error("InternalError")
    with pytest.raises(StorageError):
        asyncio.run(store.delete_object("abc.png"))


def test_object_exists():
    store, client = make_store()
    assert asyncio.run(store.object_exists("abc.png")) is True

    client.head_object.side_effect = client_error("404", "HeadObject")
    assert asyncio.run(store.object_exists("abc.png")) is False

    client.head_object.side_effect = client_error("403", "HeadObject")
    with pytest.raises(StorageError):
        asyncio.run(store.object_exists("abc.png"))
