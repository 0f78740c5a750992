"""Tests for stackdock.provisioning.s3 with a mocked boto3 client."""

import asyncio
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from stackdock.artifacts import make_artifact
from stackdock.errors import PublishError
from stackdock.provisioning.base import HASH_METADATA_KEY
from stackdock.provisioning.s3 import S3ArtifactStore


def _client_error(code, op="HeadBucket"):
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


def _store(region="eu-west-1"):
    s3 = MagicMock()
    return S3ArtifactStore(region, s3=s3), s3


def test_exists():
    store, s3 = _store()
    assert asyncio.run(store.exists("b")) is True
    s3.head_bucket.side_effect = _client_error("404")
    assert asyncio.run(store.exists("b")) is False


def test_exists_forbidden():
    store, s3 = _store()
    s3.head_bucket.side_effect = _client_error("403")
    with pytest.raises(PublishError, match="not accessible"):
        asyncio.run(store.exists("b"))


def test_create_location_constraint():
    store, s3 = _store()
    asyncio.run(store.create("b", "eu-west-1"))
    s3.create_bucket.assert_called_once_with(Bucket="b", CreateBucketConfiguration={"LocationConstraint": "eu-west-1"})

    s3.reset_mock()
    asyncio.run(store.create("b", "us-east-1"))
    s3.create_bucket.assert_called_once_with(Bucket="b")


def test_create_already_owned_is_ok():
    store, s3 = _store()
    s3.create_bucket.side_effect = _client_error("BucketAlreadyOwnedByYou", op="CreateBucket")
    asyncio.run(store.create("b", "eu-west-1"))


def test_list_hashes_reads_metadata():
    store, s3 = _store()
    paginator = MagicMock()
    paginator.paginate.return_value = [{"Contents": [{"Key": "templates/a.yaml"}, {"Key": "templates/b.yaml"}]}]
    s3.get_paginator.return_value = paginator
    s3.head_object.side_effect = lambda Bucket, Key: {"Metadata": {HASH_METADATA_KEY: "h1"}} if Key.endswith("a.yaml") else {}

    hashes = asyncio.run(store.list_hashes("b", "templates/"))
    assert hashes == {"templates/a.yaml": "h1", "templates/b.yaml": None}
    paginator.paginate.assert_called_once_with(Bucket="b", Prefix="templates/")


def test_upload_records_hash(tmp_path):
    store, s3 = _store()
    path = tmp_path / "a.yaml"
    path.write_text("x")
    asyncio.run(store.upload("b", "templates/a.yaml", path, "abc"))
    s3.upload_file.assert_called_once_with(
        Filename=str(path), Bucket="b", Key="templates/a.yaml", ExtraArgs={"Metadata": {HASH_METADATA_KEY: "abc"}}
    )


def test_upload_error_is_publish_error(tmp_path):
    store, s3 = _store()
    s3.upload_file.side_effect = _client_error("AccessDenied", op="PutObject")
    with pytest.raises(PublishError) as exc_info:
        asyncio.run(store.upload("b", "k", tmp_path / "a", "h"))
    assert exc_info.value.identifier == "s3://b"


def test_delete_batches_and_errors():
    store, s3 = _store()
    s3.delete_objects.return_value = {}
    keys = [f"k{i}" for i in range(1500)]
    asyncio.run(store.delete("b", keys))
    assert s3.delete_objects.call_count == 2

    s3.delete_objects.return_value = {"Errors": [{"Key": "k1", "Code": "AccessDenied"}]}
    with pytest.raises(PublishError, match="k1"):
        asyncio.run(store.delete("b", ["k1"]))


def test_sync_mirror_with_mocked_client(tmp_path):
    """The concrete sync_mirror drives the boto3 primitives."""
    store, s3 = _store()
    path = tmp_path / "a.yaml"
    path.write_text("Resources: {}\n")
    artifact = make_artifact(path, "a.yaml", "component")

    paginator = MagicMock()
    paginator.paginate.return_value = [{"Contents": [{"Key": "templates/a.yaml"}, {"Key": "templates/stale.yaml"}]}]
    s3.get_paginator.return_value = paginator
    s3.head_object.return_value = {"Metadata": {HASH_METADATA_KEY: artifact.content_hash}}
    s3.delete_objects.return_value = {}

    changed = asyncio.run(store.sync_mirror([artifact], "b", "templates/"))
    assert changed == ["templates/stale.yaml"]
    s3.upload_file.assert_not_called()
    s3.delete_objects.assert_called_once_with(Bucket="b", Delete={"Objects": [{"Key": "templates/stale.yaml"}], "Quiet": True})
