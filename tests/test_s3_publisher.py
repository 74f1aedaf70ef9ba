import pytest

from apidecl.reference.document import build_reference
from apidecl.reference.publisher import S3ReferencePublisher, reference_key
from apidecl.runtime.options import AWSOptions

import sample_api


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[(Bucket, Key)] = (Body, ContentType)


@pytest.mark.asyncio
async def test_publish_writes_reference_json():
    fake = FakeS3()
    publisher = S3ReferencePublisher(bucket="refs", client=fake)
    ref = build_reference(sample_api.builder)

    key = await publisher.publish(ref)

    assert key == "widgets/v1/api.json" == reference_key(ref)
    body, content_type = fake.objects[("refs", key)]
    assert content_type == "application/json"
    assert b'"serviceName": "widgets"' in body


def test_client_built_from_aws_options(monkeypatch):
    captured = {}

    def fake_client(**kwargs):
        captured.update(kwargs)
        return FakeS3()

    monkeypatch.setattr("apidecl.reference.publisher.boto3.client", fake_client)
    aws = AWSOptions(access_key_id="AKIA", secret_access_key="s3cr3t", region="eu-west-1")
    publisher = S3ReferencePublisher(bucket="refs", aws=aws)

    assert isinstance(publisher.client, FakeS3)
    assert captured["service_name"] == "s3"
    assert captured["region_name"] == "eu-west-1"
    assert captured["aws_access_key_id"] == "AKIA"
    assert captured["aws_secret_access_key"] == "s3cr3t"
