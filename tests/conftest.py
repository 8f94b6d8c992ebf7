"""Shared fixtures: an in-memory OSS service and a client wired to it."""

import httpx
import pytest

from fake_oss import FakeOss
from osscmd.client import OssClient
from osscmd.models import ClientConfig


@pytest.fixture
def fake_oss():
    """Fresh in-memory OSS service."""
    return FakeOss()


@pytest.fixture
def config():
    """Client config with small part limits so tests can use tiny files."""
    return ClientConfig(
        host="oss.example.com",
        access_id="test-id",
        access_secret="test-secret",
        part_min_size=1,
        thread_min_num=1,
        recv_buffer_size=4,
    )


@pytest.fixture
def client(config, fake_oss):
    """OssClient talking to the fake service."""
    http_client = httpx.Client(transport=fake_oss.transport())
    with OssClient(config, http_client=http_client) as oss_client:
        yield oss_client
