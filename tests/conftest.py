import pytest
from unittest.mock import MagicMock
from botocore.exceptions import ClientError

from hybridwipe.constants import TEST_CLUSTER_TAG_KEY


def _client_error(code, operation='Operation', message=''):
    return ClientError({'Error': {'Code': code, 'Message': message or code}}, operation)


def _paginator(pages):
    paginator = MagicMock()
    if callable(pages):
        paginator.paginate.side_effect = pages
    else:
        paginator.paginate.return_value = pages
    return paginator


def _client(paginators=None):
    """MagicMock client whose get_paginator returns canned pages per operation."""
    client = MagicMock()
    paginators = {op: _paginator(pages) for op, pages in (paginators or {}).items()}
    client.get_paginator.side_effect = lambda op: paginators[op]
    client.paginators = paginators
    return client


@pytest.fixture
def client_error():
    return _client_error


@pytest.fixture
def make_client():
    return _client


@pytest.fixture
def make_session():
    def _make(**clients):
        session = MagicMock()
        session.client.side_effect = lambda service, **kwargs: clients[service]
        return session
    return _make


@pytest.fixture
def tagging_client():
    """Tagging API returning the given ARNs, all tagged for my-cluster unless tags are passed."""
    def _make(arns, tags=None):
        tags = tags if tags is not None else [{'Key': TEST_CLUSTER_TAG_KEY, 'Value': 'my-cluster'}]
        pages = [{'ResourceTagMappingList': [{'ResourceARN': arn, 'Tags': tags} for arn in arns]}]
        return _client({'get_resources': pages})
    return _make


@pytest.fixture
def cluster_tag():
    def _tag(value, lower=False):
        if lower:
            return [{'key': TEST_CLUSTER_TAG_KEY, 'value': value}]
        return [{'Key': TEST_CLUSTER_TAG_KEY, 'Value': value}]
    return _tag


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr('time.sleep', lambda *_: None)
