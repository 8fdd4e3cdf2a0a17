"""Shared fixtures."""
from unittest.mock import Mock

import pytest

from processor.models import EMPTY_PLACE


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def resolver():
    """Location resolver stub that returns no place unless configured."""
    mock_resolver = Mock()
    mock_resolver.resolve.return_value = EMPTY_PLACE
    return mock_resolver
