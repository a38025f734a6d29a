"""Shared fixtures: every test gets fresh in-memory collaborators."""

import os

os.environ.setdefault("POSTGRES_DSN", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318/v1/traces")

import pytest  # noqa: E402

from paysync.services.gateway.factory import build_adapter  # noqa: E402
from tests.fakes import FakeGateway, FakeWalletService, InMemoryRecordStore  # noqa: E402


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def wallet():
    return FakeWalletService({"user_1": "wallet_1"})


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def adapter(gateway, store, wallet):
    return build_adapter(gateway, store, wallet)
