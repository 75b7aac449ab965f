"""
Pytest configuration for the volume bot tests.

Puts the project root on the Python path so the flat modules import directly.
"""

import os
import sys
from unittest.mock import AsyncMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


@pytest.fixture
def payer():
    return Keypair()


@pytest.fixture
def keypairs():
    return [Keypair() for _ in range(3)]


@pytest.fixture
def rpc():
    """RPC double returning a fixed blockhash and a 0.01 SOL balance."""
    mock = AsyncMock()
    mock.get_latest_blockhash.return_value = Hash.default()
    mock.get_balance.return_value = 10_000_000
    return mock


@pytest.fixture
def submitter():
    mock = AsyncMock()
    mock.send_bundle.return_value = "bundle-1"
    return mock
