import os
import shutil
import tempfile

import pytest

from autoguardian.storage.repository import UsageRepository

from .fakes import FakeInferenceClient


@pytest.fixture
def temp_db_path():
    temp_dir = tempfile.mkdtemp()
    yield os.path.join(temp_dir, "test.db")
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def repository(temp_db_path):
    """Initialized repository backed by a throwaway database."""
    repo = UsageRepository(temp_db_path)
    repo.initialize()
    return repo


@pytest.fixture
def fake_client():
    return FakeInferenceClient()
