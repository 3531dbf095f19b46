import random

import pytest

from secret_santa import config


@pytest.fixture
def rng():
    return random.Random(20241225)


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    monkeypatch.setattr(config, 'KDF_ITERATIONS', 1000)
