import pytest

from repositories.memory_store import InMemoryOrderStore
from services.catalog import StaticCommodityCatalog


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def catalog():
    return StaticCommodityCatalog(["wheat", "corn"], inventory={"lot-7": "corn"})
