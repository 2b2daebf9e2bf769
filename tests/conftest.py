import pytest
from click.testing import CliRunner

from orgdesign.core.designer import OrganizationDesigner
from orgdesign.core.state import StateStore
from orgdesign.organization.models import NodeKind, OrganizationLimits
from orgdesign.organization.tree import TreeStore
from orgdesign.persistence.cache import KeyValueCache
from orgdesign.persistence.service import PersistenceService
from orgdesign.policy.store import PolicyStore


@pytest.fixture
def state_store():
    return StateStore()


@pytest.fixture
def tree_store(state_store):
    return TreeStore(state_store)


@pytest.fixture
def policy_store(state_store):
    store = PolicyStore(state_store)
    yield store
    store.close()


@pytest.fixture
def root_id(tree_store):
    """Organization 'Acme' with its default policies; returns the root id."""
    result = tree_store.create_organization("Acme")
    assert result.is_valid
    return tree_store.organization.root_id


@pytest.fixture
def add_node(tree_store):
    """Add a node and return its id, failing the test on rejection."""
    def _add(parent_id, kind, name):
        result = tree_store.add_node(parent_id, NodeKind(kind), name)
        assert result.is_valid, result.errors
        return result.subject_id
    return _add


@pytest.fixture
def unit_chain(add_node):
    """Build ``depth`` nested units under ``parent_id``; returns their ids top-down."""
    def _chain(parent_id, depth, prefix="OU"):
        ids = []
        current = parent_id
        for level in range(1, depth + 1):
            current = add_node(current, NodeKind.UNIT, f"{prefix}{level}")
            ids.append(current)
        return ids
    return _chain


@pytest.fixture
def memory_cache():
    cache = KeyValueCache.in_memory()
    yield cache
    cache.close()


@pytest.fixture
def persistence(memory_cache):
    return PersistenceService(memory_cache, app_version="9.9.9")


@pytest.fixture
def designer(persistence):
    designer = OrganizationDesigner(persistence, limits=OrganizationLimits())
    designer.initialize_from_cache()
    yield designer
    designer.policies.close()


@pytest.fixture
def cache_db(tmp_path):
    return str(tmp_path / "cache" / "orgdesign.db")


@pytest.fixture
def cli_runner():
    return CliRunner()
