"""
Debounced auto-save behaviour.
"""
import asyncio

import pytest

from orgdesign.core.state import StateStore
from orgdesign.organization.models import NodeKind
from orgdesign.organization.tree import TreeStore
from orgdesign.persistence.autosave import DebouncedAutoSaver


@pytest.fixture
def saves():
    return []


@pytest.fixture
def saver(state_store, saves):
    saver = DebouncedAutoSaver(state_store, saves.append, delay=0.05)
    yield saver
    saver.cancel()


def test_without_event_loop_writes_immediately(state_store, tree_store, saver, saves):
    tree_store.create_organization("Acme")
    assert len(saves) == 1
    assert saves[0].organization.name == "Acme"
    assert not saver.pending


def test_selection_changes_are_ignored(state_store, tree_store, saver, saves):
    tree_store.create_organization("Acme")
    saves.clear()
    tree_store.select_node(None)
    assert saves == []


def test_disabled_saver_does_nothing(tree_store, saver, saves):
    saver.enabled = False
    tree_store.create_organization("Acme")
    assert saves == []


@pytest.mark.asyncio
async def test_burst_is_coalesced_into_one_write(state_store, tree_store, saver, saves):
    tree_store.create_organization("Acme")
    root_id = tree_store.organization.root_id
    for i in range(5):
        tree_store.add_node(root_id, NodeKind.ACCOUNT, f"Account {i}")

    assert saver.pending
    assert saves == []

    await asyncio.sleep(0.15)
    assert len(saves) == 1
    assert len(saves[0].organization.nodes) == 6
    assert not saver.pending


@pytest.mark.asyncio
async def test_flush_writes_pending_state(tree_store, saver, saves):
    tree_store.create_organization("Acme")
    assert saver.pending
    saver.flush()
    assert len(saves) == 1
    assert not saver.pending

    await asyncio.sleep(0.1)
    assert len(saves) == 1


@pytest.mark.asyncio
async def test_close_flushes_and_unsubscribes(tree_store, saver, saves):
    tree_store.create_organization("Acme")
    saver.close()
    assert len(saves) == 1

    tree_store.create_organization("Other")
    await asyncio.sleep(0.1)
    assert len(saves) == 1


def test_failing_save_is_logged(caplog):
    store = StateStore()

    def broken(state):
        raise RuntimeError("disk full")

    DebouncedAutoSaver(store, broken)
    TreeStore(store).create_organization("Acme")
    assert "Auto-save failed" in caplog.text
