"""
Organization designer.

Wires the state store, the tree and policy stores, the persistence service
and the auto-saver into one object, and owns the flows that replace the
whole model at once: restore from cache, import, and clear.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from orgdesign.config import Settings, settings as default_settings
from orgdesign.core.state import ModelState, StateStore
from orgdesign.organization.models import OrganizationLimits
from orgdesign.organization.tree import TreeStore
from orgdesign.persistence.autosave import DebouncedAutoSaver
from orgdesign.persistence.cache import KeyValueCache
from orgdesign.persistence.service import PersistenceService
from orgdesign.persistence.snapshot import PersistedSnapshot, SnapshotLoadResult
from orgdesign.policy.store import PolicyStore
from orgdesign.validation import engine
from orgdesign.validation.models import ValidationResult

logger = logging.getLogger(__name__)


class OrganizationDesigner:
    """
    Facade over the whole designer core.

    Args:
        persistence: Persistence service used for snapshots and the local cache
        state_store: Shared state; a fresh one is created when omitted
        limits: Limits given to newly created organizations
        autosave_delay: Debounce in seconds; None disables auto-save
    """

    def __init__(
        self,
        persistence: PersistenceService,
        state_store: Optional[StateStore] = None,
        limits: Optional[OrganizationLimits] = None,
        autosave_delay: Optional[float] = None,
    ):
        self.state_store = state_store or StateStore()
        self.persistence = persistence
        self.tree = TreeStore(self.state_store, limits)
        self.policies = PolicyStore(self.state_store)
        self.initialized = False
        self.onboarding_completed = False

        self.autosaver: Optional[DebouncedAutoSaver] = None
        if autosave_delay is not None:
            self.autosaver = DebouncedAutoSaver(self.state_store, self._save_state, autosave_delay)
            # Nothing is written until the cached state has been restored.
            self.autosaver.enabled = False

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "OrganizationDesigner":
        config = config or default_settings
        persistence = PersistenceService(KeyValueCache(config.CACHE_DB_PATH), app_version=config.APP_VERSION)
        return cls(
            persistence,
            limits=OrganizationLimits.from_settings(config),
            autosave_delay=config.autosave_delay_seconds,
        )

    @property
    def state(self) -> ModelState:
        return self.state_store.get_state()

    @property
    def organization_version(self) -> str:
        return self.persistence.structural_version

    def _save_state(self, state: ModelState) -> None:
        self.persistence.save_to_local_cache(state.organization, state.policies, state.attachments)

    def _apply_snapshot(self, snapshot: PersistedSnapshot) -> None:
        self.state_store.replace_state(ModelState(
            organization=snapshot.organization,
            policies=snapshot.policies,
            attachments=snapshot.attachments,
            selected_node_id=None,
        ))

    # ===== Lifecycle =====

    def initialize_from_cache(self) -> bool:
        """
        Restore the last auto-saved model and the onboarding flag.

        Runs once; later calls are ignored. Returns True when a cached
        organization was restored.
        """
        if self.initialized:
            return False

        restored = False
        self.onboarding_completed = self.persistence.load_onboarding_completed()
        snapshot = self.persistence.load_from_local_cache()
        if snapshot is not None:
            self._apply_snapshot(snapshot)
            restored = True
            logger.info(
                f"Restored '{snapshot.organization.name}' from local cache: "
                f"{len(snapshot.organization.nodes)} node(s), {len(snapshot.policies)} policies"
            )
        else:
            logger.info("No cached state found - starting fresh")

        self.initialized = True
        if self.autosaver is not None:
            self.autosaver.enabled = True
        return restored

    def save_now(self) -> bool:
        """Write the current model to the local cache immediately."""
        if self.autosaver is not None:
            self.autosaver.cancel()
        state = self.state
        return self.persistence.save_to_local_cache(state.organization, state.policies, state.attachments)

    def close(self) -> None:
        if self.autosaver is not None:
            self.autosaver.close()
        self.policies.close()
        self.persistence.close()

    # ===== Export / import =====

    def export_organization(self) -> str:
        """
        Raises:
            ValueError: If there is no organization to export.
        """
        state = self.state
        return self.persistence.export_snapshot(state.organization, state.policies, state.attachments)

    async def export_to_file(self, directory: Union[str, Path] = ".", filename: Optional[str] = None) -> Path:
        state = self.state
        return await self.persistence.export_to_file(
            state.organization, state.policies, state.attachments, directory, filename
        )

    def _apply_result(self, result: SnapshotLoadResult) -> SnapshotLoadResult:
        if result.ok:
            self._apply_snapshot(result.snapshot)
            logger.info(f"Imported organization '{result.snapshot.organization.name}'")
        return result

    def import_organization(self, raw_text: str) -> SnapshotLoadResult:
        """Replace the model with an imported snapshot; a failed import changes nothing."""
        return self._apply_result(self.persistence.import_snapshot(raw_text))

    async def import_from_file(self, path: Union[str, Path]) -> SnapshotLoadResult:
        return self._apply_result(await self.persistence.import_from_file(path))

    def clear_organization(self) -> None:
        """Drop the model, reset the structural version and purge the cached state."""
        if self.autosaver is not None:
            self.autosaver.cancel()
        self.state_store.replace_state(ModelState())
        self.persistence.reset_structural_version()
        self.persistence.clear_local_cache()
        logger.info("Cleared organization and local cache")

    def complete_onboarding(self, completed: bool = True) -> None:
        self.onboarding_completed = completed
        self.persistence.save_onboarding_completed(completed)

    # ===== Validation =====

    def validate(self) -> ValidationResult:
        return engine.validate_organization_structure(self.state)
