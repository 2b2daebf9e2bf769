"""
Persistence service.

Exports and imports snapshots, keeps the structural version counter and
mirrors the live model into the durable local cache. One instance is
constructed explicitly and handed to whoever needs it.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import anyio
from sqlalchemy.exc import SQLAlchemyError

from orgdesign import __version__
from orgdesign.organization.models import Organization
from orgdesign.persistence.cache import KeyValueCache
from orgdesign.persistence.snapshot import (
    DEFAULT_STRUCTURAL_VERSION, PersistedSnapshot, SnapshotLoadResult,
    build_snapshot, dump_snapshot, increment_version, parse_snapshot, sanitize_filename
)
from orgdesign.policy.defaults import DEFAULT_POLICY_IDS, build_default_policy
from orgdesign.policy.models import Policy, PolicyAttachment

logger = logging.getLogger(__name__)

STATE_CACHE_KEY = "orgdesign-state"
ONBOARDING_CACHE_KEY = "orgdesign-onboarding-completed"


def backfill_default_policies(snapshot: PersistedSnapshot) -> PersistedSnapshot:
    """
    Restore any reserved default policy missing from ``snapshot``.

    Each missing default is recreated with its canonical content and
    attached to the snapshot's root. Present defaults are left alone.
    """
    missing = sorted(pid for pid in DEFAULT_POLICY_IDS if pid not in snapshot.policies)
    if not missing:
        return snapshot

    policies = dict(snapshot.policies)
    attachments = list(snapshot.attachments)
    root_id = snapshot.organization.root_id
    now = datetime.now(timezone.utc)
    for policy_id in missing:
        policies[policy_id] = build_default_policy(policy_id)
        if not any(a.policy_id == policy_id and a.node_id == root_id for a in attachments):
            attachments.append(PolicyAttachment(policy_id=policy_id, node_id=root_id, attached_at=now))
    logger.info(f"Restored missing default policies: {', '.join(missing)}")
    return snapshot.model_copy(update={"policies": policies, "attachments": attachments})


class PersistenceService:
    """
    Snapshot export/import plus durable local caching.

    Args:
        cache: Durable key/value cache; without one the local cache
            operations are no-ops
        app_version: Version stamped into snapshot metadata
    """

    def __init__(self, cache: Optional[KeyValueCache] = None, app_version: str = __version__):
        self.cache = cache
        self.app_version = app_version
        self._structural_version = DEFAULT_STRUCTURAL_VERSION

    @property
    def structural_version(self) -> str:
        return self._structural_version

    def set_structural_version(self, version: str) -> None:
        self._structural_version = version or DEFAULT_STRUCTURAL_VERSION

    def reset_structural_version(self) -> None:
        self._structural_version = DEFAULT_STRUCTURAL_VERSION

    # ===== Export =====

    def export_snapshot(
        self,
        organization: Optional[Organization],
        policies: Dict[str, Policy],
        attachments: List[PolicyAttachment],
    ) -> str:
        """
        Serialize the model for external delivery, bumping the structural version.

        Raises:
            ValueError: If there is no organization to export.
        """
        if organization is None:
            raise ValueError("Cannot export state: no organization data")

        self._structural_version = increment_version(self._structural_version)
        snapshot = build_snapshot(organization, policies, attachments, self.app_version, self._structural_version)
        logger.info(f"Exported '{organization.name}' at structural version {self._structural_version}")
        return dump_snapshot(snapshot)

    def default_filename(self, organization: Organization) -> str:
        return f"{sanitize_filename(organization.name)}-{self._structural_version}.json"

    async def export_to_file(
        self,
        organization: Optional[Organization],
        policies: Dict[str, Policy],
        attachments: List[PolicyAttachment],
        directory: Union[str, Path] = ".",
        filename: Optional[str] = None,
    ) -> Path:
        """Export and write the snapshot to ``directory``; returns the written path."""
        text = self.export_snapshot(organization, policies, attachments)
        target = anyio.Path(directory) / (filename or self.default_filename(organization))
        await target.parent.mkdir(parents=True, exist_ok=True)
        await target.write_text(text, encoding="utf-8")
        return Path(target)

    # ===== Import =====

    def _adopt(self, result: SnapshotLoadResult) -> SnapshotLoadResult:
        snapshot = backfill_default_policies(result.snapshot)
        self.set_structural_version(snapshot.metadata.structural_version)
        return result.model_copy(update={"snapshot": snapshot})

    def import_snapshot(self, raw_text: str) -> SnapshotLoadResult:
        """
        Load snapshot text.

        On success the default policies are backfilled and the structural
        version counter adopts the imported value. Never raises.
        """
        result = parse_snapshot(raw_text)
        if not result.ok:
            logger.warning(f"Snapshot import failed: {result.error.message}")
            return result
        return self._adopt(result)

    async def import_from_file(self, path: Union[str, Path]) -> SnapshotLoadResult:
        try:
            text = await anyio.Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read snapshot file {path}: {e}")
            return SnapshotLoadResult.failure(f"Failed to read file: {e}")
        return self.import_snapshot(text)

    # ===== Local cache =====

    def save_to_local_cache(
        self,
        organization: Optional[Organization],
        policies: Dict[str, Policy],
        attachments: List[PolicyAttachment],
    ) -> bool:
        """
        Mirror the model into the local cache without bumping the version.

        An absent organization clears the cached state. Cache failures are
        logged and reported as False.
        """
        if self.cache is None:
            return False
        try:
            if organization is None:
                self.cache.delete(STATE_CACHE_KEY)
                return True
            snapshot = build_snapshot(organization, policies, attachments, self.app_version, self._structural_version)
            self.cache.set(STATE_CACHE_KEY, dump_snapshot(snapshot, indent=None))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Failed to save to local cache: {e}")
            return False

    def load_from_local_cache(self) -> Optional[PersistedSnapshot]:
        """
        Restore the cached snapshot, if any.

        Invalid or corrupted entries are purged and reported as absent.
        """
        if self.cache is None:
            return None
        try:
            raw = self.cache.get(STATE_CACHE_KEY)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to load from local cache: {e}")
            return None
        if raw is None:
            return None

        result = parse_snapshot(raw)
        if not result.ok:
            logger.warning(f"Invalid cached state - clearing: {result.error.message}")
            self.clear_local_cache()
            return None
        return self._adopt(result).snapshot

    def clear_local_cache(self) -> None:
        if self.cache is None:
            return
        try:
            self.cache.delete(STATE_CACHE_KEY)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to clear local cache: {e}")

    def save_onboarding_completed(self, completed: bool) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(ONBOARDING_CACHE_KEY, json.dumps(bool(completed)))
        except SQLAlchemyError as e:
            logger.warning(f"Failed to save onboarding status: {e}")

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()

    def load_onboarding_completed(self) -> bool:
        if self.cache is None:
            return False
        try:
            raw = self.cache.get(ONBOARDING_CACHE_KEY)
            return json.loads(raw) is True if raw else False
        except (SQLAlchemyError, ValueError) as e:
            logger.warning(f"Failed to load onboarding status: {e}")
            return False
