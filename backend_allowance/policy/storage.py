"""
Policy store — per-wallet policy records keyed by lowercased child address.

Two tiers:
- in-memory dict: fast path within one process
- JSON file (POLICY_STORE_PATH): write-through, read lazily only when the
  memory tier is empty

This is a stopgap until policies move to a real multi-instance datastore.
There is no cross-process locking: concurrent writers each rewrite the full
map and the last one wins. Acceptable only for a single-writer, low-traffic
deployment.

File layout: one JSON object, {"0xabc...": WalletPolicyRecord.to_dict(), ...}.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from backend_allowance.allowance_logging import get_logger, short_address
from backend_allowance.core.exceptions import AllowanceError, PolicyPersistenceError
from backend_allowance.policy.models import PolicyDocument, WalletPolicyRecord
from backend_allowance.utils.wallet_utils import normalize_address

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class PolicyStore:
    """
    Durable mapping wallet address -> WalletPolicyRecord.

    Reads never raise: a missing or unreadable file yields an empty store.
    Write failures are logged; with strict=True they raise PolicyPersistenceError
    so the caller can fail the request instead of silently losing the write.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        strict: bool = False,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.path = Path(path)
        self.strict = strict
        self._clock = clock
        self._records: dict[str, WalletPolicyRecord] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Durable tier
    # ------------------------------------------------------------------

    def _load_from_disk(self) -> dict[str, WalletPolicyRecord]:
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("policy_store_load_failed", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.error("policy_store_load_failed", path=str(self.path), error="root is not an object")
            return {}
        records: dict[str, WalletPolicyRecord] = {}
        for key, raw in data.items():
            try:
                record = WalletPolicyRecord.from_dict(raw)
            except (AllowanceError, KeyError, TypeError, ValueError) as e:
                logger.warning("policy_store_record_skipped", wallet=short_address(key), error=str(e))
                continue
            records[normalize_address(key)] = record
        logger.info("policy_store_loaded", path=str(self.path), count=len(records))
        return records

    def _save_to_disk(self) -> bool:
        payload = {key: record.to_dict() for key, record in self._records.items()}
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("policy_store_save_failed", path=str(self.path), error=str(e))
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            if self.strict:
                raise PolicyPersistenceError(f"Failed to persist policy store: {e}") from e
            return False
        logger.debug("policy_store_saved", path=str(self.path), count=len(payload))
        return True

    def _commit(self, key: str, previous: WalletPolicyRecord | None) -> None:
        """Persist the map; in strict mode a failed write rolls the memory tier back to previous."""
        try:
            self._save_to_disk()
        except PolicyPersistenceError:
            if previous is None:
                self._records.pop(key, None)
            else:
                self._records[key] = previous
            raise

    def ensure_loaded(self) -> None:
        """Hydrate the memory tier from disk when it is empty."""
        with self._lock:
            if not self._records:
                self._records.update(self._load_from_disk())

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def put(self, wallet_address: str, parent_address: str, policy: PolicyDocument) -> WalletPolicyRecord:
        """
        Store (or replace) the policy for a wallet and persist the full map.
        Replacing keeps the original created_at and refreshes updated_at.
        """
        key = normalize_address(wallet_address)
        now = self._clock()
        with self._lock:
            self.ensure_loaded()
            existing = self._records.get(key)
            record = WalletPolicyRecord(
                wallet_address=key,
                parent_address=normalize_address(parent_address),
                policy=policy,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._records[key] = record
            self._commit(key, existing)
        logger.info(
            "policy_stored",
            wallet=short_address(key),
            parent=short_address(record.parent_address),
            policy_name=policy.name,
            condition_count=len(policy.global_conditions),
            replaced=existing is not None,
        )
        return record

    def get(self, wallet_address: str) -> WalletPolicyRecord | None:
        key = normalize_address(wallet_address)
        with self._lock:
            self.ensure_loaded()
            record = self._records.get(key)
        if record is None:
            logger.debug("policy_not_found", wallet=short_address(key))
        return record

    def list_by_parent(self, parent_address: str) -> list[WalletPolicyRecord]:
        parent = normalize_address(parent_address)
        with self._lock:
            self.ensure_loaded()
            return [r for r in self._records.values() if r.parent_address == parent]

    def update(self, wallet_address: str, requesting_parent: str, policy: PolicyDocument) -> WalletPolicyRecord | None:
        """
        Replace the policy of an existing wallet owned by requesting_parent.
        Returns None when the wallet is unknown or owned by someone else.
        """
        key = normalize_address(wallet_address)
        with self._lock:
            self.ensure_loaded()
            record = self._records.get(key)
            if record is None or record.parent_address != normalize_address(requesting_parent):
                return None
            updated = replace(record, policy=policy, updated_at=self._clock())
            self._records[key] = updated
            self._commit(key, record)
        logger.info("policy_updated", wallet=short_address(key), policy_name=policy.name)
        return updated

    def delete(self, wallet_address: str, requesting_parent: str) -> bool:
        """Remove the wallet's policy if requesting_parent owns it. False when missing or not owned."""
        key = normalize_address(wallet_address)
        with self._lock:
            self.ensure_loaded()
            record = self._records.get(key)
            if record is None or record.parent_address != normalize_address(requesting_parent):
                return False
            del self._records[key]
            self._commit(key, record)
        logger.info("policy_deleted", wallet=short_address(key))
        return True

    def list_all(self) -> list[WalletPolicyRecord]:
        """Every record. Diagnostics only; never expose unauthenticated in production."""
        with self._lock:
            self.ensure_loaded()
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            self.ensure_loaded()
            return len(self._records)


def _iso(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


def redact_record(record: WalletPolicyRecord) -> dict[str, Any]:
    """Diagnostic view of a record: addresses truncated, conditions inline."""
    return {
        "walletAddress": short_address(record.wallet_address),
        "parentAddress": short_address(record.parent_address),
        "policyName": record.policy.name,
        "allowedChains": list(record.policy.allowed_chains),
        "conditions": record.policy.to_dict()["globalConditions"],
        "createdAt": _iso(record.created_at),
        "updatedAt": _iso(record.updated_at),
    }
