"""
Policy Store

Holds the current `PolicyConfig` snapshot. Readers take the reference
without locking; refreshes build a complete new snapshot and swap it in,
so a concurrent reader sees either the old or the new version.

Every administrative change bumps the persisted `policyVersion` with a
compare-and-swap. Instances that did not handle the change notice the
newer version on their next `current()` call and reload.
"""
import json
import logging
import threading
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leaveflow.core.config import PolicyDefaults, settings
from leaveflow.core.exceptions import AppException, ConcurrentModificationError
from leaveflow.models.holiday import Holiday
from leaveflow.models.leave_type import LeaveType
from leaveflow.models.system_setting import SystemSetting
from leaveflow.schemas.policy import HolidayEntry, PolicyConfig, PolicyUpdate

logger = logging.getLogger(__name__)

VERSION_KEY = "policyVersion"


class PolicyStore:
    def __init__(self, defaults: Optional[PolicyDefaults] = None):
        self._defaults = defaults or settings.policy
        self._lock = threading.Lock()
        self._snapshot = self._build({}, [], version=0)
        # Persisted version that failed validation; not retried until it changes
        self._invalid_version: Optional[int] = None

    @property
    def snapshot(self) -> PolicyConfig:
        return self._snapshot

    def get_policy(self, leave_type: Optional[LeaveType] = None):
        """
        Global snapshot, or the policy resolved for one leave type when given.
        Per-type values override global defaults.
        """
        snapshot = self._snapshot
        if leave_type is None:
            return snapshot
        return snapshot.for_leave_type(leave_type)

    def current(self, db: Session) -> PolicyConfig:
        """
        Snapshot matching the persisted policyVersion, reloading first when
        another instance has published a newer one.
        """
        persisted = self._persisted_version(db)
        if persisted != self._snapshot.version and persisted != self._invalid_version:
            self.refresh(db)
        return self._snapshot

    def _build(self, overrides: Dict[str, Any], holidays, version: int) -> PolicyConfig:
        values = self._defaults.model_dump()
        values.update(overrides)
        values["version"] = version
        values["holidays"] = tuple(holidays)
        return PolicyConfig.model_validate(values)

    @staticmethod
    def _field_for_key(key: str) -> Optional[str]:
        for name, field in PolicyConfig.model_fields.items():
            if field.alias == key or name == key:
                return name
        return None

    def _persisted_version(self, db: Session) -> int:
        value = db.execute(
            select(SystemSetting.value).where(SystemSetting.key == VERSION_KEY)
        ).scalar_one_or_none()
        if value is None:
            return 0
        try:
            return int(json.loads(value))
        except ValueError:
            logger.warning(f"Ignoring malformed {VERSION_KEY} setting {value!r}")
            return self._snapshot.version

    def _read_rows(self, db: Session):
        overrides: Dict[str, Any] = {}
        version = 0
        for row in db.query(SystemSetting).all():
            try:
                value = json.loads(row.value)
            except ValueError:
                logger.warning(f"Ignoring malformed policy setting {row.key!r}")
                continue
            if row.key == VERSION_KEY:
                version = int(value)
                continue
            name = self._field_for_key(row.key)
            if name and name not in ("version", "holidays", "loaded_at"):
                overrides[name] = value
        holidays = [
            HolidayEntry(day=h.date, name=h.name, recurring=h.recurring)
            for h in db.query(Holiday).order_by(Holiday.date).all()
        ]
        return overrides, holidays, version

    def refresh(self, db: Session) -> PolicyConfig:
        """Reload settings and holidays from the database and swap the snapshot."""
        overrides, holidays, version = self._read_rows(db)
        with self._lock:
            try:
                snapshot = self._build(overrides, holidays, version)
            except ValidationError as e:
                logger.error(f"Persisted policy v{version} is invalid, keeping v{self._snapshot.version}: {e}")
                self._invalid_version = version
                return self._snapshot
            self._snapshot = snapshot
            self._invalid_version = None
        logger.info(f"Policy snapshot v{snapshot.version} loaded ({len(holidays)} holidays)")
        return snapshot

    def bump_version(self, db: Session, expected: Optional[int] = None) -> int:
        """
        Move the persisted policyVersion from `expected` (default: the value
        stored now) to the next version, within the caller's transaction.
        Raises ConcurrentModificationError when another writer got there first.
        """
        if expected is None:
            expected = self._persisted_version(db)
        new_version = expected + 1

        exists = db.execute(
            select(SystemSetting.id).where(SystemSetting.key == VERSION_KEY)
        ).first()
        if exists is None and expected == 0:
            # A concurrent first publisher collides on the unique key at commit
            db.add(SystemSetting(key=VERSION_KEY, value=json.dumps(new_version), category="system_settings"))
            return new_version

        result = db.execute(
            update(SystemSetting)
            .where(SystemSetting.key == VERSION_KEY, SystemSetting.value == json.dumps(expected))
            .values(value=json.dumps(new_version))
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            logger.warning(f"Policy version conflict: expected v{expected}")
            raise ConcurrentModificationError("Policy settings were changed concurrently, please retry.")
        return new_version

    def update(self, db: Session, changes: PolicyUpdate) -> PolicyConfig:
        """
        Administrative update: validate the merged policy, persist the changed
        keys with a version bump, then refresh.
        """
        delta = changes.model_dump(exclude_none=True)
        if not delta:
            return self._snapshot

        overrides, holidays, version = self._read_rows(db)
        overrides.update(delta)
        try:
            self._build(overrides, holidays, version + 1)
        except ValidationError as e:
            raise AppException(
                message="Invalid policy settings",
                status_code=422,
                error_code="INVALID_POLICY",
                details={"errors": [err["msg"] for err in e.errors()]}
            )

        try:
            new_version = self.bump_version(db, expected=version)
            for name, value in delta.items():
                key = PolicyConfig.model_fields[name].alias
                self._upsert(db, key, value)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConcurrentModificationError("Policy settings were changed concurrently, please retry.") from e
        except Exception:
            db.rollback()
            raise

        logger.info(f"Policy updated to v{new_version}", extra={"changed": sorted(delta)})
        return self.refresh(db)

    @staticmethod
    def _upsert(db: Session, key: str, value: Any, category: str = "leave_policies"):
        encoded = json.dumps(list(value) if isinstance(value, tuple) else value)
        row = db.query(SystemSetting).filter(SystemSetting.key == key).first()
        if row:
            row.value = encoded
        else:
            db.add(SystemSetting(key=key, value=encoded, category=category))
