"""
Publishing error audit trail.

Failures are appended to one object per namespace per UTC day, named
``publishing-errors-YYYY-MM-DD``. Writes are serialized per log object
in-process and use versioned (conditional) updates with retry so that
concurrent reporters in other processes do not drop entries.
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..config import AuditSettings
from ..models.audit import DailyErrorLog, ErrorLogEntry
from ..models.publishing import User
from ..protocols import ObjectStore, StoredObject
from .exceptions import ConflictError, NotFoundError
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorReporter:
    """
    Records publishing failures in the daily audit log.

    Reporting is best effort: store failures are logged and swallowed so a
    lost audit entry never hides the error being reported.
    """

    def __init__(
        self,
        store: ObjectStore,
        settings: AuditSettings,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.settings = settings
        self.metrics = metrics
        self.clock = clock
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = {}

    def log_name(self, day: date) -> str:
        """Name of the audit object for a given day."""
        return f"{self.settings.log_name_prefix}-{day.isoformat()}"

    async def report_error(
        self,
        user: User,
        namespace: str,
        model_name: str,
        operation: str,
        error: BaseException,
    ) -> bool:
        """
        Append an error entry to today's log.

        Returns True if the entry was persisted.
        """
        logger.error(
            "Publishing error",
            user=user.name,
            namespace=namespace,
            model_name=model_name,
            operation=operation,
            error=str(error),
        )

        now = self.clock().astimezone(timezone.utc)
        entry = ErrorLogEntry(
            timestamp=now.strftime("%Y-%m-%dT%H:%M:%SZ"),
            user=user.name,
            tenant=user.tenant,
            operation=operation,
            model=model_name,
            namespace=namespace,
            error=str(error),
        )
        log_name = self.log_name(now.date())

        key = (namespace, log_name)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                try:
                    persisted = await self._append(namespace, log_name, entry)
                except Exception as e:
                    logger.error(
                        "Failed to write publishing error log",
                        namespace=namespace,
                        log_name=log_name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    persisted = False
        finally:
            self._release_lock(key)

        if self.metrics:
            self.metrics.record_audit_write("success" if persisted else "failed")
        return persisted

    def _release_lock(self, key: Tuple[str, str]) -> None:
        """Drop the lock for a log once no reporter holds or waits on it."""
        self._lock_users[key] -= 1
        if not self._lock_users[key]:
            del self._lock_users[key]
            del self._locks[key]

    async def _append(self, namespace: str, log_name: str, entry: ErrorLogEntry) -> bool:
        """Read-modify-write with conditional update, retried on conflict."""
        new_entry = entry.model_dump()

        for attempt in range(1, self.settings.max_write_attempts + 1):
            try:
                existing = await self.store.get_object(namespace, log_name)
            except NotFoundError:
                try:
                    await self.store.create_object(namespace, log_name, {"entries": [new_entry]})
                    logger.debug("Created publishing error log", namespace=namespace, log_name=log_name)
                    return True
                except ConflictError:
                    # Created concurrently; append on the next attempt
                    logger.debug("Error log created concurrently", log_name=log_name, attempt=attempt)
                    continue

            entries = self._existing_entries(existing, namespace)
            entries.append(new_entry)
            data = dict(existing.data)
            data["entries"] = entries

            try:
                await self.store.update_object(namespace, log_name, data, expected_version=existing.version)
                logger.debug(
                    "Appended to publishing error log",
                    namespace=namespace,
                    log_name=log_name,
                    entries=len(entries),
                )
                return True
            except ConflictError:
                logger.debug("Error log changed concurrently, retrying", log_name=log_name, attempt=attempt)

        logger.warning(
            "Gave up writing publishing error log",
            namespace=namespace,
            log_name=log_name,
            attempts=self.settings.max_write_attempts,
        )
        return False

    def _existing_entries(self, existing: StoredObject, namespace: str) -> List[Dict[str, Any]]:
        """
        Entries of a stored log, or an empty list if the log is malformed.

        A malformed log is recreated: its entries are replaced by the new one.
        """
        try:
            log = DailyErrorLog.model_validate(existing.data)
        except PydanticValidationError as e:
            logger.warning(
                "Malformed publishing error log, recreating",
                namespace=namespace,
                log_name=existing.name,
                error=str(e),
            )
            return []
        if "entries" not in existing.data:
            logger.warning(
                "Publishing error log has no entries, recreating",
                namespace=namespace,
                log_name=existing.name,
            )
        return [item.model_dump() for item in log.entries]

    async def get_daily_log(self, namespace: str, day: date) -> DailyErrorLog:
        """Read a day's log. A missing or malformed log is returned as an empty one."""
        try:
            existing = await self.store.get_object(namespace, self.log_name(day))
        except NotFoundError:
            return DailyErrorLog()
        try:
            return DailyErrorLog.model_validate(existing.data)
        except PydanticValidationError as e:
            # Same data the next report_error call recreates
            logger.warning(
                "Malformed publishing error log, returning it empty",
                namespace=namespace,
                log_name=existing.name,
                error=str(e),
            )
            return DailyErrorLog()
