"""
Regeneration Lease

Single-flight guard for feed regeneration. The lease is a marker file in the
data directory created with an exclusive-create flag, so at most one run can
hold it across processes. It carries its own expiry: a lease that outlived
it is treated as abandoned and swept on the next trigger.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

from magenta_epg.utils.file_operations import file_modified_at


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RegenerationLease:
    owner: str
    acquired_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_json(self) -> str:
        return json.dumps({
            "owner": self.owner,
            "acquired_at": self.acquired_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        })


class LeaseLock:
    """
    File-backed lease ensuring only one regeneration runs at a time.

    Acquisition never blocks: a caller that finds the lease held skips its run.
    """

    def __init__(self, path: Path, ttl: timedelta) -> None:
        self.path = path
        self.ttl = ttl

    def read(self) -> RegenerationLease | None:
        """
        Read the current lease.

        A marker whose body cannot be parsed (e.g. left by an older writer)
        is dated by its modification time.

        Returns:
            The lease, or None if no marker exists
        """
        try:
            body = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            data = json.loads(body)
            return RegenerationLease(
                owner=str(data["owner"]),
                acquired_at=datetime.fromisoformat(data["acquired_at"]),
                expires_at=datetime.fromisoformat(data["expires_at"]),
            )
        except (ValueError, KeyError, TypeError):
            modified_at = file_modified_at(self.path)
            if modified_at is None:
                return None
            return RegenerationLease(
                owner="unknown",
                acquired_at=modified_at,
                expires_at=modified_at + self.ttl,
            )

    def is_held(self) -> bool:
        return self.path.exists()

    def acquire(self, now: datetime | None = None) -> RegenerationLease | None:
        """
        Try to take the lease.

        Returns:
            The new lease, or None if another run holds it
        """
        now = now or datetime.now(timezone.utc)
        lease = RegenerationLease(owner=uuid4().hex, acquired_at=now, expires_at=now + self.ttl)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            logger.warning("Regeneration lease already held (%s), skipping", self.path)
            return None

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(lease.to_json())
        except OSError:
            # Never leave an empty marker behind
            self._remove()
            raise
        logger.debug("Acquired regeneration lease %s until %s", lease.owner, lease.expires_at.isoformat())
        return lease

    def release(self, lease: RegenerationLease) -> bool:
        """
        Drop the lease if it is still ours.

        Returns:
            True if the marker was removed
        """
        current = self.read()
        if current is None:
            logger.warning("Regeneration lease %s vanished before release", lease.owner)
            return False
        if current.owner != lease.owner:
            logger.warning(
                "Regeneration lease now belongs to %s, not releasing for %s",
                current.owner,
                lease.owner,
            )
            return False
        return self._remove()

    def sweep_stale(self, now: datetime | None = None) -> bool:
        """
        Remove an expired lease regardless of whether its run is still alive.

        Returns:
            True if a stale lease was removed
        """
        now = now or datetime.now(timezone.utc)
        lease = self.read()
        if lease is None or not lease.is_expired(now):
            return False

        logger.warning(
            "Removing stale regeneration lease %s (acquired %s, expired %s)",
            lease.owner,
            lease.acquired_at.isoformat(),
            lease.expires_at.isoformat(),
        )
        return self._remove()

    def _remove(self) -> bool:
        try:
            self.path.unlink()
            return True
        except FileNotFoundError:
            return False
