"""Quota monitor: threshold warnings + forced eviction for a SessionStore.

check()   -> QuotaStatus   (marks fired warnings; never mutates the store)
enforce() -> EvictionReport (evicts batches until under limits or stuck)
tick()    -> check + notify + enforce; cheap no-op when nothing changed

Warning thresholds are independent: each has its own suppression window, so
at 96% both soft and critical can fire in the same check. Auto-eviction is not
subject to suppression.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from time import time
from typing import Any, Callable, Dict

from chatcore.events import QuotaUnresolvable, QuotaWarning, emit

from .models import StorageUsage
from .store import SessionStore

logger = logging.getLogger("chatdesk.quota")

SOFT = "soft"
CRITICAL = "critical"
EXCEEDED = "exceeded"

_WARNING_TEXT = {
    SOFT: "Storage space running low ({pct:.1f}% used)",
    CRITICAL: "Storage quota critical ({pct:.1f}% used)",
    EXCEEDED: "Storage quota exceeded; old chat sessions are being cleared",
}


@dataclass(frozen=True, slots=True)
class QuotaThreshold:
    level: str
    percentage: float
    suppress_s: float


@dataclass(frozen=True, slots=True)
class QuotaPolicy:
    thresholds: tuple[QuotaThreshold, ...] = (
        QuotaThreshold(SOFT, 90.0, 3600.0),
        QuotaThreshold(CRITICAL, 95.0, 1800.0),
    )
    eviction_batch_size: int = 2
    poll_interval_s: float = 30.0

    @classmethod
    def from_config(cls, cfg: Any) -> "QuotaPolicy":
        """Build from ``QuotaPolicyConfig``."""
        return cls(
            thresholds=(
                QuotaThreshold(
                    SOFT, cfg.soft.percentage, cfg.soft.suppress_s
                ),
                QuotaThreshold(
                    CRITICAL, cfg.critical.percentage, cfg.critical.suppress_s
                ),
            ),
            eviction_batch_size=cfg.eviction_batch_size,
            poll_interval_s=cfg.poll_interval_s,
        )

    @property
    def lowest_percentage(self) -> float:
        return min((t.percentage for t in self.thresholds), default=100.0)


@dataclass(frozen=True, slots=True)
class QuotaStatus:
    percentage: float
    should_warn_soft: bool
    should_warn_critical: bool
    should_auto_evict: bool
    usage: StorageUsage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "percentage": round(self.percentage, 2),
            "shouldWarnSoft": self.should_warn_soft,
            "shouldWarnCritical": self.should_warn_critical,
            "shouldAutoEvict": self.should_auto_evict,
            "usage": self.usage.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class EvictionReport:
    evicted: int
    batches: int
    resolved: bool
    usage: StorageUsage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evicted": self.evicted,
            "batches": self.batches,
            "resolved": self.resolved,
            "usage": self.usage.to_dict(),
        }


class QuotaMonitor:
    def __init__(
        self,
        store: SessionStore,
        policy: QuotaPolicy | None = None,
        *,
        clock: Callable[[], float] = time,
    ) -> None:
        self.store = store
        self.policy = policy or QuotaPolicy()
        self._clock = clock
        self._last_fired: Dict[str, float] = {}
        self._last_version: int | None = None
        self._last_quiet = False
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------- checks
    def percentage(self, usage: StorageUsage) -> float:
        return usage.blob_size_bytes / self.store.limits.max_storage_size_bytes * 100.0

    def is_exceeded(self, usage: StorageUsage) -> bool:
        limits = self.store.limits
        return (
            usage.blob_size_bytes > limits.max_storage_size_bytes
            or usage.sessions_count > limits.max_sessions
        )

    def check(self) -> QuotaStatus:
        usage = self.store.compute_usage()
        pct = self.percentage(usage)
        now = self._clock()
        fired: Dict[str, bool] = {}
        with self._lock:
            for t in self.policy.thresholds:
                last = self._last_fired.get(t.level)
                due = last is None or now - last > t.suppress_s
                fired[t.level] = pct >= t.percentage and due
                if fired[t.level]:
                    self._last_fired[t.level] = now
        return QuotaStatus(
            percentage=pct,
            should_warn_soft=fired.get(SOFT, False),
            should_warn_critical=fired.get(CRITICAL, False),
            should_auto_evict=self.is_exceeded(usage),
            usage=usage,
        )

    def enforce(self) -> EvictionReport:
        """Evict in batches until under both limits or nothing is evictable."""
        evicted = 0
        batches = 0
        with self.store.lock:
            usage = self.store.compute_usage()
            while self.is_exceeded(usage):
                removed = self.store.evict_oldest(
                    self.policy.eviction_batch_size, reason="quota"
                )
                if removed == 0:
                    break
                evicted += removed
                batches += 1
                usage = self.store.compute_usage()
            resolved = not self.is_exceeded(usage)
        if not resolved:
            limits = self.store.limits
            emit(
                QuotaUnresolvable(
                    blob_size_bytes=usage.blob_size_bytes,
                    sessions_count=usage.sessions_count,
                    max_storage_size_bytes=limits.max_storage_size_bytes,
                    max_sessions=limits.max_sessions,
                ),
                bus=self.store.bus,
            )
            logger.warning(
                "quota unresolvable: blob=%d/%d sessions=%d/%d after evicting %d",
                usage.blob_size_bytes,
                limits.max_storage_size_bytes,
                usage.sessions_count,
                limits.max_sessions,
                evicted,
            )
        elif evicted:
            logger.info("quota restored after evicting %d sessions", evicted)
        return EvictionReport(
            evicted=evicted, batches=batches, resolved=resolved, usage=usage
        )

    def tick(self) -> QuotaStatus | None:
        """Periodic entry point.

        Returns None without computing usage when the store has not changed
        since a check that found usage below every threshold.
        """
        version = self.store.version
        if version == self._last_version and self._last_quiet:
            return None
        status = self.check()
        if status.should_warn_soft:
            self._notify(SOFT, status)
        if status.should_warn_critical:
            self._notify(CRITICAL, status)
        if status.should_auto_evict:
            self._notify(EXCEEDED, status)
            self.enforce()
        self._last_version = self.store.version
        self._last_quiet = (
            not status.should_auto_evict
            and status.percentage < self.policy.lowest_percentage
        )
        return status

    def _notify(self, level: str, status: QuotaStatus) -> None:
        text = _WARNING_TEXT[level].format(pct=status.percentage)
        emit(
            QuotaWarning(
                level=level,
                percentage=round(status.percentage, 2),
                blob_size_bytes=status.usage.blob_size_bytes,
                sessions_count=status.usage.sessions_count,
                message=text,
            ),
            bus=self.store.bus,
        )
        logger.warning("quota %s: %s", level, text)

    # --------------------------------------------------------- background
    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="quota-monitor", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("quota tick failed")
            self._stop.wait(self.policy.poll_interval_s)


__all__ = [
    "SOFT",
    "CRITICAL",
    "EXCEEDED",
    "QuotaThreshold",
    "QuotaPolicy",
    "QuotaStatus",
    "EvictionReport",
    "QuotaMonitor",
]
