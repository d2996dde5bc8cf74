"""
Event logging for tier traffic.

Each event goes to the regular ``logging`` tree as a ``key=value`` line and,
when a log directory is configured, to a JSON Lines file as well.
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO


class StructuredLogger:
    """
    Emits named events with keyword fields.

    Usage:
        events = StructuredLogger("unit_storage.events", log_dir=Path("logs"))
        events.info("tier_hit", key="members.json", tier="local")
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        self.name = name
        self.enable_console = enable_console
        self._logger = logging.getLogger(name)
        self._base_fields: dict[str, Any] = {"run": f"{int(time.time())}-{id(self):x}"}
        self._sink: TextIO | None = None
        if enable_json and log_dir is not None:
            self._sink = self._open_sink(log_dir)

    @property
    def writes_json(self) -> bool:
        return self._sink is not None and not self._sink.closed

    @staticmethod
    def _open_sink(log_dir: Path) -> TextIO:
        log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        return (log_dir / f"events-{stamp}.jsonl").open("a", encoding="utf-8")

    def bind(self, **fields) -> None:
        """Adds fields that every following JSON record carries."""
        self._base_fields.update(fields)

    def log(self, level: int, event: str, **fields) -> None:
        if self.enable_console and self._logger.isEnabledFor(level):
            rendered = " ".join(f"{k}={v}" for k, v in fields.items())
            self._logger.log(level, f"{event} {rendered}".rstrip())
        if self.writes_json:
            record = {
                "ts": datetime.now(timezone.utc).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "event": event,
                **self._base_fields,
                **fields,
            }
            try:
                self._sink.write(json.dumps(record, default=str) + "\n")
                self._sink.flush()
            except OSError as e:
                print(f"Could not write event log: {e}", file=sys.stderr)

    def debug(self, event: str, **fields) -> None:
        self.log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields) -> None:
        self.log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields) -> None:
        self.log(logging.WARNING, event, **fields)

    def error(self, event: str, **fields) -> None:
        self.log(logging.ERROR, event, **fields)

    def close(self) -> None:
        if self.writes_json:
            self._sink.close()


class TierEventLogger:
    """Named events for lookups, backfills and writes across tiers."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def hit(self, key: str, tier: str, duration_ms: float):
        self.logger.debug("tier_hit", key=key, tier=tier, ms=round(duration_ms, 2))

    def not_found(self, key: str, probed: list[str]):
        self.logger.debug("not_found", key=key, probed=",".join(probed))

    def tier_error(self, key: str, tier: str, kind: str, error: str):
        """A tier failure that the lookup treated as a miss."""
        self.logger.warning("tier_error", key=key, tier=tier, kind=kind, error=error)

    def backfill_completed(self, key: str, tier: str, source: str):
        self.logger.debug("backfilled", key=key, tier=tier, source=source)

    def backfill_failed(self, key: str, tier: str, error: str):
        self.logger.warning("backfill_failed", key=key, tier=tier, error=error)

    def write_completed(self, key: str, tiers: list[str]):
        self.logger.debug("written", key=key, tiers=",".join(tiers))

    def write_failed(self, key: str, tier: str, error: str, advisory: bool):
        level = logging.WARNING if advisory else logging.ERROR
        self.logger.log(level, "write_failed", key=key, tier=tier, error=error)


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, TierEventLogger]:
    """Returns the base event logger and the tier event wrapper around it."""
    base = StructuredLogger("unit_storage.events", log_dir=log_dir, enable_json=enable_json)
    return base, TierEventLogger(base)
