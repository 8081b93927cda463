"""Durable record of checkout units that already passed, so retries can skip them."""

import hashlib
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console

from .models import CheckoutUnit

console = Console()


def slugify(identity: str) -> str:
    """Filesystem-safe name for a target; distinct identities never share one."""
    readable = re.sub(r"[^a-z0-9]", "-", identity, flags=re.IGNORECASE).lower()
    digest = hashlib.sha1(identity.encode("utf-8")).hexdigest()[:8]
    return f"{readable}-{digest}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProgressRecord(BaseModel):
    """Units marked passed for one target."""

    model_config = ConfigDict(populate_by_name=True)

    passed_units: list[str] = Field(default_factory=list, alias="passedUnits")
    timestamp: datetime = Field(default_factory=_now)


class ProgressStore:
    """Progress for one target, persisted as JSON under ``state_dir``."""

    def __init__(self, state_dir: Path):
        self.state_dir = state_dir
        self.identity: str | None = None
        self.path: Path | None = None
        self.record = ProgressRecord()

    def load(self, identity: str) -> ProgressRecord:
        """Load progress for a target; missing or corrupt state means no progress."""
        self.identity = identity
        self.path = self.state_dir / f"state-{slugify(identity)}.json"
        self.record = ProgressRecord()

        if self.path.exists():
            try:
                self.record = ProgressRecord.model_validate_json(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                console.print(f"[yellow]⚠️  Could not load state file {self.path}: {e}[/]")

        return self.record

    def has_passed(self, unit: CheckoutUnit) -> bool:
        return unit.key in self.record.passed_units

    def mark_passed(self, unit: CheckoutUnit) -> None:
        """Record a unit as passed and write it out before returning."""
        if self.has_passed(unit):
            return
        self.record.passed_units.append(unit.key)
        self._save()
        console.print(f"[green]   ✅ Card marked as passed: {unit.key}[/]")

    def clear(self) -> None:
        """Forget all progress for the loaded target."""
        if self.path is not None:
            self.path.unlink(missing_ok=True)
        self.record = ProgressRecord()

    def stats(self) -> dict:
        return {
            "total_passed": len(self.record.passed_units),
            "timestamp": self.record.timestamp.isoformat(),
        }

    def _save(self) -> None:
        if self.path is None:
            raise RuntimeError("ProgressStore.load() must be called before writing")

        self.state_dir.mkdir(parents=True, exist_ok=True)
        payload = self.record.model_dump_json(by_alias=True, indent=2)

        # Write-then-rename so a crash never leaves a half-written file behind
        fd, tmp_name = tempfile.mkstemp(dir=self.state_dir, prefix=".state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
