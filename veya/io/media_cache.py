"""Two-tier audio artifact storage.

Responsibilities:
- Own the temporary and persisted audio directories exclusively.
- Store new cast output as temporary, promote it to persisted by copy.
- Purge temporary audio and evict persisted audio by age and total size.

Key types:
- `MediaCacheManager`: filesystem-backed artifact lifecycle manager.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import os
from pathlib import Path
import shutil
import threading
from typing import Callable
import uuid

from ..errors import ErrorKind, VeyaError
from ..models.datatypes import AudioArtifact, CachePolicy, Tier
from ..telemetry.logger import RunLogger


_PARTIAL_SUFFIX = ".part"


class MediaCacheManager:
    """Filesystem-backed audio artifact lifecycle manager.

    Temporary artifacts live under `temp_dir` and are removed en masse by
    `purge_temporary`. Persisted artifacts live under `saved_dir` and are removed
    only by `evict` or `delete`. Ages are taken from file modification times.
    """

    def __init__(
        self,
        temp_dir: Path,
        saved_dir: Path,
        *,
        run_logger: RunLogger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize tier directories; they are created on first write."""

        self.temp_dir = temp_dir
        self.saved_dir = saved_dir
        self._run_logger = run_logger or RunLogger()
        self._clock = clock
        self._lock = threading.Lock()

    def store_temporary(self, data: bytes, audio_format: str = "mp3") -> AudioArtifact:
        """Write a new temporary artifact named by a random UUID.

        The payload is written to a `.part` file and renamed into place, so a
        reader never sees a partially written artifact.
        """

        path = self.temp_dir / f"{uuid.uuid4()}.{audio_format}"
        partial = path.with_name(path.name + _PARTIAL_SUFFIX)
        with self._lock:
            try:
                self.temp_dir.mkdir(parents=True, exist_ok=True)
                partial.write_bytes(data)
                os.replace(partial, path)
            except OSError as exc:
                if partial.exists():
                    partial.unlink()
                raise VeyaError(
                    ErrorKind.STORAGE_FAILURE, f"Failed to write audio file: {exc}"
                ) from exc
        self._run_logger.log_event("media_cache", "store", "temporary", size_bytes=len(data))
        return AudioArtifact(
            path=path,
            tier=Tier.TEMPORARY,
            size_bytes=len(data),
            created_at=self._clock(),
        )

    def promote(self, artifact: AudioArtifact) -> AudioArtifact:
        """Copy a temporary artifact into the persisted tier.

        Promoting the same artifact again returns the existing persisted copy.
        A persisted artifact is returned unchanged.

        Raises:
            VeyaError: `STORAGE_FAILURE` when the source is missing or the copy fails.
        """

        if artifact.tier is Tier.PERSISTED:
            return artifact

        destination = self.saved_dir / artifact.path.name
        with self._lock:
            if destination.is_file():
                return self._artifact_for(destination, Tier.PERSISTED)
            if not artifact.path.is_file():
                raise VeyaError(
                    ErrorKind.STORAGE_FAILURE,
                    f"Temporary audio file not found: {artifact.path.name}",
                )
            partial = destination.with_name(destination.name + _PARTIAL_SUFFIX)
            try:
                self.saved_dir.mkdir(parents=True, exist_ok=True)
                shutil.copy(artifact.path, partial)
                os.replace(partial, destination)
            except OSError as exc:
                if partial.exists():
                    partial.unlink()
                raise VeyaError(
                    ErrorKind.STORAGE_FAILURE, f"Failed to copy audio to saved dir: {exc}"
                ) from exc
            promoted = self._artifact_for(destination, Tier.PERSISTED)
        self._run_logger.log_event(
            "media_cache", "promote", "persisted", size_bytes=promoted.size_bytes
        )
        return promoted

    def artifact_at(self, path: Path) -> AudioArtifact:
        """Return the artifact record for a file in either tier directory.

        Raises:
            VeyaError: `STORAGE_FAILURE` when the file is missing or outside both tiers.
        """

        resolved = path.resolve()
        for directory, tier in ((self.temp_dir, Tier.TEMPORARY), (self.saved_dir, Tier.PERSISTED)):
            if resolved.parent == directory.resolve():
                if not resolved.is_file():
                    break
                return self._artifact_for(resolved, tier)
        raise VeyaError(ErrorKind.STORAGE_FAILURE, f"Audio file not found: {path.name}")

    def is_promoted(self, artifact: AudioArtifact) -> bool:
        """Return whether a persisted copy of the artifact exists."""

        if artifact.tier is Tier.PERSISTED:
            return artifact.path.is_file()
        return (self.saved_dir / artifact.path.name).is_file()

    def purge_temporary(self) -> int:
        """Remove every temporary artifact and return how many were removed.

        Idempotent; files that cannot be removed are logged and skipped.
        """

        removed = 0
        with self._lock:
            if not self.temp_dir.is_dir():
                return 0
            for path in sorted(self.temp_dir.iterdir()):
                if not path.is_file():
                    continue
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    self._run_logger.log_warning(
                        "media_cache", "purge", "skip", file=path.name, error_type=type(exc).__name__
                    )
                    continue
                removed += 1
        self._run_logger.log_event("media_cache", "purge", "complete", removed=removed)
        return removed

    def evict(self, policy: CachePolicy, now: datetime | None = None) -> list[AudioArtifact]:
        """Evict persisted artifacts by age, then oldest-first down to the size bound.

        Temporary artifacts are never touched.

        Returns:
            Evicted artifacts in removal order.
        """

        current_time = now or self._clock()
        max_age = timedelta(days=policy.max_age_days)
        evicted: list[AudioArtifact] = []
        with self._lock:
            remaining: list[AudioArtifact] = []
            for artifact in self._scan(self.saved_dir, Tier.PERSISTED):
                if current_time - artifact.created_at > max_age and self._remove(artifact):
                    evicted.append(artifact)
                else:
                    remaining.append(artifact)

            total = sum(artifact.size_bytes for artifact in remaining)
            for artifact in sorted(remaining, key=lambda item: (item.created_at, item.path.name)):
                if total <= policy.max_total_bytes:
                    break
                if self._remove(artifact):
                    evicted.append(artifact)
                    total -= artifact.size_bytes

        self._run_logger.log_event(
            "media_cache",
            "evict",
            "complete",
            evicted=len(evicted),
            max_age_days=policy.max_age_days,
            max_total_bytes=policy.max_total_bytes,
        )
        return evicted

    def delete(self, artifact: AudioArtifact) -> bool:
        """Delete one artifact on explicit user request; return whether it existed."""

        with self._lock:
            return self._remove(artifact)

    def list_artifacts(self, tier: Tier) -> list[AudioArtifact]:
        """Return artifacts of one tier, oldest first."""

        directory = self.temp_dir if tier is Tier.TEMPORARY else self.saved_dir
        with self._lock:
            artifacts = self._scan(directory, tier)
        return sorted(artifacts, key=lambda item: (item.created_at, item.path.name))

    def total_bytes(self, tier: Tier) -> int:
        """Return the total size of one tier."""

        return sum(artifact.size_bytes for artifact in self.list_artifacts(tier))

    @staticmethod
    def _artifact_for(path: Path, tier: Tier) -> AudioArtifact:
        """Build an artifact record from file metadata."""

        stat = path.stat()
        return AudioArtifact(
            path=path,
            tier=tier,
            size_bytes=stat.st_size,
            created_at=datetime.fromtimestamp(stat.st_mtime),
        )

    def _scan(self, directory: Path, tier: Tier) -> list[AudioArtifact]:
        """Return completed artifact files in a tier directory."""

        if not directory.is_dir():
            return []
        artifacts: list[AudioArtifact] = []
        for path in directory.iterdir():
            if not path.is_file() or path.name.endswith(_PARTIAL_SUFFIX):
                continue
            try:
                artifacts.append(self._artifact_for(path, tier))
            except FileNotFoundError:
                continue
        return artifacts

    def _remove(self, artifact: AudioArtifact) -> bool:
        """Remove an artifact file, logging and skipping failures."""

        try:
            artifact.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            self._run_logger.log_warning(
                "media_cache",
                "evict",
                "skip",
                file=artifact.path.name,
                error_type=type(exc).__name__,
            )
            return False
        return True
