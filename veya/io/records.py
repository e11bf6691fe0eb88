"""History record persistence for successful pipeline runs.

Responsibilities:
- Append query and podcast history records.
- List records newest-first with 1-based pagination.
- Report the most frequently queried words across query history.

Key types:
- `RecordStore`: interface used by the orchestrator.
- `JsonlRecordStore`: append-only JSON-lines implementation.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime
import json
import os
from pathlib import Path
import threading
from typing import Any, Callable, Protocol, TypeVar

from ..models.datatypes import PodcastMode, PodcastRecord, PodcastSource, QueryRecord, SpeedMode
from ..telemetry.logger import RunLogger


_RecordT = TypeVar("_RecordT", QueryRecord, PodcastRecord)


@dataclass(frozen=True, slots=True)
class WordFrequency:
    """Aggregated occurrence count of one token across query inputs."""

    word: str
    count: int
    language: str


def _is_cjk(character: str) -> bool:
    """Return whether a character is counted as a standalone CJK token."""

    code_point = ord(character)
    return (
        0x4E00 <= code_point <= 0x9FFF
        or 0x3400 <= code_point <= 0x4DBF
        or 0x3040 <= code_point <= 0x30FF
        or 0xAC00 <= code_point <= 0xD7AF
    )


def tokenize(text: str) -> list[str]:
    """Split text into lowercase word tokens.

    Runs of alphanumerics, `'` and `-` form one token; each CJK
    character is its own token.
    """

    tokens: list[str] = []
    current: list[str] = []
    for character in text:
        if _is_cjk(character):
            if current:
                tokens.append("".join(current))
                current = []
            tokens.append(character)
        elif character.isalnum() or character in {"'", "-"}:
            current.append(character)
        elif current:
            tokens.append("".join(current))
            current = []
    if current:
        tokens.append("".join(current))
    return [token.lower() for token in tokens if token]


class RecordStore(Protocol):
    """History persistence used after successful pipeline runs."""

    def append_query_record(self, record: QueryRecord) -> QueryRecord:
        """Persist a query record and return it with assigned id and timestamp."""

    def append_podcast_record(self, record: PodcastRecord) -> PodcastRecord:
        """Persist a podcast record and return it with assigned id and timestamp."""

    def list_query_records(self, page: int = 1, page_size: int = 20) -> list[QueryRecord]:
        """Return one page of query records, newest first."""

    def list_podcast_records(self, page: int = 1, page_size: int = 20) -> list[PodcastRecord]:
        """Return one page of podcast records, newest first."""


class JsonlRecordStore:
    """Append-only JSON-lines history store.

    Each line is one object with a `kind` of `query` or `podcast`. Lines
    that cannot be decoded, such as a record cut short by a crash, are
    logged and skipped; later appends start on a fresh line.
    """

    def __init__(self, path: Path, *, run_logger: RunLogger | None = None) -> None:
        """Initialize the store with the backing file path."""

        self.path = path
        self._run_logger = run_logger or RunLogger()
        self._lock = threading.Lock()
        self._last_id: int | None = None

    def append_query_record(self, record: QueryRecord) -> QueryRecord:
        """Persist a query record."""

        with self._lock:
            stored = QueryRecord(
                input_text=record.input_text,
                source=record.source,
                detected_language=record.detected_language,
                analysis_result=record.analysis_result,
                created_at=record.created_at or self._timestamp(),
                id=self._next_id(),
            )
            self._append({"kind": "query", **asdict(stored)})
        return stored

    def append_podcast_record(self, record: PodcastRecord) -> PodcastRecord:
        """Persist a podcast record."""

        with self._lock:
            stored = PodcastRecord(
                input_content=record.input_content,
                source=record.source,
                speed_mode=record.speed_mode,
                podcast_mode=record.podcast_mode,
                audio_file_path=record.audio_file_path,
                duration_seconds=record.duration_seconds,
                created_at=record.created_at or self._timestamp(),
                id=self._next_id(),
            )
            payload = asdict(stored)
            payload["source"] = stored.source.value
            payload["speed_mode"] = stored.speed_mode.value
            payload["podcast_mode"] = stored.podcast_mode.value
            self._append({"kind": "podcast", **payload})
        return stored

    def list_query_records(self, page: int = 1, page_size: int = 20) -> list[QueryRecord]:
        """Return one page of query records, newest first."""

        rows = [row for row in self._read_rows() if row.get("kind") == "query"]
        records = [self._rebuild(self._query_from_row, row) for row in rows]
        return self._page([record for record in records if record is not None], page, page_size)

    def list_podcast_records(self, page: int = 1, page_size: int = 20) -> list[PodcastRecord]:
        """Return one page of podcast records, newest first."""

        rows = [row for row in self._read_rows() if row.get("kind") == "podcast"]
        records = [self._rebuild(self._podcast_from_row, row) for row in rows]
        return self._page([record for record in records if record is not None], page, page_size)

    def frequent_words(self, limit: int = 20) -> list[WordFrequency]:
        """Return the most frequent query tokens, highest count first."""

        counts: Counter[str] = Counter()
        languages: dict[str, str] = {}
        for row in self._read_rows():
            if row.get("kind") != "query":
                continue
            language = row.get("detected_language") or "und"
            for token in tokenize(str(row.get("input_text", ""))):
                counts[token] += 1
                languages.setdefault(token, language)
        return [
            WordFrequency(word=word, count=count, language=languages[word])
            for word, count in counts.most_common(limit)
        ]

    @staticmethod
    def _page(records: list[_RecordT], page: int, page_size: int) -> list[_RecordT]:
        """Slice newest-first records for a 1-based page."""

        if page < 1 or page_size < 1:
            raise ValueError("`page` and `page_size` must be positive integers.")
        newest_first = list(reversed(records))
        start = (page - 1) * page_size
        return newest_first[start : start + page_size]

    def _rebuild(
        self, builder: Callable[[dict[str, Any]], _RecordT], row: dict[str, Any]
    ) -> _RecordT | None:
        """Rebuild one record, skipping rows with missing or invalid fields."""

        try:
            return builder(row)
        except (KeyError, TypeError, ValueError) as exc:
            self._run_logger.log_warning(
                "records", "read", "row_skipped", id=row.get("id"), reason=type(exc).__name__
            )
            return None

    def _read_rows(self) -> list[dict[str, Any]]:
        """Read all decodable rows; a missing file is an empty history."""

        if not self.path.is_file():
            return []
        rows: list[dict[str, Any]] = []
        with self.path.open("r", encoding="utf-8", errors="replace") as handle:
            for line_number, line in enumerate(handle, start=1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    row = json.loads(stripped)
                except json.JSONDecodeError:
                    self._run_logger.log_warning(
                        "records", "read", "line_skipped", line=line_number, reason="undecodable"
                    )
                    continue
                if not isinstance(row, dict):
                    self._run_logger.log_warning(
                        "records", "read", "line_skipped", line=line_number, reason="not_object"
                    )
                    continue
                rows.append(row)
        return rows

    def _append(self, payload: dict[str, Any]) -> None:
        """Append one JSON line, terminating a previously cut-off line first."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(payload, ensure_ascii=False, sort_keys=True) + "\n"
        with self.path.open("ab") as handle:
            if handle.tell() > 0 and not self._ends_with_newline():
                handle.write(b"\n")
            handle.write(line.encode("utf-8"))

    def _ends_with_newline(self) -> bool:
        """Return whether the backing file ends with a line terminator."""

        with self.path.open("rb") as handle:
            handle.seek(-1, os.SEEK_END)
            return handle.read(1) == b"\n"

    def _next_id(self) -> int:
        """Return the next record id from the in-memory counter.

        The counter is seeded once from the highest stored id.
        """

        if self._last_id is None:
            ids = [row.get("id") for row in self._read_rows()]
            self._last_id = max((value for value in ids if isinstance(value, int)), default=0)
        self._last_id += 1
        return self._last_id

    @staticmethod
    def _timestamp() -> str:
        """Return an ISO-8601 local timestamp."""

        return datetime.now().isoformat(timespec="seconds")

    @staticmethod
    def _query_from_row(row: dict[str, Any]) -> QueryRecord:
        """Rebuild a query record from one stored row."""

        return QueryRecord(
            input_text=row["input_text"],
            source=row["source"],
            detected_language=row.get("detected_language"),
            analysis_result=row["analysis_result"],
            created_at=row.get("created_at", ""),
            id=row.get("id"),
        )

    @staticmethod
    def _podcast_from_row(row: dict[str, Any]) -> PodcastRecord:
        """Rebuild a podcast record from one stored row."""

        return PodcastRecord(
            input_content=row["input_content"],
            source=PodcastSource(row["source"]),
            speed_mode=SpeedMode(row["speed_mode"]),
            podcast_mode=PodcastMode(row["podcast_mode"]),
            audio_file_path=row["audio_file_path"],
            duration_seconds=row.get("duration_seconds"),
            created_at=row.get("created_at", ""),
            id=row.get("id"),
        )
