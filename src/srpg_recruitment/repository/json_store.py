"""JSON-based repository for the recruited-character roster."""

from __future__ import annotations

from pathlib import Path

from pydantic import TypeAdapter

from srpg_recruitment.domain.models import RosterEntry, UnitID


class JsonRosterRepository:
    """Persist the roster as a single JSON snapshot on disk.

    Satisfies :class:`~srpg_recruitment.interfaces.RosterSink`.
    """

    def __init__(self, base_path: Path, filename: str = "roster.json") -> None:
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.path = self.base_path / filename
        self._adapter: TypeAdapter[list[RosterEntry]] = TypeAdapter(list[RosterEntry])

    def save(self, entries: list[RosterEntry]) -> Path:
        """Serialize the whole roster to disk and return the snapshot path."""

        self.path.write_bytes(self._adapter.dump_json(entries, indent=2))
        return self.path

    def load(self) -> list[RosterEntry]:
        """Load the roster; an absent snapshot is an empty roster."""

        if not self.path.exists():
            return []
        return self._adapter.validate_json(self.path.read_bytes())

    def append(self, entries: list[RosterEntry]) -> None:
        """Add recruits, replacing any earlier entry for the same character."""

        merged = {entry.character_id: entry for entry in self.load()}
        for entry in entries:
            merged[entry.character_id] = entry
        self.save(list(merged.values()))

    def delete(self, character_id: UnitID) -> bool:
        """Remove one character from the roster; returns whether it was present."""

        entries = self.load()
        kept = [entry for entry in entries if entry.character_id != character_id]
        if len(kept) == len(entries):
            return False
        self.save(kept)
        return True
