"""Persistence adapters for the recruitment engine."""

from srpg_recruitment.repository.json_store import JsonRosterRepository

__all__ = ["JsonRosterRepository"]
