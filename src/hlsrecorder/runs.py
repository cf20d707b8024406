"""
Recording runs.

A run maps segment sequence numbers to the files they were saved to. A new
run starts whenever the playlist repeats a sequence number with a different
file, which happens when the broadcaster restarts the stream.
"""

import os
from enum import Enum
from typing import Dict, List, Tuple


DEFAULT_EXTENSION = ".ts"


class RecordOutcome(Enum):
    """What RunTable.record did with a sequence number."""
    DUPLICATE = "duplicate"  # same file already recorded in the current run
    RECORDED = "recorded"
    NEW_RUN = "new_run"      # conflicting file, recorded in a fresh run


class RunTable:
    """Ordered runs of one recording session. Only the poller mutates it."""

    def __init__(self):
        self._runs: List[Dict[int, str]] = [{}]

    @property
    def current_index(self) -> int:
        return len(self._runs) - 1

    @property
    def runs(self) -> List[Dict[int, str]]:
        return [dict(run) for run in self._runs]

    def __len__(self) -> int:
        return len(self._runs)

    def is_duplicate(self, sequence_number: int, path: str) -> bool:
        return self._runs[-1].get(sequence_number) == path

    def record(self, sequence_number: int, path: str) -> RecordOutcome:
        current = self._runs[-1]
        existing = current.get(sequence_number)
        if existing == path:
            return RecordOutcome.DUPLICATE

        outcome = RecordOutcome.RECORDED
        if existing is not None:
            self._runs.append({})
            outcome = RecordOutcome.NEW_RUN

        self._runs[-1][sequence_number] = path
        return outcome


def assemble_runs(table: RunTable) -> List[List[str]]:
    """File paths of every run, ordered by sequence number."""
    return [
        [run[seq] for seq in sorted(run)]
        for run in table.runs
    ]


def split_file_name(file_name: str) -> Tuple[str, str]:
    """Split a requested file name into base name and extension, defaulting to .ts."""
    base, ext = os.path.splitext(file_name)
    return base, ext or DEFAULT_EXTENSION


def run_file_names(file_name: str, run_count: int) -> List[str]:
    """
    Upload names for the runs of a session.

    A single run keeps the requested name; several runs get a 1-based
    "_<n>" suffix before the extension.
    """
    base, ext = split_file_name(file_name)
    if run_count == 1:
        return [f"{base}{ext}"]
    return [f"{base}_{run_no + 1}{ext}" for run_no in range(run_count)]
