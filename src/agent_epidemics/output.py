"""
Results of a completed run and the optional per-step record file.

`SimulationOutput` holds two tables:

- `states`: one row per timestep with columns `susceptible`, `infected`, `recovered`
  (row k is the census after timestep k + 1).
- `positions`: one row per (timestep, agent) with columns `time`, `agent_id`, `x`, `y`,
  `health`.

`RecordSink` is a side channel that writes the same per-step counts to a CSV file
while the run progresses.
"""

import warnings
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from .shared import HEALTH_LABELS

__all__ = ["POSITION_COLUMNS", "RECORD_HEADER", "STATE_COLUMNS", "RecordSink", "ResourceError", "SimulationOutput"]

STATE_COLUMNS = ("susceptible", "infected", "recovered")
POSITION_COLUMNS = ("time", "agent_id", "x", "y", "health")
RECORD_HEADER = "Susceptible,Infected,Recovered"


class ResourceError(OSError):
    """The record file could not be opened or written."""


@dataclass(frozen=True)
class SimulationOutput:
    states: pd.DataFrame
    positions: pd.DataFrame
    n: int
    total_time: int

    @classmethod
    def from_arrays(cls, counts: np.ndarray, time, agent_id, x, y, health, n: int, total_time: int) -> "SimulationOutput":
        """
        Assemble the output tables.

        Args:
            counts (np.ndarray): Shape (total_time, 3), S/I/R per timestep.
            time, agent_id, x, y, health (np.ndarray): Snapshot columns, health as state codes.
            n (int): Population size.
            total_time (int): Number of timesteps.
        """
        states = pd.DataFrame(np.asarray(counts, dtype=np.int64).reshape(-1, 3), columns=list(STATE_COLUMNS))
        positions = pd.DataFrame(
            {
                "time": np.asarray(time, dtype=np.int64),
                "agent_id": np.asarray(agent_id, dtype=np.int64),
                "x": np.asarray(x, dtype=np.float64),
                "y": np.asarray(y, dtype=np.float64),
                "health": pd.Categorical.from_codes(np.asarray(health, dtype=np.int8), categories=list(HEALTH_LABELS)),
            }
        )

        return cls(states=states, positions=positions, n=n, total_time=total_time)

    def positions_at(self, time: int) -> pd.DataFrame:
        """Rows of the positions table for one timestep (1..total_time)."""
        if not 1 <= time <= self.total_time:
            raise ValueError(f"time must be within [1, {self.total_time}], got {time}")
        return self.positions[self.positions.time == time].reset_index(drop=True)

    def to_csv(self, directory, prefix: str = "") -> tuple:
        """Write `states.csv` and `positions.csv` (optionally prefixed) into `directory`."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        states_file = directory / f"{prefix}states.csv"
        positions_file = directory / f"{prefix}positions.csv"
        self.states.to_csv(states_file, index=False)
        self.positions.to_csv(positions_file, index=False)

        return states_file, positions_file


class RecordSink:
    """
    Append-only CSV of per-step S/I/R counts.

    The file is truncated and given a header on entry and closed on exit. A failure
    to open raises `ResourceError`. A failure to write raises `ResourceError` when
    `strict`; otherwise it warns once and later writes are skipped.
    """

    def __init__(self, filename, strict: bool = False) -> None:
        self.filename = Path(filename)
        self.strict = strict
        self.failed = False
        self._file = None

        return

    def __enter__(self):
        try:
            self._file = open(self.filename, "w")  # noqa: SIM115
        except OSError as ex:
            raise ResourceError(f"Cannot open record file '{self.filename}': {ex}") from ex
        self._write(f"{RECORD_HEADER}\n")

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self._file.close()
        except OSError as ex:
            if self.strict and exc_type is None:
                raise ResourceError(f"Cannot close record file '{self.filename}': {ex}") from ex
            warnings.warn(f"Closing record file '{self.filename}' failed: {ex}", stacklevel=2)
        finally:
            self._file = None

        return

    def write(self, counts) -> None:
        self._write(",".join(str(int(c)) for c in counts) + "\n")

        return

    def _write(self, line: str) -> None:
        if self.failed:
            return
        try:
            self._file.write(line)
        except OSError as ex:
            if self.strict:
                raise ResourceError(f"Cannot write to record file '{self.filename}': {ex}") from ex
            self.failed = True
            warnings.warn(f"Writing to record file '{self.filename}' failed, recording stopped: {ex}", stacklevel=3)

        return
