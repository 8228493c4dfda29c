"""Diagnostics sinks for gradient and Jacobian passes.

A sink is any object with ``on_step(step, metrics)`` or a plain callable
taking the same arguments. Nothing here is global: callers pass the sinks
they want to the operation they run.
"""

from __future__ import annotations

import csv
import json
import subprocess
from pathlib import Path
from typing import Mapping, Sequence


def _git_sha() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode().strip()
    except Exception:  # pragma: no cover - git may be unavailable in tests
        return "unknown"


def emit(callbacks: Sequence[object], step: int, metrics: Mapping[str, float]) -> None:
    """Forward ``metrics`` to every sink in ``callbacks``."""

    for callback in callbacks:
        if hasattr(callback, "on_step"):
            callback.on_step(step, metrics)  # type: ignore[attr-defined]
        elif callable(callback):
            callback(step, metrics)


class JsonlSink:
    """Append-only JSONL writer for metrics."""

    def __init__(
        self,
        path: str | Path,
        *,
        label: str = "jacobian",
        sha: str | None = None,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.label = label
        self.sha = sha or _git_sha()

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        record = {"step": int(step), "label": self.label, "sha": self.sha}
        record.update({k: float(v) for k, v in metrics.items() if isinstance(v, (int, float))})
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    __call__ = on_step


class CsvSink:
    """Write metrics to CSV with a stable schema."""

    def __init__(self, path: str | Path, *, label: str = "jacobian") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.label = label

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        row = {"step": int(step), "label": self.label}
        row.update({k: float(v) for k, v in metrics.items() if isinstance(v, (int, float))})
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=sorted(row.keys()))
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    __call__ = on_step


class MemorySink:
    """Keep every emitted record in memory."""

    def __init__(self) -> None:
        self.history: list[tuple[int, dict[str, float]]] = []

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        self.history.append((int(step), {k: float(v) for k, v in metrics.items()}))

    @property
    def last(self) -> dict[str, float]:
        return self.history[-1][1] if self.history else {}


__all__ = ["CsvSink", "JsonlSink", "MemorySink", "emit"]
