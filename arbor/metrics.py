"""Build metrics for Arbor.

Measures how long each phase of a build takes. Metrics are reporting-only:
nothing in the pipeline depends on them.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


@dataclass
class Metric:
    """A single measurement.

    Attributes:
        name: What is measured (``Load``, ``Render``...).
        details: Extra values, such as the page being rendered.
        elapsed_ms: Duration once stopped.
    """

    name: str
    details: dict[str, Any] = field(default_factory=dict)
    elapsed_ms: float | None = None
    _start: float = field(default_factory=time.perf_counter, repr=False)

    def stop(self) -> None:
        if self.elapsed_ms is None:
            self.elapsed_ms = (time.perf_counter() - self._start) * 1000


class Metrics:
    """Collects metrics of a site build."""

    def __init__(self) -> None:
        self.entries: list[Metric] = []

    def start(self, name: str, details: dict[str, Any] | None = None) -> Metric:
        metric = Metric(name=name, details=dict(details or {}))
        self.entries.append(metric)
        return metric

    def clear(self) -> None:
        self.entries.clear()

    def summary(self) -> dict[str, float]:
        """Total milliseconds by metric name, for stopped metrics."""
        totals: dict[str, float] = {}
        for metric in self.entries:
            if metric.elapsed_ms is None:
                continue
            totals[metric.name] = totals.get(metric.name, 0.0) + metric.elapsed_ms
        return totals

    def print(self) -> None:
        """Log the summary, slowest first."""
        for name, total in sorted(self.summary().items(), key=lambda item: -item[1]):
            log.info("%10.2f ms  %s", total, name)

    def save(self, file: str | Path) -> None:
        """Write every stopped metric to a JSON file."""
        rows = []
        for metric in self.entries:
            if metric.elapsed_ms is None:
                continue
            details = {key: str(value) for key, value in metric.details.items()}
            rows.append(
                {"name": metric.name, "details": details, "ms": metric.elapsed_ms}
            )
        path = Path(file)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(rows, indent=2) + "\n", encoding="utf-8")
