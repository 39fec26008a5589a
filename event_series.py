"""
Series aggregation — one extractor fanned out over a collection of runs.

A series is a set of simulation runs sharing one configuration, indexed by
run ID.  ``event_series_from`` applies an extractor to every run's lines
independently and returns a ``RunSeries`` mapping run ID → table, always
iterated in ascending run ID order.

Usage::

    logs = {1: lines_run_1, 2: lines_run_2}
    weights = event_series_from(logs, learning_events)
    for run_id, table in weights.items():    # 1, then 2
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping as MappingT,
    Optional,
    Sequence,
    Tuple,
)

from spikes_config import SeriesConfig
from spikes_errors import SpikesParseError

logger = logging.getLogger("spikes.series")

Extractor = Callable[[Sequence[str]], Any]


class RunSeries(Mapping):
    """Read-only mapping of run ID → table, iterated by ascending run ID."""

    def __init__(self, tables: Optional[MappingT[int, Any]] = None) -> None:
        self._tables: Dict[int, Any] = dict(tables or {})

    def __getitem__(self, run_id: int) -> Any:
        return self._tables[run_id]

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._tables))

    def __len__(self) -> int:
        return len(self._tables)

    def __repr__(self) -> str:
        return f"RunSeries(runs={list(self)})"

    @property
    def run_ids(self) -> List[int]:
        return list(self)

    def non_empty(self) -> "RunSeries":
        """Runs whose table has at least one row."""
        return RunSeries({k: v for k, v in self._tables.items() if len(v) > 0})


class SeriesAggregator:
    """Applies one extractor to every run of a series.

    Runs share nothing but the (stateless) extractor, so with
    ``max_workers > 1`` they are extracted on a thread pool.  Results are
    merged in one place, which checks that each run appears exactly once.

    Args:
        extractor: Callable turning one run's lines into a table, e.g.
            ``spike_events`` or a ``SpikeExtractor`` instance.
        max_workers: Worker threads; ``None`` uses ``config.max_workers``.
        config: Series section of the configuration.
    """

    def __init__(
        self,
        extractor: Extractor,
        max_workers: Optional[int] = None,
        config: Optional[SeriesConfig] = None,
    ) -> None:
        self.extractor = extractor
        cfg = config or SeriesConfig()
        if max_workers is None:
            max_workers = cfg.max_workers
        self.max_workers = max(1, max_workers)

    def aggregate(self, logs: MappingT[int, Sequence[str]]) -> RunSeries:
        """Extract every run in ``logs``.

        Raises:
            SpikesParseError: From the extractor, with ``run_id`` set to the
                run whose log is malformed.
        """
        run_ids = list(logs)
        if self.max_workers > 1 and len(run_ids) > 1:
            workers = min(self.max_workers, len(run_ids))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="spikes-series"
            ) as pool:
                results = list(
                    pool.map(lambda r: self._extract_run(r, logs[r]), run_ids)
                )
        else:
            results = [self._extract_run(r, logs[r]) for r in run_ids]

        series = self._merge(run_ids, results)
        logger.info(
            "Extracted %d runs with %s (%d rows total)",
            len(series),
            getattr(self.extractor, "__name__", repr(self.extractor)),
            sum(len(table) for table in series.values()),
        )
        return series

    def _extract_run(self, run_id: int, lines: Sequence[str]) -> Tuple[int, Any]:
        try:
            return run_id, self.extractor(lines)
        except SpikesParseError as exc:
            exc.run_id = run_id
            raise

    @staticmethod
    def _merge(run_ids: List[int], results: List[Tuple[int, Any]]) -> RunSeries:
        tables: Dict[int, Any] = {}
        for run_id, table in results:
            if run_id in tables:
                raise RuntimeError(f"run {run_id} extracted twice")
            tables[run_id] = table
        missing = set(run_ids) - set(tables)
        if missing:
            raise RuntimeError(f"runs missing from series: {sorted(missing)}")
        return RunSeries(tables)


def event_series_from(
    logs: MappingT[int, Sequence[str]],
    extractor: Extractor,
    max_workers: Optional[int] = None,
    config: Optional[SeriesConfig] = None,
) -> RunSeries:
    """Convert run ID → log lines into run ID → table with ``extractor``.

    ``max_workers`` falls back to ``config.max_workers``, so the ``series``
    section of a loaded ``SpikesConfig`` controls the pool size.

    Example::

        event_series_from(logs, membrane_potential_events)
    """
    return SeriesAggregator(
        extractor, max_workers=max_workers, config=config
    ).aggregate(logs)
