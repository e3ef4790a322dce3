"""Parallel compliance runs over one or many entities."""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from check.aggregate import build_report
from check.matcher import LoadedFile, evaluate_rule
from errors import FileReadTimeout
from parse import build_file_facts, extractor_for
from rules.catalog import RuleCatalog
from scan.files import check_root, discover_entities, resolve_entity_files

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from contract.models import Report
    from parse.tokens import TokenPattern
    from scan.files import EntityFileSet

logger = logging.getLogger(__name__)

ALL_ENTITIES = "all"


def load_file(
    root: Path, rel_path: str, patterns: Sequence[TokenPattern]
) -> LoadedFile:
    """Read one file and extract its facts.

    I/O and decoding failures are captured on the returned value; extraction
    failures are recorded on ``FileFacts.structure_error``.
    """
    try:
        source = (root / rel_path).read_bytes().decode("utf-8")
    except UnicodeDecodeError as e:
        return LoadedFile(path=rel_path, error=f"not valid UTF-8: {e.reason}")
    except OSError as e:
        return LoadedFile(path=rel_path, error=e.strerror or str(e))

    facts = build_file_facts(source, rel_path, patterns, extractor_for(rel_path))
    if facts.structure_error is not None:
        logger.debug(
            "Structure unavailable for %s: %s", rel_path, facts.structure_error
        )
    return LoadedFile(path=rel_path, facts=facts)


@dataclass
class _Task:
    layer: str
    path: str
    started: threading.Event
    job: Callable[[], LoadedFile]
    future: Future[LoadedFile] = field(init=False)


@dataclass
class _PendingEntity:
    file_set: EntityFileSet
    tasks: list[_Task]


class _WorkerPool:
    """Thread pool that is swapped out when a read hangs past its timeout.

    A hung read keeps its worker thread busy. Rather than waiting on it, the
    pool it runs in is retired without joining and every task still queued
    there moves to a fresh pool, in submission order.
    """

    def __init__(self, workers: int) -> None:
        self._workers = workers
        self._pool = ThreadPoolExecutor(max_workers=workers)
        self._submitted: list[_Task] = []

    def submit(self, task: _Task) -> None:
        task.future = self._pool.submit(task.job)
        self._submitted.append(task)

    def replace(self) -> None:
        retired = self._pool
        retired.shutdown(wait=False, cancel_futures=True)
        self._pool = ThreadPoolExecutor(max_workers=self._workers)

        submitted, self._submitted = self._submitted, []
        moved = 0
        for task in submitted:
            if task.future.cancelled():
                self.submit(task)
                moved += 1
        logger.debug("Retired a stalled worker pool; %d queued reads moved", moved)

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)


def _submit_entity(
    pool: _WorkerPool,
    catalog: RuleCatalog,
    file_set: EntityFileSet,
) -> _PendingEntity:
    tasks: list[_Task] = []
    for layer, rel_path in sorted(file_set.present.items()):
        if not catalog.rules_for(layer):
            continue
        started = threading.Event()
        patterns = catalog.patterns_for(layer)

        def job(
            rel_path: str = rel_path,
            started: threading.Event = started,
            patterns: tuple[TokenPattern, ...] = patterns,
        ) -> LoadedFile:
            started.set()
            return load_file(file_set.root, rel_path, patterns)

        task = _Task(layer, rel_path, started, job)
        pool.submit(task)
        tasks.append(task)
    return _PendingEntity(file_set=file_set, tasks=tasks)


def _await_file(task: _Task, pool: _WorkerPool, read_timeout: float) -> LoadedFile:
    """Wait for one file; the timeout counts from when its read began.

    Every earlier task has resolved by the time a task is awaited, so one
    that has not started within ``read_timeout`` sits behind hung reads. The
    pool is replaced once to free it; a second miss is a timeout too.
    """
    if not task.started.wait(read_timeout):
        pool.replace()
        if not task.started.wait(read_timeout):
            msg = f"read timed out after {read_timeout:g}s"
            raise FileReadTimeout(msg)

    try:
        return task.future.result(timeout=read_timeout)
    except FuturesTimeout as e:
        pool.replace()
        msg = f"read timed out after {read_timeout:g}s"
        raise FileReadTimeout(msg) from e


def _finish_entity(
    pending: _PendingEntity,
    pool: _WorkerPool,
    catalog: RuleCatalog,
    read_timeout: float,
    generated_at: datetime,
) -> Report:
    loaded: dict[str, LoadedFile] = {}
    for task in pending.tasks:
        try:
            loaded[task.layer] = _await_file(task, pool, read_timeout)
        except FileReadTimeout as e:
            logger.warning("%s: %s", task.path, e)
            loaded[task.layer] = LoadedFile(path=task.path, error=str(e))

    findings = [
        evaluate_rule(rule, pending.file_set, loaded, catalog.graph)
        for rule in catalog.rules
    ]
    report = build_report(
        pending.file_set.entity,
        findings,
        layer_positions=catalog.layer_positions,
        generated_at=generated_at,
    )
    logger.info(
        "%s: %s (%d failed, %d warned)",
        report.entity,
        report.verdict.value,
        report.summary.failed,
        report.summary.warned,
    )
    return report


def check_entities(
    entities: Sequence[str],
    root: Path,
    catalog: RuleCatalog,
    *,
    workers: int,
    read_timeout: float,
    cancel: threading.Event | None = None,
    generated_at: datetime,
) -> list[Report]:
    """Check entities in order and return one Report per finished entity.

    At most ``workers`` entities are in flight at once. ``cancel`` is checked
    before each entity is submitted; entities already submitted still finish
    and entities never submitted produce no Report. A read that exceeds
    ``read_timeout`` is abandoned, so a hung file never holds up the run.
    """
    reports: list[Report] = []
    window: deque[_PendingEntity] = deque()

    pool = _WorkerPool(workers)
    try:
        for entity in entities:
            if cancel is not None and cancel.is_set():
                logger.info(
                    "Cancelled; %d entities not submitted",
                    len(entities) - len(reports) - len(window),
                )
                break
            file_set = resolve_entity_files(entity, root, catalog.layers)
            window.append(_submit_entity(pool, catalog, file_set))
            while len(window) >= workers:
                pending = window.popleft()
                reports.append(
                    _finish_entity(pending, pool, catalog, read_timeout, generated_at)
                )

        while window:
            pending = window.popleft()
            reports.append(
                _finish_entity(pending, pool, catalog, read_timeout, generated_at)
            )
    finally:
        # Reads abandoned after a timeout are not joined.
        pool.close()

    return reports


def run_compliance(
    entity: str | None,
    root: Path | str,
    catalog_path: Path | str | None = None,
    *,
    workers: int | None = None,
    read_timeout: float | None = None,
    cancel: threading.Event | None = None,
    now: datetime | None = None,
    catalog: RuleCatalog | None = None,
) -> list[Report]:
    """Check one entity, or every discovered entity when ``entity`` is None/"all".

    The catalog is loaded (strictly) before any file is read. Reports come
    back in entity order regardless of scheduling.

    Raises:
        ConfigError: If the catalog is invalid.
        DirectoryAccessError: If the root is missing or unreadable.
    """
    root = Path(root)
    if catalog is None:
        catalog = RuleCatalog.load(
            root, Path(catalog_path) if catalog_path is not None else None
        )
    root = check_root(root)

    settings = catalog.settings
    workers = workers if workers is not None else settings.workers
    read_timeout = read_timeout if read_timeout is not None else settings.read_timeout
    if workers < 1:
        msg = f"workers must be >= 1, got {workers}"
        raise ValueError(msg)

    if entity is None or entity == ALL_ENTITIES:
        entities = discover_entities(
            root,
            catalog.layers,
            nested_gitignore=settings.nested_gitignore,
            exclude=settings.exclude_entities,
        )
    else:
        entities = [entity]

    generated_at = now if now is not None else datetime.now(UTC)
    logger.info(
        "Checking %d entities under %s with %d workers", len(entities), root, workers
    )
    return check_entities(
        entities,
        root,
        catalog,
        workers=workers,
        read_timeout=read_timeout,
        cancel=cancel,
        generated_at=generated_at,
    )


__all__ = ["ALL_ENTITIES", "check_entities", "load_file", "run_compliance"]
