"""
Thread-pool fan-out for per-waveform work units.

Every unit is independent and shares only read-only configuration, so a
plain ``ThreadPool.map`` is enough; numpy/scipy release the GIL inside the
heavy numerical calls.
"""

import logging
import os
from multiprocessing.pool import ThreadPool

logger = logging.getLogger(__name__)


def default_workers():
    return os.cpu_count() or 1


def parallel_map(func, items, n_workers=None):
    """
    Apply ``func`` to every item, in parallel when more than one worker.

    Parameters
    ----------
    func : callable
        Unit of work; must not mutate shared state
    items : iterable
        Work units
    n_workers : int, optional
        Pool size. ``1`` runs sequentially; ``None`` uses the CPU count.

    Returns
    -------
    results : list
        One result per item, in input order
    """
    items = list(items)
    if not items:
        return []

    n_workers = n_workers or default_workers()
    n_workers = min(n_workers, len(items))

    if n_workers == 1:
        return [func(item) for item in items]

    logger.debug(f"Dispatching {len(items)} units to {n_workers} threads")
    with ThreadPool(n_workers) as pool:
        results = pool.map(func, items)
    return results
