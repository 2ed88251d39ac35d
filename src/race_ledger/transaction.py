"""All-or-nothing execution across one or more ledger records."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator
from contextlib import contextmanager

log = logging.getLogger(__name__)


@contextmanager
def atomic(*records: object) -> Iterator[None]:
    """Roll every tracked record back to its entry state if the block raises.

    Records keep their identity: state is restored in place, and references
    between tracked records (a session holding an attached prize, a recipient
    holding its slots) still point at the same objects afterwards.
    """
    tracked = list({id(r): r for r in records if r is not None}.values())
    shared = {id(r): r for r in tracked}
    saved = [(r, copy.deepcopy(vars(r), dict(shared))) for r in tracked]
    try:
        yield
    except BaseException:
        for record, state in saved:
            vars(record).clear()
            vars(record).update(state)
        log.debug("Rolled back %d record(s)", len(saved))
        raise
