"""Spill-fill (shared scratch/overlap memory) size negotiation.

Every compilation session recorded in a graph declares the scratch memory it
needs on its main node. The backend allocates one shared region for all of
them, so it must be sized to the worst case, and the session that needs the
most has to be loaded first.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from ._types import Partition
from .constants import MAX_SCRATCH_SIZE
from .partitions import get_int_attr, single_context_node

log = logging.getLogger(__name__)


def select_max_spill_fill(
    partitions: Sequence[Partition],
    main_indices: Sequence[int],
) -> Tuple[int, List[int]]:
    """Return ``(max_size, reordered_main_indices)``.

    The entry holding the maximum is swapped to the front of a copy of
    ``main_indices``. Ties keep the first one encountered. All sizes being 0
    (or absent) is valid and returns ``(0, main_indices)``.
    """
    reordered = list(main_indices)
    max_size = 0
    max_pos = 0
    for pos, index in enumerate(reordered):
        node = single_context_node(partitions[index])
        size = get_int_attr(node, MAX_SCRATCH_SIZE, 0)
        if size > max_size:
            max_size = size
            max_pos = pos

    if max_pos != 0:
        reordered[0], reordered[max_pos] = reordered[max_pos], reordered[0]

    log.debug("Max spill-fill size %d (main order %s)", max_size, reordered)
    return max_size, reordered
