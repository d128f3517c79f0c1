"""Decode EPContext nodes back into context blobs and hand them to a backend.

Load protocol for a graph whose partitions all carry EPContext nodes:

1. :func:`find_main_partitions` collects the session mains.
2. :func:`select_max_spill_fill` picks the worst-case scratch size and moves
   its owner to the front.
3. Each main is decoded in that order with the session-wide size.

Failures reported by the backend are always re-raised as
:class:`InvalidGraph`; callers rely on that kind to tell a stale or
incompatible cache from other faults.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Union

import onnx

from ._types import ContextBlob, Partition
from .backend import ContextBackend
from .constants import CACHE_PAYLOAD, EMBED_MODE, EPCONTEXT_OP, MAX_SCRATCH_SIZE
from .errors import BackendLoadFailed, CacheIoError, EmptyCacheFile, InvalidGraph, MalformedPartition
from .partitions import find_main_partitions, get_bytes_attr, get_int_attr, get_str_attr, single_context_node
from .paths import require_regular_file, resolve_cache_path
from .spill_fill import select_max_spill_fill

log = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def _read_cache_file(path: Path) -> bytes:
    try:
        size = path.stat().st_size
    except OSError as e:
        raise CacheIoError(f"Failed to open cache file: {path}: {e}") from e
    if size == 0:
        raise EmptyCacheFile(f"Empty cache file encountered: {path}")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise CacheIoError(f"Failed to read contents from cached context file: {path}: {e}") from e
    if not data:
        raise EmptyCacheFile(f"Empty cache file encountered: {path}")
    return data


def read_context_blob(node: onnx.NodeProto, model_base_dir: PathLike) -> ContextBlob:
    """Extract the blob carried (or referenced) by one EPContext node."""
    if node.op_type != EPCONTEXT_OP:
        raise MalformedPartition(f"Node {node.name!r} is a {node.op_type!r} node, not {EPCONTEXT_OP}.")

    # Any non-zero embed_mode means the payload is inline.
    if get_int_attr(node, EMBED_MODE, 1) != 0:
        payload = get_bytes_attr(node, CACHE_PAYLOAD, b"")
        log.debug("Node %s: embedded context blob (%d bytes)", node.name, len(payload))
        return ContextBlob(data=payload, name=node.name)

    ref = get_str_attr(node, CACHE_PAYLOAD, "")
    path = require_regular_file(resolve_cache_path(model_base_dir, ref))
    data = _read_cache_file(path)
    log.info("Node %s: read context blob from %s (%d bytes)", node.name, path, len(data))
    return ContextBlob(data=data, name=node.name)


def decode_one(
    node: onnx.NodeProto,
    model_base_dir: PathLike,
    backend: ContextBackend,
    max_spill_fill_size: Optional[int] = None,
) -> ContextBlob:
    """Read one node's blob and load it into ``backend``.

    When ``max_spill_fill_size`` is None the node's own declared scratch size
    is passed on.
    """
    blob = read_context_blob(node, model_base_dir)
    if max_spill_fill_size is None:
        max_spill_fill_size = get_int_attr(node, MAX_SCRATCH_SIZE, 0)

    try:
        backend.load_context(blob, int(max_spill_fill_size))
    except Exception as e:
        failure = BackendLoadFailed(f"Backend rejected context blob {blob.name!r}: {e}")
        failure.__cause__ = e
        log.error("Failed to load from EpContext model. %s", failure)
        raise InvalidGraph(f"Failed to load from EpContext model. {failure}") from failure
    return blob


def decode_partition(
    partition: Partition,
    model_base_dir: PathLike,
    backend: ContextBackend,
    max_spill_fill_size: Optional[int] = None,
) -> ContextBlob:
    node = single_context_node(partition)
    return decode_one(node, model_base_dir, backend, max_spill_fill_size)


def load_context_partitions(
    partitions: Sequence[Partition],
    model_path: PathLike,
    backend: ContextBackend,
) -> List[str]:
    """Load every session main of a context model, largest scratch user first.

    Returns the names of the loaded nodes in load order.
    """
    base_dir = os.path.dirname(os.path.abspath(model_path))
    mains = find_main_partitions(partitions)
    max_size, ordered = select_max_spill_fill(partitions, mains)

    loaded: List[str] = []
    for index in ordered:
        blob = decode_partition(partitions[index], base_dir, backend, max_size)
        loaded.append(blob.name)
    log.info("Loaded %d context(s) from %s (max spill-fill %d)", len(loaded), model_path, max_size)
    return loaded
