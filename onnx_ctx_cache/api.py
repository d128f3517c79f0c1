"""Public API surface.

Re-exports the functions and types most callers need so they can import a
single module.
"""

from __future__ import annotations

from . import __version__

from ._types import CompiledModelRecord, ContextBlob, Partition, TensorInfo
from .backend import BlobCaptureBackend, ContextBackend
from .config import EncodeOptions, load_options_json, save_options_json
from .decoder import decode_one, decode_partition, load_context_partitions, read_context_blob
from .encoder import EncodedSession, derive_context_bin_path, encode_session
from .errors import (
    BackendLoadFailed,
    CacheFileNotFound,
    CacheIoError,
    CtxCacheError,
    EmptyCacheFile,
    InvalidGraph,
    MalformedPartition,
    MissingQnnModel,
    NoMainContext,
    PathNotRelative,
    PathTraversal,
)
from .model_io import build_context_model, load_context_model, save_context_model
from .partitions import (
    any_has_context_node,
    find_main_partitions,
    graph_has_context_node,
    has_context_node,
    partitions_from_graph,
)
from .paths import require_regular_file, resolve_cache_path
from .shared_state import SharedBinaryState
from .spill_fill import select_max_spill_fill

__all__ = [
    "__version__",
    # types
    "TensorInfo",
    "CompiledModelRecord",
    "Partition",
    "ContextBlob",
    "ContextBackend",
    "BlobCaptureBackend",
    "SharedBinaryState",
    # config
    "EncodeOptions",
    "load_options_json",
    "save_options_json",
    # paths
    "resolve_cache_path",
    "require_regular_file",
    # scanning
    "has_context_node",
    "any_has_context_node",
    "graph_has_context_node",
    "find_main_partitions",
    "partitions_from_graph",
    "select_max_spill_fill",
    # decode/encode
    "read_context_blob",
    "decode_one",
    "decode_partition",
    "load_context_partitions",
    "EncodedSession",
    "derive_context_bin_path",
    "encode_session",
    # model io
    "build_context_model",
    "save_context_model",
    "load_context_model",
    # errors
    "CtxCacheError",
    "MalformedPartition",
    "NoMainContext",
    "PathNotRelative",
    "PathTraversal",
    "CacheFileNotFound",
    "EmptyCacheFile",
    "CacheIoError",
    "MissingQnnModel",
    "BackendLoadFailed",
    "InvalidGraph",
]
