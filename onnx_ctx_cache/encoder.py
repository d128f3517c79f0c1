"""Encode one compilation session's context blob into EPContext nodes.

All partitions compiled in one session live in a single context binary, so
the payload is stored once, on the first (main) node. The other nodes only
carry identification and ``is_main=0``.

External mode writes the binary next to the output model as
``<model stem>_<partition name without backend tag>.bin``. With binary
sharing enabled, every session of a sharing sequence points at the name
registered by the first one, and only the last session writes the file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import onnx
from onnx import helper

from ._types import CompiledModelRecord, CompiledModelTable, ContextBlob, Partition, TensorInfo
from .config import EncodeOptions
from .constants import (
    BACKEND_TAG,
    CACHE_PAYLOAD,
    CONTEXT_BIN_SUFFIX,
    EMBED_MODE,
    EPCONTEXT_OP,
    IS_MAIN,
    MAX_SCRATCH_SIZE,
    MS_DOMAIN,
    PARTITION_NAME,
    SDK_VERSION,
    SOURCE_TAG,
)
from .errors import CacheIoError, MissingQnnModel
from .shared_state import SharedBinaryState

log = logging.getLogger(__name__)


@dataclass
class EncodedSession:
    """Nodes and tensor declarations produced by one :func:`encode_session` call."""

    nodes: List[onnx.NodeProto] = field(default_factory=list)
    value_infos: Dict[str, onnx.ValueInfoProto] = field(default_factory=dict)
    # External mode only: where the blob lives (or will live, when sharing).
    context_bin_path: Optional[Path] = None
    wrote_file: bool = False


def make_value_infos(
    names: Sequence[str],
    tensor_info_table: Mapping[str, TensorInfo],
    value_infos: Dict[str, onnx.ValueInfoProto],
) -> List[str]:
    """Declare ``names`` in ``value_infos`` (existing declarations are reused)."""
    for name in names:
        if name in value_infos:
            continue
        info = tensor_info_table.get(name)
        if info is None:
            raise MissingQnnModel(f"Tensor name: {name} not found in tensor_info_table")
        value_infos[name] = helper.make_tensor_value_info(name, int(info.elem_type), list(info.shape))
    return list(names)


def derive_context_bin_path(output_model_path: Union[str, os.PathLike], partition_name: str) -> Path:
    """``/dir/model.onnx`` + ``QNNExecutionProvider_QNN_42_1_0`` -> ``/dir/model_QNN_42_1_0.bin``."""
    stem, _ext = os.path.splitext(os.fspath(output_model_path))
    suffix = partition_name.replace(BACKEND_TAG, "", 1)
    if not suffix.startswith("_"):
        suffix = "_" + suffix
    return Path(stem + suffix + CONTEXT_BIN_SUFFIX)


def _lookup_record(models: CompiledModelTable, name: str) -> CompiledModelRecord:
    record = models.get(name)
    if record is None:
        raise MissingQnnModel(f"{name} not exist in QnnModel table.")
    return record


def _write_blob(path: Path, blob: ContextBlob) -> None:
    try:
        with open(path, "wb") as f:
            f.write(blob.data)
    except OSError as e:
        log.error("Failed to create context file %s: %s", path, e)
        raise CacheIoError(f"Failed to open context cache file: {path}: {e}") from e
    log.info("Wrote context binary %s (%d bytes)", path, len(blob))


def _external_payload(
    blob: ContextBlob,
    partition_name: str,
    options: EncodeOptions,
    shared_state: Optional[SharedBinaryState],
    out: EncodedSession,
) -> str:
    """Resolve the blob file name and write it when this session owns the write.

    ``shared_state`` is None unless binary sharing is enabled.
    """
    bin_path = derive_context_bin_path(options.output_model_path, partition_name)
    cache_name = bin_path.name

    if shared_state is not None:
        if not shared_state.active:
            shared_state.register(cache_name)
        else:
            cache_name = shared_state.name or cache_name
            bin_path = bin_path.parent / cache_name
            log.debug("Reusing shared context binary %s", cache_name)

    out.context_bin_path = bin_path
    if shared_state is None:
        _write_blob(bin_path, blob)
        out.wrote_file = True
    elif options.is_last_sharing_session:
        # The sharing sequence ends here, even if the write fails.
        try:
            _write_blob(bin_path, blob)
            out.wrote_file = True
        finally:
            shared_state.reset()
    return cache_name


def encode_session(
    blob: ContextBlob,
    partitions: Sequence[Partition],
    options: EncodeOptions,
    models: CompiledModelTable,
    *,
    shared_state: Optional[SharedBinaryState] = None,
) -> EncodedSession:
    """Create one EPContext node per partition; ``partitions[0]`` is the main.

    Every compiled-model record and tensor declaration is checked before the
    blob file is written or ``shared_state`` is touched, so a failed call
    leaves neither behind.
    """
    if options.share_binaries and shared_state is None:
        raise ValueError("share_binaries requires a SharedBinaryState shared by the sessions")

    out = EncodedSession()
    if not partitions:
        log.warning("encode_session called without partitions; nothing to encode")
        return out

    node_io: List[Tuple[str, List[str], List[str]]] = []
    for partition in partitions:
        record = _lookup_record(models, partition.name)
        inputs = make_value_infos(record.input_names, record.inputs_info, out.value_infos)
        outputs = make_value_infos(record.output_names, record.outputs_info, out.value_infos)
        node_io.append((partition.name, inputs, outputs))

    for pos, (graph_name, inputs, outputs) in enumerate(node_io):
        node = helper.make_node(
            EPCONTEXT_OP,
            inputs,
            outputs,
            name=graph_name,
            domain=MS_DOMAIN,
            doc_string=f"Onnx Qnn context binary cache for graph partition: {graph_name}",
        )

        attrs: Dict[str, object] = {}
        if pos == 0:
            if options.embed_mode:
                attrs[CACHE_PAYLOAD] = blob.data
            else:
                state = shared_state if options.share_binaries else None
                attrs[CACHE_PAYLOAD] = _external_payload(blob, graph_name, options, state, out)
            attrs[IS_MAIN] = 1
            attrs[MAX_SCRATCH_SIZE] = int(options.max_spill_fill_size)
        else:
            attrs[IS_MAIN] = 0
        attrs[EMBED_MODE] = 1 if options.embed_mode else 0
        attrs[SDK_VERSION] = options.sdk_version
        attrs[PARTITION_NAME] = graph_name
        attrs[SOURCE_TAG] = BACKEND_TAG

        node.attribute.extend(helper.make_attribute(k, v) for k, v in attrs.items())
        out.nodes.append(node)
        log.debug("Encoded EPContext node %s (main=%s, embed=%s)", graph_name, pos == 0, options.embed_mode)

    return out
