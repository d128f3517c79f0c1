"""Partition discovery and main-context selection."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import onnx
from onnx import helper

from ._types import Partition
from .constants import ACCEPTED_SOURCE_TAGS, EPCONTEXT_OP, IS_MAIN, SOURCE_TAG
from .errors import MalformedPartition, NoMainContext

log = logging.getLogger(__name__)


def node_attrs(node: onnx.NodeProto) -> Dict[str, Any]:
    return {a.name: helper.get_attribute_value(a) for a in node.attribute}


def _find_attr(node: onnx.NodeProto, key: str) -> Optional[onnx.AttributeProto]:
    for a in node.attribute:
        if a.name == key:
            return a
    return None


def get_node_attr(node: onnx.NodeProto, key: str, default: Any = None) -> Any:
    a = _find_attr(node, key)
    return default if a is None else helper.get_attribute_value(a)


# Typed readers. Attribute values come from the model file, so a wrong type
# or encoding is reported as a malformed node rather than a generic error.

def get_int_attr(node: onnx.NodeProto, key: str, default: int) -> int:
    a = _find_attr(node, key)
    if a is None:
        return int(default)
    if a.type != onnx.AttributeProto.INT:
        raise MalformedPartition(
            f"Node {node.name!r}: attribute {key!r} must be an int, got {onnx.AttributeProto.AttributeType.Name(a.type)}"
        )
    return int(a.i)


def get_bytes_attr(node: onnx.NodeProto, key: str, default: bytes = b"") -> bytes:
    a = _find_attr(node, key)
    if a is None:
        return default
    if a.type != onnx.AttributeProto.STRING:
        raise MalformedPartition(
            f"Node {node.name!r}: attribute {key!r} must be a string, got {onnx.AttributeProto.AttributeType.Name(a.type)}"
        )
    return bytes(a.s)


def get_str_attr(node: onnx.NodeProto, key: str, default: str = "") -> str:
    if _find_attr(node, key) is None:
        return default
    raw = get_bytes_attr(node, key)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedPartition(f"Node {node.name!r}: attribute {key!r} is not valid UTF-8") from e


def is_context_node(node: onnx.NodeProto) -> bool:
    """EPContext node produced by this backend family."""
    if node.op_type != EPCONTEXT_OP:
        return False
    return get_str_attr(node, SOURCE_TAG, "").lower() in ACCEPTED_SOURCE_TAGS


def graph_has_context_node(graph: onnx.GraphProto) -> bool:
    return any(is_context_node(n) for n in graph.node)


def has_context_node(partition: Partition) -> bool:
    return any(is_context_node(n) for n in partition.nodes)


def any_has_context_node(partitions: Iterable[Partition]) -> bool:
    """Fast pre-check before a full cache-load pass."""
    return any(has_context_node(p) for p in partitions)


def single_context_node(partition: Partition) -> onnx.NodeProto:
    """Return the partition's only node, which must be an EPContext node."""
    if len(partition.nodes) != 1:
        raise MalformedPartition(
            f"Partition {partition.index} ({partition.name!r}) should have exactly one EPContext node, "
            f"found {len(partition.nodes)} nodes."
        )
    node = partition.nodes[0]
    if node.op_type != EPCONTEXT_OP:
        raise MalformedPartition(
            f"Partition {partition.index} ({partition.name!r}) holds a {node.op_type!r} node; "
            f"only {EPCONTEXT_OP} nodes are accepted."
        )
    return node


def find_main_partitions(partitions: Sequence[Partition]) -> List[int]:
    """Indices (into ``partitions``) of nodes marked as session main.

    Several mains may accumulate, one per compilation session recorded in
    the graph. A missing ``is_main`` attribute counts as main (schema
    default).
    """
    mains: List[int] = []
    for i, partition in enumerate(partitions):
        node = single_context_node(partition)
        if get_int_attr(node, IS_MAIN, 1) == 1:
            mains.append(i)

    if not mains:
        raise NoMainContext(f"Failed to find the EPContext node with {IS_MAIN}=1")
    if len(mains) > 1:
        log.warning("Found %d main EPContext nodes (one per compilation session): %s", len(mains), mains)
    return mains


def partitions_from_graph(graph: onnx.GraphProto) -> List[Partition]:
    """One partition per EPContext node, in graph order.

    Stands in for the fusion step when reading back a saved context model.
    Nodes of other types are skipped.
    """
    out: List[Partition] = []
    for node in graph.node:
        if node.op_type != EPCONTEXT_OP:
            continue
        out.append(
            Partition(
                index=len(out),
                name=node.name,
                nodes=[node],
                input_names=[x for x in node.input if x],
                output_names=[x for x in node.output if x],
            )
        )
    return out


def find_partition(partitions: Sequence[Partition], name: str) -> Optional[Partition]:
    for p in partitions:
        if p.name == name:
            return p
    return None
