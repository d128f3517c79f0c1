"""Assemble encoded sessions into a context model and read it back."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Tuple, Union

import onnx
from onnx import helper

from ._types import Partition
from .constants import MS_DOMAIN
from .encoder import EncodedSession
from .partitions import partitions_from_graph

log = logging.getLogger(__name__)

DEFAULT_OPSET = 17


def build_context_model(
    sessions: Iterable[EncodedSession],
    *,
    graph_name: str = "ctx_model",
    opset: int = DEFAULT_OPSET,
    producer_name: str = "onnx_ctx_cache",
) -> onnx.ModelProto:
    """Put the nodes of all sessions into one graph.

    Graph inputs are tensors consumed but never produced; graph outputs are
    tensors produced but never consumed.
    """
    nodes: List[onnx.NodeProto] = []
    value_infos = {}
    for sess in sessions:
        nodes.extend(sess.nodes)
        for name, vi in sess.value_infos.items():
            value_infos.setdefault(name, vi)

    produced = {o for n in nodes for o in n.output if o}
    consumed = {i for n in nodes for i in n.input if i}

    def _ordered(names: Iterable[str]) -> List[str]:
        seen: List[str] = []
        for name in names:
            if name not in seen:
                seen.append(name)
        return seen

    input_names = _ordered(i for n in nodes for i in n.input if i and i not in produced)
    output_names = _ordered(o for n in nodes for o in n.output if o and o not in consumed)
    inner = [n for n in value_infos if n in produced and n in consumed]

    graph = helper.make_graph(
        nodes,
        graph_name,
        [value_infos[n] for n in input_names],
        [value_infos[n] for n in output_names],
        value_info=[value_infos[n] for n in inner],
    )
    model = helper.make_model(
        graph,
        producer_name=producer_name,
        opset_imports=[helper.make_opsetid("", opset), helper.make_opsetid(MS_DOMAIN, 1)],
    )
    return model


def save_context_model(model: onnx.ModelProto, path: Union[str, os.PathLike]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    onnx.save(model, str(path))
    log.info("Saved context model %s (%d EPContext node(s))", path, len(model.graph.node))
    return path


def load_context_model(path: Union[str, os.PathLike]) -> Tuple[onnx.ModelProto, List[Partition]]:
    model = onnx.load(str(path))
    return model, partitions_from_graph(model.graph)
