from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import numpy as np
import onnx
from onnx import helper


@dataclass(frozen=True)
class TensorInfo:
    """Element type + static shape of one partition input/output.

    ``elem_type`` is an ONNX ``TensorProto`` data type enum.
    """

    elem_type: int
    shape: tuple[int, ...] = ()

    @classmethod
    def from_numpy(cls, dtype: Any, shape: Sequence[int]) -> "TensorInfo":
        elem_type = helper.np_dtype_to_tensor_dtype(np.dtype(dtype))
        return cls(elem_type=int(elem_type), shape=tuple(int(d) for d in shape))


@dataclass
class CompiledModelRecord:
    """What the backend compiler reports for one partition."""

    input_names: list[str]
    output_names: list[str]
    inputs_info: dict[str, TensorInfo] = field(default_factory=dict)
    outputs_info: dict[str, TensorInfo] = field(default_factory=dict)


# Partition name -> compile result
CompiledModelTable = Mapping[str, CompiledModelRecord]


@dataclass
class Partition:
    """A post-fusion subgraph.

    After fusion each partition is expected to hold exactly one EPContext
    node; that is checked where it matters, not here.
    """

    index: int
    name: str
    nodes: list[onnx.NodeProto] = field(default_factory=list)
    input_names: list[str] = field(default_factory=list)
    output_names: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ContextBlob:
    """An opaque compiled context binary.

    ``data`` is immutable ``bytes``, so handing a blob to the backend never
    leaves two owners able to mutate the same buffer.
    """

    data: bytes
    name: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            # bytearray / memoryview are copied into an immutable value.
            object.__setattr__(self, "data", bytes(self.data))

    def __len__(self) -> int:
        return len(self.data)
