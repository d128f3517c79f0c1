from __future__ import annotations

from typing import Callable, Optional

import pytest
from onnx import TensorProto

from onnx_ctx_cache._types import CompiledModelRecord, ContextBlob, Partition, TensorInfo


class RecordingBackend:
    """Fake backend: remembers what it was asked to load, optionally fails."""

    def __init__(self, fail_with: Optional[Exception] = None) -> None:
        self.fail_with = fail_with
        self.calls: list[tuple[str, bytes, int]] = []

    def load_context(self, blob: ContextBlob, max_spill_fill_size: int) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append((blob.name, blob.data, max_spill_fill_size))


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def failing_backend() -> RecordingBackend:
    return RecordingBackend(fail_with=RuntimeError("bad context binary"))


@pytest.fixture
def chain_session() -> Callable[[str, int], tuple[list[Partition], dict[str, CompiledModelRecord]]]:
    """Build ``n`` chained partitions ``x -> t0 -> t1 ... -> y`` plus their compile records.

    Partition names follow the EP naming: ``QNNExecutionProvider_QNN_<tag>_<i>``.
    """

    def _make(tag: str = "1", n: int = 2):
        info = TensorInfo(TensorProto.FLOAT, (1, 4))
        names = [f"{tag}_x"] + [f"{tag}_t{i}" for i in range(n - 1)] + [f"{tag}_y"]
        partitions: list[Partition] = []
        models: dict[str, CompiledModelRecord] = {}
        for i in range(n):
            name = f"QNNExecutionProvider_QNN_{tag}_{i}"
            partitions.append(Partition(index=i, name=name, input_names=[names[i]], output_names=[names[i + 1]]))
            models[name] = CompiledModelRecord(
                input_names=[names[i]],
                output_names=[names[i + 1]],
                inputs_info={names[i]: info},
                outputs_info={names[i + 1]: info},
            )
        return partitions, models

    return _make
