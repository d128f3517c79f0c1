from __future__ import annotations

from pathlib import Path

import pytest

onnx = pytest.importorskip("onnx")
from onnx import TensorProto, helper

from onnx_ctx_cache._types import CompiledModelRecord, ContextBlob, Partition, TensorInfo
from onnx_ctx_cache.config import EncodeOptions
from onnx_ctx_cache.encoder import derive_context_bin_path, encode_session
from onnx_ctx_cache.errors import CacheIoError, MissingQnnModel
from onnx_ctx_cache.partitions import node_attrs
from onnx_ctx_cache.shared_state import SharedBinaryState


def test_embedded_session_stores_payload_on_main_only(tmp_path: Path, chain_session) -> None:
    partitions, models = chain_session("1", 2)
    opts = EncodeOptions(
        output_model_path=tmp_path / "model_ctx.onnx",
        embed_mode=True,
        sdk_version="2.28.0",
        max_spill_fill_size=100,
    )

    out = encode_session(ContextBlob(b"AAAA"), partitions, opts, models)

    assert len(out.nodes) == 2
    main, other = (node_attrs(n) for n in out.nodes)
    assert main["cache_payload"] == b"AAAA"
    assert main["max_scratch_size"] == 100
    assert main["is_main"] == 1
    assert main["embed_mode"] == 1
    assert main["sdk_version"] == b"2.28.0"
    assert main["partition_name"] == b"QNNExecutionProvider_QNN_1_0"
    assert main["source_tag"] == b"QNNExecutionProvider"

    assert other["is_main"] == 0
    assert "cache_payload" not in other
    assert "max_scratch_size" not in other
    assert other["embed_mode"] == 1

    assert out.context_bin_path is None
    assert not list(tmp_path.iterdir())


def test_nodes_carry_partition_io(tmp_path: Path, chain_session) -> None:
    partitions, models = chain_session("1", 2)
    out = encode_session(ContextBlob(b"AAAA"), partitions, EncodeOptions(tmp_path / "m.onnx"), models)

    n0, n1 = out.nodes
    assert (n0.op_type, n0.domain, n0.name) == ("EPContext", "com.microsoft", "QNNExecutionProvider_QNN_1_0")
    assert list(n0.input) == ["1_x"] and list(n0.output) == ["1_t0"]
    assert list(n1.input) == ["1_t0"] and list(n1.output) == ["1_y"]
    assert sorted(out.value_infos) == ["1_t0", "1_x", "1_y"]
    vi = out.value_infos["1_x"]
    assert vi.type.tensor_type.elem_type == TensorProto.FLOAT
    assert [d.dim_value for d in vi.type.tensor_type.shape.dim] == [1, 4]


def test_external_session_writes_bin_next_to_model(tmp_path: Path, chain_session) -> None:
    partitions, models = chain_session("7", 2)
    opts = EncodeOptions(output_model_path=tmp_path / "model_ctx.onnx", embed_mode=False, max_spill_fill_size=32)

    out = encode_session(ContextBlob(b"BLOB"), partitions, opts, models)

    expected = tmp_path / "model_ctx_QNN_7_0.bin"
    assert out.context_bin_path == expected
    assert out.wrote_file
    assert expected.read_bytes() == b"BLOB"
    main = node_attrs(out.nodes[0])
    assert main["cache_payload"] == b"model_ctx_QNN_7_0.bin"
    assert main["embed_mode"] == 0
    assert main["max_scratch_size"] == 32


def test_derive_context_bin_path() -> None:
    assert derive_context_bin_path("/d/model.onnx", "QNNExecutionProvider_QNN_42_1_0") == Path("/d/model_QNN_42_1_0.bin")
    assert derive_context_bin_path("/d/model", "fused_0") == Path("/d/model_fused_0.bin")
    assert derive_context_bin_path("/d.x/m.ctx.onnx", "QNNExecutionProvider_a") == Path("/d.x/m.ctx_a.bin")


def test_sharing_sequence_writes_once_and_clears(tmp_path: Path, chain_session) -> None:
    state = SharedBinaryState()

    parts_a, models_a = chain_session("A", 1)
    first = EncodeOptions(tmp_path / "a.onnx", embed_mode=False, share_binaries=True)
    out_a = encode_session(ContextBlob(b"first"), parts_a, first, models_a, shared_state=state)

    assert state.name == "a_QNN_A_0.bin"
    assert not out_a.wrote_file
    assert not (tmp_path / "a_QNN_A_0.bin").exists()

    parts_b, models_b = chain_session("B", 1)
    last = EncodeOptions(tmp_path / "b.onnx", embed_mode=False, share_binaries=True, is_last_sharing_session=True)
    out_b = encode_session(ContextBlob(b"combined"), parts_b, last, models_b, shared_state=state)

    assert out_b.wrote_file
    assert out_b.context_bin_path == tmp_path / "a_QNN_A_0.bin"
    assert (tmp_path / "a_QNN_A_0.bin").read_bytes() == b"combined"
    assert not (tmp_path / "b_QNN_B_0.bin").exists()
    assert node_attrs(out_a.nodes[0])["cache_payload"] == node_attrs(out_b.nodes[0])["cache_payload"]
    assert not state.active

    # A new sharing sequence starts from scratch.
    parts_c, models_c = chain_session("C", 1)
    encode_session(ContextBlob(b"c"), parts_c, first, models_c, shared_state=state)
    assert state.name == "a_QNN_C_0.bin"


def test_sharing_requires_explicit_state(tmp_path: Path, chain_session) -> None:
    partitions, models = chain_session("1", 1)
    opts = EncodeOptions(tmp_path / "m.onnx", embed_mode=False, share_binaries=True)
    with pytest.raises(ValueError):
        encode_session(ContextBlob(b"x"), partitions, opts, models)


def test_embed_mode_ignores_shared_state(tmp_path: Path, chain_session) -> None:
    state = SharedBinaryState()
    partitions, models = chain_session("1", 1)
    opts = EncodeOptions(tmp_path / "m.onnx", embed_mode=True, share_binaries=True)
    encode_session(ContextBlob(b"x"), partitions, opts, models, shared_state=state)
    assert not state.active


def test_write_failure_is_io_error(tmp_path: Path, chain_session) -> None:
    partitions, models = chain_session("1", 1)
    opts = EncodeOptions(tmp_path / "no_such_dir" / "m.onnx", embed_mode=False)
    with pytest.raises(CacheIoError):
        encode_session(ContextBlob(b"x"), partitions, opts, models)


def test_missing_compiled_model(tmp_path: Path, chain_session) -> None:
    partitions, models = chain_session("1", 2)
    del models[partitions[1].name]
    with pytest.raises(MissingQnnModel):
        encode_session(ContextBlob(b"x"), partitions, EncodeOptions(tmp_path / "m.onnx"), models)


def test_missing_tensor_info(tmp_path: Path) -> None:
    part = Partition(index=0, name="QNNExecutionProvider_QNN_1_0")
    models = {part.name: CompiledModelRecord(input_names=["x"], output_names=["y"], inputs_info={})}
    with pytest.raises(MissingQnnModel):
        encode_session(ContextBlob(b"x"), [part], EncodeOptions(tmp_path / "m.onnx"), models)


def test_no_partitions_is_a_noop(tmp_path: Path) -> None:
    out = encode_session(ContextBlob(b"x"), [], EncodeOptions(tmp_path / "m.onnx", embed_mode=False), {})
    assert out.nodes == []
    assert not list(tmp_path.iterdir())


def test_tensor_info_from_numpy() -> None:
    np = pytest.importorskip("numpy")
    info = TensorInfo.from_numpy(np.float16, (1, 3, 8, 8))
    assert info == TensorInfo(TensorProto.FLOAT16, (1, 3, 8, 8))


def test_context_blob_copies_mutable_buffers() -> None:
    buf = bytearray(b"abc")
    blob = ContextBlob(buf, name="n")
    buf[0] = ord("z")
    assert blob.data == b"abc"
    assert len(blob) == 3


@pytest.mark.parametrize("share", [False, True])
def test_failed_session_leaves_no_file_or_shared_name(tmp_path: Path, chain_session, share: bool) -> None:
    state = SharedBinaryState()
    partitions, models = chain_session("A", 2)
    del models[partitions[1].name]
    opts = EncodeOptions(tmp_path / "a.onnx", embed_mode=False, share_binaries=share, is_last_sharing_session=False)

    with pytest.raises(MissingQnnModel):
        encode_session(ContextBlob(b"x"), partitions, opts, models, shared_state=state)

    assert not state.active
    assert not list(tmp_path.iterdir())


def test_failed_last_write_still_ends_sharing(tmp_path: Path, chain_session) -> None:
    state = SharedBinaryState(name="a_QNN_A_0.bin")
    partitions, models = chain_session("B", 1)
    opts = EncodeOptions(
        tmp_path / "missing" / "b.onnx", embed_mode=False, share_binaries=True, is_last_sharing_session=True
    )
    with pytest.raises(CacheIoError):
        encode_session(ContextBlob(b"x"), partitions, opts, models, shared_state=state)
    assert not state.active
