"""Command line interface for inspecting and extracting context models."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .backend import BlobCaptureBackend
from .constants import CACHE_PAYLOAD, EMBED_MODE, IS_MAIN, MAX_SCRATCH_SIZE, SDK_VERSION, SOURCE_TAG
from .decoder import decode_partition
from .errors import CtxCacheError
from .model_io import load_context_model
from .partitions import (
    find_main_partitions,
    find_partition,
    get_bytes_attr,
    get_int_attr,
    get_node_attr,
    get_str_attr,
    is_context_node,
)
from .spill_fill import select_max_spill_fill


def _payload_summary(node) -> str:
    if get_int_attr(node, EMBED_MODE, 1) != 0:
        if get_node_attr(node, CACHE_PAYLOAD, None) is None:
            return "-"
        return f"<embedded {len(get_bytes_attr(node, CACHE_PAYLOAD))} bytes>"
    return get_str_attr(node, CACHE_PAYLOAD, "-") or "-"


def _cmd_inspect(args: argparse.Namespace) -> int:
    _model, partitions = load_context_model(args.model)
    if not partitions:
        print("No EPContext nodes found.")
        return 0

    print(f"{'#':>3}  {'main':>4}  {'embed':>5}  {'scratch':>10}  {'source':<22} name / payload")
    for p in partitions:
        node = p.nodes[0]
        tag = get_str_attr(node, SOURCE_TAG, "")
        if not is_context_node(node):
            tag += " (foreign)"
        print(
            f"{p.index:>3}  {get_int_attr(node, IS_MAIN, 1):>4}  {int(get_int_attr(node, EMBED_MODE, 1) != 0):>5}  "
            f"{get_int_attr(node, MAX_SCRATCH_SIZE, 0):>10}  {tag:<22} {p.name}  {_payload_summary(node)}"
        )

    mains = find_main_partitions(partitions)
    max_size, ordered = select_max_spill_fill(partitions, mains)
    sdk = get_str_attr(partitions[ordered[0]].nodes[0], SDK_VERSION, "")
    print(f"\nmain partitions (load order): {ordered}")
    print(f"max spill-fill size: {max_size}")
    if sdk:
        print(f"sdk version: {sdk}")
    return 0


def _cmd_extract(args: argparse.Namespace) -> int:
    _model, partitions = load_context_model(args.model)
    if args.partition:
        partition = find_partition(partitions, args.partition)
        if partition is None:
            print(f"No partition named {args.partition!r}", file=sys.stderr)
            return 2
    else:
        partition = partitions[find_main_partitions(partitions)[0]]

    backend = BlobCaptureBackend()
    base_dir = os.path.dirname(os.path.abspath(args.model))
    blob = decode_partition(partition, base_dir, backend)

    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(blob.data)
    print(
        f"Wrote {len(blob)} bytes from {partition.name} to {out} "
        f"(declared spill-fill size {backend.spill_fill_sizes[blob.name]})"
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Inspect ONNX models carrying cached EPContext binaries.")
    ap.add_argument("-v", "--verbose", action="count", default=0)
    sub = ap.add_subparsers(dest="command", required=True)

    ap_inspect = sub.add_parser("inspect", help="List EPContext partitions and the spill-fill selection")
    ap_inspect.add_argument("model", help="Path to the context ONNX model")
    ap_inspect.set_defaults(func=_cmd_inspect)

    ap_extract = sub.add_parser("extract", help="Write one partition's context binary to a file")
    ap_extract.add_argument("model", help="Path to the context ONNX model")
    ap_extract.add_argument("--partition", default=None, help="Partition name (default: first main)")
    ap_extract.add_argument("-o", "--output", required=True, help="Output .bin path")
    ap_extract.set_defaults(func=_cmd_extract)

    args = ap.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        return int(args.func(args))
    except CtxCacheError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
