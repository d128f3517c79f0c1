#!/usr/bin/env python3
"""Convenience entry point.

Re-exports the `onnx_ctx_cache` API and runs its CLI when executed directly.
"""

from onnx_ctx_cache.api import *  # re-export for convenience
from onnx_ctx_cache.cli import main as _main


if __name__ == "__main__":
    raise SystemExit(_main())
