"""ONNX context-cache helpers.

Encode compiled accelerator context binaries into ``EPContext`` nodes of an
ONNX graph and decode them back on load, so a later session can skip
recompilation.
"""

__version__ = "0.1.0"
