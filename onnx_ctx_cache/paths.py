"""Resolve external context-binary references against the model folder.

An EPContext node in external mode stores a file reference relative to the
folder holding the ``.onnx`` file. The reference comes from the model file, so
it is treated as untrusted input:

- absolute references (POSIX root, Windows drive or UNC root) are rejected
- any ``..`` segment is rejected, regardless of what it would normalize to
- both ``/`` and ``\\`` count as separators on every platform

The check runs on a list of logical segments, so the same string is accepted
or rejected identically on every OS.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List, Union

from .errors import CacheFileNotFound, PathNotRelative, PathTraversal

_DRIVE_RE = re.compile(r"^[A-Za-z]:")
_SEP_RE = re.compile(r"[\\/]")


def is_absolute_ref(ref: str) -> bool:
    """True for '/x', '\\x', '//host/share', 'C:\\x' and drive-relative 'C:x'."""
    if not ref:
        return False
    if ref[0] in ("/", "\\"):
        return True
    return bool(_DRIVE_RE.match(ref))


def split_ref_segments(ref: str) -> List[str]:
    """Split a reference into segments, dropping empty and '.' parts."""
    return [s for s in _SEP_RE.split(ref) if s not in ("", ".")]


def resolve_cache_path(base_dir: Union[str, os.PathLike], ref: str) -> Path:
    """Join a relative cache reference onto ``base_dir``.

    Pure path computation: no file is opened or stat'ed.
    """
    if not ref or not ref.strip():
        raise PathNotRelative("The file path in the EPContext cache payload should not be empty.")
    if is_absolute_ref(ref):
        raise PathNotRelative(
            f"External mode requires a relative path in the cache payload, but it is an absolute path: {ref}"
        )

    segments = split_ref_segments(ref)
    if any(s == ".." for s in segments):
        raise PathTraversal(
            f"The file path in the cache payload has '..'. It's not allowed to point outside the directory: {ref}"
        )
    if not segments:
        raise PathNotRelative(f"The file path in the cache payload does not name a file: {ref}")

    base = Path(os.path.abspath(base_dir))
    resolved = base.joinpath(*segments)

    # Second line of defence; unreachable for segment lists without '..'.
    if os.path.commonpath([str(base), str(resolved)]) != str(base):
        raise PathTraversal(f"Cache path escapes the model directory: {ref}")
    return resolved


def require_regular_file(path: Union[str, os.PathLike]) -> Path:
    p = Path(path)
    if not p.is_file():
        raise CacheFileNotFound(f"The file path in the cache payload does not exist or is not accessible: {p}")
    return p
