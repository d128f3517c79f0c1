"""Encode options and their session-option / JSON forms.

Session options follow the ONNX Runtime string key/value convention where
booleans are spelled ``"0"`` / ``"1"``.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

OPT_EMBED_MODE = "ep.context_embed_mode"
OPT_FILE_PATH = "ep.context_file_path"
OPT_SDK_VERSION = "ep.context_sdk_version"
OPT_SHARE = "ep.share_ep_contexts"
OPT_STOP_SHARE = "ep.stop_share_ep_contexts"

SCHEMA_VERSION = 1

_BOOL_FIELDS = ("embed_mode", "share_binaries", "is_last_sharing_session")


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip()
    if s == "1":
        return True
    if s == "0":
        return False
    raise ValueError(f"Option {key} must be '0' or '1', got {value!r}")


@dataclass
class EncodeOptions:
    """How one compilation session is written into a context model."""

    output_model_path: Path
    embed_mode: bool = True
    sdk_version: str = ""
    share_binaries: bool = False
    # Only meaningful when share_binaries is set.
    is_last_sharing_session: bool = False
    max_spill_fill_size: int = 0

    def __post_init__(self) -> None:
        self.output_model_path = Path(self.output_model_path)
        if self.max_spill_fill_size < 0:
            raise ValueError(f"max_spill_fill_size must be >= 0, got {self.max_spill_fill_size}")

    @classmethod
    def from_session_options(
        cls,
        opts: Mapping[str, Any],
        *,
        default_model_path: Optional[Union[str, os.PathLike]] = None,
        max_spill_fill_size: int = 0,
    ) -> "EncodeOptions":
        path = opts.get(OPT_FILE_PATH) or default_model_path
        if not path:
            raise ValueError(f"Session option {OPT_FILE_PATH} is required when no model path is given")
        return cls(
            output_model_path=Path(path),
            embed_mode=_parse_bool(OPT_EMBED_MODE, opts.get(OPT_EMBED_MODE, "1")),
            sdk_version=str(opts.get(OPT_SDK_VERSION, "")),
            share_binaries=_parse_bool(OPT_SHARE, opts.get(OPT_SHARE, "0")),
            is_last_sharing_session=_parse_bool(OPT_STOP_SHARE, opts.get(OPT_STOP_SHARE, "0")),
            max_spill_fill_size=int(max_spill_fill_size),
        )

    def to_session_options(self) -> Dict[str, str]:
        return {
            OPT_EMBED_MODE: "1" if self.embed_mode else "0",
            OPT_FILE_PATH: str(self.output_model_path),
            OPT_SDK_VERSION: self.sdk_version,
            OPT_SHARE: "1" if self.share_binaries else "0",
            OPT_STOP_SHARE: "1" if self.is_last_sharing_session else "0",
        }


def save_options_json(options: EncodeOptions, path: Union[str, os.PathLike]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = asdict(options)
    payload["output_model_path"] = str(options.output_model_path)
    payload["schema_version"] = SCHEMA_VERSION

    # Atomic write
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp, path)


def load_options_json(path: Union[str, os.PathLike]) -> EncodeOptions:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: options root is not an object")
    version = data.pop("schema_version", SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        raise ValueError(f"{path}: unsupported schema_version={version!r}")
    known = {f.name for f in fields(EncodeOptions)}
    # Unknown keys are ignored so newer files still load.
    kwargs = {k: v for k, v in data.items() if k in known}
    for key in _BOOL_FIELDS:
        if key in kwargs:
            kwargs[key] = _parse_bool(key, kwargs[key])
    if "max_spill_fill_size" in kwargs:
        kwargs["max_spill_fill_size"] = int(kwargs["max_spill_fill_size"])
    return EncodeOptions(**kwargs)
