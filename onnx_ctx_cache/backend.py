from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from ._types import ContextBlob


class ContextBackend(Protocol):
    """Backend contract for rehydrating a compiled context.

    Implementations validate the blob's internal format themselves and raise
    on rejection; any exception is treated as a failed load.
    """

    def load_context(self, blob: ContextBlob, max_spill_fill_size: int) -> None: ...


@dataclass
class BlobCaptureBackend:
    """Backend that only keeps the blobs it is handed.

    Used by the CLI to extract cached binaries without an accelerator SDK.
    """

    blobs: dict[str, ContextBlob] = field(default_factory=dict)
    spill_fill_sizes: dict[str, int] = field(default_factory=dict)

    def load_context(self, blob: ContextBlob, max_spill_fill_size: int) -> None:
        self.blobs[blob.name] = blob
        self.spill_fill_sizes[blob.name] = int(max_spill_fill_size)
