from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

log = logging.getLogger(__name__)


@dataclass
class SharedBinaryState:
    """Name of the context binary shared by a sequence of encode sessions.

    The caller creates one instance per sharing sequence and passes it to
    every :func:`encode_session` call of that sequence. There is no locking:
    callers must not run two sharing sequences against one instance at once.
    """

    name: Optional[str] = None

    @property
    def active(self) -> bool:
        return bool(self.name)

    def register(self, name: str) -> None:
        if self.name and self.name != name:
            raise RuntimeError(
                f"Shared context binary {self.name!r} is still registered; "
                f"finish that sharing session before starting one for {name!r}"
            )
        log.debug("Registered shared context binary %s", name)
        self.name = name

    def reset(self) -> None:
        log.debug("Cleared shared context binary %s", self.name)
        self.name = None
