"""
Request-scoped temporary files.

Every pipeline run works inside its own directory named with a fresh
UUID under the configured temp root, so concurrent runs never collide.
The directory and everything left in it are removed when the run ends,
on success and on every failure path.

The final artifact is the only file that outlives the run: ``release``
moves it out of the workspace, and from then on the caller owns it.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger("ecv.workspace")


def new_unique_id() -> str:
    return str(uuid.uuid4())


class RequestWorkspace:
    def __init__(self, root: Path, run_id: Optional[str] = None) -> None:
        self.run_id = run_id or new_unique_id()
        self._root = Path(root)
        self._dir = self._root / self.run_id

    def __enter__(self) -> "RequestWorkspace":
        self._dir.mkdir(parents=True, exist_ok=False)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def path(self, suffix: str, stem: Optional[str] = None) -> Path:
        """A fresh file path inside the workspace."""
        return self._dir / f"{stem or new_unique_id()}{suffix}"

    def release(self, artifact: Path) -> Path:
        """Move ``artifact`` out of the workspace for hand-off."""
        target = self._root / f"{new_unique_id()}{artifact.suffix}"
        shutil.move(str(artifact), str(target))
        return target

    def cleanup(self) -> None:
        if not self._dir.exists():
            return
        try:
            shutil.rmtree(self._dir)
        except OSError:
            logger.warning(
                "workspace_cleanup_failed",
                extra={"run_id": self.run_id, "directory": str(self._dir)},
            )
