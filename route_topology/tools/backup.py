"""
Backup-before-overwrite for generated JSON files.

Usage:
    with BackupGuard(Path("optimized_routes.json")):
        write_json_atomic(Path("optimized_routes.json"), routes)

If the block raises, the previous file is restored and the exception
propagates. The backup is left on disk after a successful run.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


def default_backup_path(path: Path) -> Path:
    """optimized_routes.json -> optimized_routes.backup.json"""
    return path.with_name(f"{path.stem}.backup{path.suffix}")


def write_json_atomic(path: Path, data: Any) -> int:
    """
    Write JSON through a temporary file and rename it into place.

    Readers never observe a half-written file.

    Returns:
        Size of the written file in bytes.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    return path.stat().st_size


class BackupGuard:
    """Snapshot a file on entry, restore it if the guarded block fails."""

    def __init__(self, path: Path, backup_path: Optional[Path] = None) -> None:
        self.path = path
        self.backup_path = backup_path or default_backup_path(path)
        self.has_backup = False

    def __enter__(self) -> "BackupGuard":
        if self.path.exists():
            shutil.copyfile(self.path, self.backup_path)
            self.has_backup = True
            logger.debug(f"💾 Backed up {self.path} to {self.backup_path}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self.restore()
        return False

    def restore(self) -> bool:
        """Copy this run's backup over the target; False when there is none."""
        if not self.has_backup or not self.backup_path.exists():
            return False
        shutil.copyfile(self.backup_path, self.path)
        logger.warning(f"🔄 Restored {self.path} from {self.backup_path}")
        return True
