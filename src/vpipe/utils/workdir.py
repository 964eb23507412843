"""Scoped temporary directories for pipeline runs."""

from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)


@contextmanager
def scoped_workdir(base_dir: Path, prefix: str) -> Iterator[Path]:
    """Create a unique directory under base_dir and remove it on every exit path."""
    base_dir.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning("Failed to clean up work dir: %s", path)
