"""Pack resolved flow files into a zip with stable entry names."""

from __future__ import annotations

import os
import shutil
import tempfile
import zipfile
from collections import Counter
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Sequence

import structlog

from testingbot.core.exceptions import ValidationError

logger = structlog.get_logger(__name__)

ARCHIVE_NAME = "flows.zip"
TEMP_PREFIX = "maestro-"


def _inside(path: str, root: str) -> bool:
    return os.path.commonpath([path, root]) == root


def entry_names(files: Sequence[str], base_dir: Optional[str] = None) -> Dict[str, str]:
    """Map each file to its name inside the archive.

    With a base directory names are relative to it; the base widens to the
    common parent when a dependency lives above it. A widened base moves the
    whole directory below the new root, ``config.yaml`` included, so the
    config stays beside the flows its patterns select. Without one, base names
    are used unless two files share a name, in which case names become
    relative to the files' common parent.
    """
    files = [os.path.abspath(f) for f in files]
    if not files:
        return {}

    root: Optional[str] = None
    if base_dir:
        root = os.path.abspath(base_dir)
        if not all(_inside(f, root) for f in files):
            root = os.path.commonpath([root] + [os.path.dirname(f) for f in files])
            logger.debug("Widened archive base", base_dir=base_dir, root=root)
    else:
        counts = Counter(os.path.basename(f) for f in files)
        if any(n > 1 for n in counts.values()):
            root = os.path.commonpath([os.path.dirname(f) for f in files])

    if root is None:
        names = {f: os.path.basename(f) for f in files}
    else:
        names = {f: os.path.relpath(f, root).replace(os.sep, "/") for f in files}

    if len(set(names.values())) != len(names):
        raise ValidationError("Flow files collide on the same archive name")
    return names


class ArchiveBuilder:
    """Build flow archives in private temporary directories."""

    def __init__(self, compresslevel: int = 9) -> None:
        self.compresslevel = compresslevel

    def build(self, files: Sequence[str], base_dir: Optional[str] = None) -> str:
        """Write ``files`` to a new zip and return its path.

        The caller owns the returned file; :meth:`cleanup` removes it along
        with its temporary directory.
        """
        names = entry_names(files, base_dir)
        tmp_dir = tempfile.mkdtemp(prefix=TEMP_PREFIX)
        archive_path = os.path.join(tmp_dir, ARCHIVE_NAME)
        try:
            with zipfile.ZipFile(
                archive_path,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compresslevel,
            ) as archive:
                for path, name in names.items():
                    archive.write(path, arcname=name)
        except BaseException:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            raise

        logger.debug("Built flow archive", path=archive_path, entries=len(names))
        return archive_path

    @staticmethod
    def cleanup(archive_path: str) -> None:
        tmp_dir = os.path.dirname(archive_path)
        if os.path.basename(tmp_dir).startswith(TEMP_PREFIX):
            shutil.rmtree(tmp_dir, ignore_errors=True)
        else:
            try:
                os.unlink(archive_path)
            except FileNotFoundError:
                pass

    @contextmanager
    def bundle(
        self, files: Sequence[str], base_dir: Optional[str] = None
    ) -> Iterator[str]:
        """Yield a temporary archive that is removed on exit, success or failure."""
        archive_path = self.build(files, base_dir)
        try:
            yield archive_path
        finally:
            self.cleanup(archive_path)
