"""Packages the staging tree and the run's activity log into one .tar.gz."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
from typing import Optional

from gather.core.errors import ArchiveError

logger = logging.getLogger(__name__)


def _flush_log_handlers() -> None:
    for handler in logging.getLogger().handlers:
        try:
            handler.flush()
        except Exception:
            continue


def _discard_partial(archive_path: str) -> None:
    try:
        os.remove(archive_path)
    except FileNotFoundError:
        return
    except OSError as e:
        logger.warning("Partial archive %s could not be removed: %s", archive_path, e)


def create_archive(staging_root: str, archive_path: str, run_log_path: Optional[str] = None) -> str:
    """
    Write `staging_root` (rooted at its own directory name) plus `run_log_path` as a
    top-level entry into `archive_path`, then delete the staging tree.

    The staging tree is only removed once the archive has been finalized; on any
    archive failure it is left in place and `ArchiveError` is raised.
    """
    staging_root = os.path.abspath(staging_root)
    top = os.path.basename(staging_root)
    logger.info("Creating archive: %s", archive_path)

    try:
        with tarfile.open(archive_path, "w:gz") as tar:
            for dirpath, dirnames, filenames in os.walk(staging_root):
                dirnames.sort()
                rel_dir = os.path.relpath(dirpath, staging_root)
                arc_dir = top if rel_dir == "." else os.path.join(top, rel_dir)
                tar.add(dirpath, arcname=arc_dir, recursive=False)
                for filename in sorted(filenames):
                    tar.add(os.path.join(dirpath, filename), arcname=os.path.join(arc_dir, filename))
            if run_log_path:
                if os.path.isfile(run_log_path):
                    # The log is still being written; this captures it as of now.
                    _flush_log_handlers()
                    tar.add(run_log_path, arcname=os.path.basename(run_log_path))
                else:
                    logger.warning("Activity log %s not found, archive will not include it", run_log_path)
    except (OSError, tarfile.TarError) as e:
        _discard_partial(archive_path)
        raise ArchiveError(f"writing archive {archive_path} failed, staging tree kept at {staging_root}: {e}") from e

    logger.info("Archive created: %s", archive_path)
    try:
        shutil.rmtree(staging_root)
    except OSError as e:
        logger.warning("Archive is complete but staging directory %s could not be removed: %s", staging_root, e)
    else:
        logger.info("Staging directory removed: %s", staging_root)
    return archive_path
