"""Directory tree creation for folder create commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from pkg_folder_create.commands.params import CommandParams

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DirectoryBuildResult:
    """Outcome of one directory build, including how far the walk got."""

    success: bool
    root: Path
    path_reached: Path | None = None
    created: list[Path] = field(default_factory=list)
    error: str | None = None


def build_directory(
    *,
    perspective: str,
    params: CommandParams,
    source: str,
) -> DirectoryBuildResult:
    """Create the directory described by ``params`` one segment at a time.

    The root selected by ``perspective`` must already exist. Directories that
    already exist are accepted; a failed ``mkdir`` stops the walk and leaves
    the segments created so far in place.
    """

    logger.info("Processing command for package %s (Source = %s)", params.package, source)

    root = Path(params.root_for(perspective))
    try:
        root_found = bool(params.root_for(perspective)) and root.is_dir()
    except OSError as error:
        message = f"Exception checking root directory {root}: {error}"
        logger.error(message)
        return DirectoryBuildResult(success=False, root=root, error=message)
    if not root_found:
        message = f"Root directory {root} not found"
        logger.error(message)
        return DirectoryBuildResult(success=False, root=root, error=message)

    result = DirectoryBuildResult(success=True, root=root, path_reached=root)
    segments = params.segments()
    current = root
    for index, segment in enumerate(segments):
        current = current / segment
        is_last = index == len(segments) - 1
        try:
            if current.is_dir():
                if is_last:
                    logger.info("Directory %s already exists", current)
                else:
                    logger.debug("Directory %s already exists", current)
                result.path_reached = current
                continue
            current.mkdir()
        except OSError as error:
            message = f"Exception creating directory {current}: {error}"
            logger.error(message)
            result.success = False
            result.error = message
            return result

        logger.info("Directory %s created", current)
        result.created.append(current)
        result.path_reached = current

    return result
