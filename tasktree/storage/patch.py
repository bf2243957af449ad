"""Find and find-and-replace over single text files.

Patches never fail as a batch: each one is applied on its own and carries its
outcome (``changed``, ``appended``, ``err``) back to the caller. A pattern that
is not present in the file is appended to the end instead of being reported,
so the same primitive serves both "edit this entry" and "add this entry".
"""

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path

from tasktree.core.errors import FileModifyError, FileReadError, TargetFileNotFoundError

logger = logging.getLogger(__name__)

Pattern = str | re.Pattern[str]


@dataclass
class FilePatch:
    """A single replacement request against one file."""

    file: str | Path
    from_: Pattern
    to: str
    changed: bool = False
    appended: bool = False
    err: Exception | None = None


def _contains(content: str, pattern: Pattern) -> bool:
    if isinstance(pattern, re.Pattern):
        return pattern.search(content) is not None
    if pattern == "":
        # An empty anchor only matches an empty file.
        return content == ""
    return pattern in content


def _replace(content: str, pattern: Pattern, to: str) -> str:
    if isinstance(pattern, re.Pattern):
        # Replacement text is literal, backslashes and group references included.
        return pattern.sub(lambda _: to, content, count=1)
    if pattern == "":
        return to
    return content.replace(pattern, to)


def _append(content: str, to: str) -> str:
    if content and not content.endswith("\n"):
        content += "\n"
    return content + to


def apply_patch(patch: FilePatch) -> FilePatch:
    """Apply one patch and return a copy annotated with its outcome."""
    result = replace(patch, changed=False, appended=False, err=None)
    path = Path(result.file)

    if not path.is_file():
        result.err = TargetFileNotFoundError(path)
        logger.warning(f"Patch skipped, file not found: {path}")
        return result

    try:
        content = path.read_text(encoding="utf-8")

        if not _contains(content, result.from_):
            path.write_text(_append(content, result.to), encoding="utf-8")
            result.changed = True
            result.appended = True
            logger.debug(f"Pattern not found in {path}, appended new content")
            return result

        new_content = _replace(content, result.from_, result.to)
        if new_content != content:
            path.write_text(new_content, encoding="utf-8")
            result.changed = True
        logger.debug(f"Patched {path} changed={result.changed}")
    except Exception as e:
        # Recorded on the patch so the rest of the batch still runs.
        result.err = FileModifyError(path, e)
        logger.warning(f"Failed to patch {path}: {e}")

    return result


def apply_patches(patches: list[FilePatch]) -> list[FilePatch]:
    """Apply patches in order. A failing patch does not stop the others.

    Args:
        patches: Patches to apply, possibly against different files

    Returns:
        One annotated patch per input patch, in the same order
    """
    return [apply_patch(patch) for patch in patches]


def find(file_path: str | Path, pattern: Pattern) -> str:
    """Search a file.

    A literal pattern returns the first whole line containing it; a compiled
    regular expression returns the first matched span. An empty string means
    nothing matched.

    Raises:
        TargetFileNotFoundError: If the file does not exist
        FileReadError: If the file cannot be read
    """
    path = Path(file_path)
    if not path.is_file():
        raise TargetFileNotFoundError(path)

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(path, e) from e

    if isinstance(pattern, re.Pattern):
        match = pattern.search(content)
        return match.group(0) if match else ""

    for line in content.split("\n"):
        if pattern in line:
            return line
    return ""
