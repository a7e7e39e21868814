"""
File-system helpers for conversion inputs and outputs.

Rules:
- Output names are derived from the input stem plus the template extension,
  or from a file name pattern (see format_file_name)
- Collisions are resolved by the operator's FileExistsAction, against both
  the disk and the paths already planned for the same batch
- Helpers that only inspect the file system never raise; they report
  False / 0 / an empty list instead
"""

import logging
import os
import re
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import AbstractSet, Iterable, List, Optional, Tuple

from .settings.models import FileExistsAction, OutputNamingRule

logger = logging.getLogger(__name__)


DEFAULT_MEDIA_EXTENSIONS = frozenset({
    ".mp4", ".avi", ".mkv", ".mov", ".wmv", ".flv", ".webm", ".m4v",
    ".mp3", ".wav", ".flac", ".aac", ".ogg", ".wma", ".m4a",
})

# Highest n tried for "name (n).ext" before giving up
MAX_RENAME_ATTEMPTS = 9999

# Prefix that makes FFmpeg overwrite without prompting
OVERWRITE_FLAG = "-y"

# Characters no file system accepts portably; replaced with "_"
INVALID_FILENAME_CHARS = frozenset('<>:"/\\|?*') | frozenset(chr(c) for c in range(32))

# {token} or {token:argument}
_NAME_TOKEN_PATTERN = re.compile(r"\{(\w+)(?::([^}]+))?\}")

# Plain tokens that expand to a strftime rendering of "now"
_DATE_TOKENS = {
    "date": "%Y%m%d",
    "time": "%H%M%S",
    "datetime": "%Y%m%d_%H%M%S",
    "year": "%Y",
    "month": "%m",
    "day": "%d",
    "hour": "%H",
    "minute": "%M",
    "second": "%S",
}

MAX_RANDOM_LENGTH = 32
MAX_COUNTER_DIGITS = 10


class OutputExistsError(Exception):
    """
    The output file exists and the policy is to ask the operator.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Output file already exists: {path}")


class OutputDirectoryError(Exception):
    """The output directory cannot be created or written to."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Output directory is not writable: {path}")


def sanitize_file_name(name: str) -> str:
    """Replace characters that are invalid in file names with underscores."""
    return "".join("_" if ch in INVALID_FILENAME_CHARS else ch for ch in name)


def format_file_name(
    pattern: str,
    input_path: str,
    extension: str,
    counter: int = 1,
    now: Optional[datetime] = None,
) -> str:
    """
    Expand an output file name pattern (without extension).

    Tokens are case-insensitive:
        {filename}   input stem            {ext}        input extension
        {outputext}  output extension      {dir}        input folder name
        {date} {time} {datetime} {year} {month} {day} {hour} {minute} {second}
        {now:FMT}    strftime(FMT); left as written if FMT is invalid
        {random}     8 random hex chars    {random:N}   N of them (max 32)
        {counter:N}  `counter` zero-padded to N digits (max 10)

    Unknown tokens are kept literally. Invalid file name characters in the
    result are replaced with "_". A blank pattern yields the input stem.
    """
    source = Path(input_path)
    if not pattern or not pattern.strip():
        return source.stem

    now = now or datetime.now()
    plain = {
        "filename": source.stem,
        "ext": source.suffix.lstrip("."),
        "outputext": extension.lstrip("."),
        "dir": source.parent.name,
    }

    def expand(match: "re.Match") -> str:
        token = match.group(1).lower()
        argument = match.group(2)

        if argument is None:
            if token in plain:
                return plain[token]
            if token in _DATE_TOKENS:
                return now.strftime(_DATE_TOKENS[token])
            if token == "random":
                return uuid.uuid4().hex[:8]
            return match.group(0)

        if token == "now":
            try:
                return now.strftime(argument)
            except ValueError:
                return match.group(0)
        if token == "random" and argument.isdigit():
            return uuid.uuid4().hex[:min(int(argument), MAX_RANDOM_LENGTH)]
        if token == "counter" and argument.isdigit():
            digits = min(int(argument), MAX_COUNTER_DIGITS)
            return str(counter % (10 ** digits)).zfill(digits)
        return match.group(0)

    return sanitize_file_name(_NAME_TOKEN_PATTERN.sub(expand, pattern))


def generate_output_path(
    input_path: str,
    output_directory: str,
    extension: str,
    suffix: Optional[str] = None,
    name_pattern: Optional[str] = None,
    counter: int = 1,
) -> str:
    """
    Build `<output_directory>/<name>.<extension>`.

    Args:
        input_path: Source file
        output_directory: Target directory
        extension: Output extension, with or without the leading dot
        suffix: Appended to the input stem when non-empty
        name_pattern: format_file_name pattern; replaces stem + suffix when set
        counter: Value of {counter:N} in the pattern
    """
    source = Path(input_path)
    # Templates without an extension keep the input container
    ext = extension.lstrip(".") or source.suffix.lstrip(".")
    if name_pattern and name_pattern.strip():
        stem = format_file_name(name_pattern, input_path, ext, counter=counter)
    else:
        stem = f"{source.stem}{suffix or ''}"
    name = f"{stem}.{ext}" if ext else stem
    return str(Path(output_directory) / name)


def output_suffix_for(naming: OutputNamingRule, suffix: str) -> Optional[str]:
    """The suffix a naming rule applies, or None to keep the input stem."""
    if naming == OutputNamingRule.SUFFIX and suffix:
        return suffix
    return None


def path_key(path: str) -> str:
    """Normalized form used to compare planned output paths."""
    return os.path.normcase(os.path.abspath(path))


def find_available_path(path: str, claimed: AbstractSet[str] = frozenset()) -> str:
    """
    First free `name (n).ext` next to `path`, starting at n=1.

    A candidate is free when it is neither on disk nor in `claimed`
    (a set of path_key values).

    Raises:
        OutputExistsError: If every candidate is taken
    """
    candidate = Path(path)
    for n in range(1, MAX_RENAME_ATTEMPTS + 1):
        renamed = candidate.with_name(f"{candidate.stem} ({n}){candidate.suffix}")
        if not renamed.exists() and path_key(str(renamed)) not in claimed:
            return str(renamed)
    raise OutputExistsError(path)


def resolve_output_conflict(
    output_path: str,
    action: FileExistsAction,
    claimed: AbstractSet[str] = frozenset(),
) -> Tuple[Optional[str], bool]:
    """
    Apply the file-exists policy to a planned output path.

    Args:
        output_path: The planned output file
        action: Operator policy
        claimed: path_key values already planned by the same batch; they
            count as existing files

    Returns:
        (path, overwrite): the path to use, or None to skip the file, and
        whether FFmpeg must be told to overwrite

    Raises:
        OutputExistsError: If the path is taken and the policy is ASK
    """
    planned = path_key(output_path) in claimed
    if not planned and not os.path.exists(output_path):
        return output_path, False

    if action == FileExistsAction.OVERWRITE and not planned:
        return output_path, True
    if action == FileExistsAction.SKIP:
        logger.info(f"[Files] Skipping existing output {output_path}")
        return None, False
    if action in (FileExistsAction.RENAME, FileExistsAction.OVERWRITE):
        # A sibling's output is never overwritten
        renamed = find_available_path(output_path, claimed)
        logger.info(f"[Files] Output exists, renamed to {renamed}")
        return renamed, False

    raise OutputExistsError(output_path)


def apply_overwrite_flag(command: str, overwrite: bool) -> str:
    """Prefix `-y` so FFmpeg replaces the existing output."""
    if not overwrite or command.lstrip().startswith(f"{OVERWRITE_FLAG} "):
        return command
    return f"{OVERWRITE_FLAG} {command}"


def get_file_size(path: str) -> int:
    """Size in bytes, 0 if the file is missing or unreadable."""
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def is_file_accessible(path: str) -> bool:
    """True for an existing, non-empty regular file."""
    try:
        return os.path.isfile(path) and os.path.getsize(path) > 0
    except OSError:
        return False


def is_directory_writable(path: str) -> bool:
    """
    Create the directory if needed and prove it accepts a file.
    """
    try:
        os.makedirs(path, exist_ok=True)
        probe = os.path.join(path, f".write_test_{uuid.uuid4().hex}")
        with open(probe, "w") as f:
            f.write("test")
        os.remove(probe)
        return True
    except OSError as e:
        logger.debug(f"[Files] {path} is not writable: {e}")
        return False


def get_available_disk_space(path: str) -> int:
    """Free bytes on the volume holding `path` (nearest existing parent)."""
    current = Path(path).expanduser()
    while not current.exists() and current != current.parent:
        current = current.parent
    try:
        return shutil.disk_usage(str(current)).free
    except OSError:
        return 0


def ensure_directory_exists(file_path: str) -> None:
    """Create the parent directory of `file_path`."""
    parent = os.path.dirname(file_path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def scan_media_files(
    directory: str,
    recursive: bool = False,
    extensions: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    List media files in a directory, sorted by path.

    Args:
        directory: Folder to scan
        recursive: Descend into subfolders
        extensions: Accepted extensions with leading dots (case-insensitive);
            defaults to DEFAULT_MEDIA_EXTENSIONS
    """
    accepted = {e.lower() for e in extensions} if extensions else DEFAULT_MEDIA_EXTENSIONS
    root = Path(directory)
    if not root.is_dir():
        return []

    pattern = "**/*" if recursive else "*"
    try:
        return sorted(
            str(p) for p in root.glob(pattern)
            if p.is_file() and p.suffix.lower() in accepted
        )
    except OSError as e:
        logger.warning(f"[Files] Scanning {directory} failed: {e}")
        return []
