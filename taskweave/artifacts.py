"""File-system helpers used by release build actions.

These cover the artifact steps a release pipeline performs around its
external tools: assembling a staging directory from named files, checking
its contents, rendering a templated package manifest, and comparing a test
harness log against a golden sample after normalising volatile text.
"""

import difflib
import re
import shutil
from collections.abc import Iterable
from pathlib import Path

import jinja2

from taskweave.errors import AssertionFailure
from taskweave.log_config import get_logger

logger = get_logger(__name__)

# Constants
DEFAULT_PLACEHOLDER = "<time>"
DIFF_EXCERPT_LINES = 40

# ISO timestamps, clock times and elapsed durations such as 00:00:01.234
_TIME_PATTERNS = (
    re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?"),
    re.compile(r"\b\d{1,2}:\d{2}:\d{2}(?:[.,]\d+)?\b"),
    re.compile(r"\b\d+(?:\.\d+)?\s?(?:ms|s)\b"),
)


def stage_files(
    source_dir: str | Path,
    staging_dir: str | Path,
    names: Iterable[str],
    clean: bool = True,
) -> list[Path]:
    """Copy named files into a staging directory, keeping relative paths.

    Args:
        source_dir: Directory the names are relative to
        staging_dir: Destination directory
        names: Relative file paths to copy
        clean: Remove the staging directory first

    Returns:
        Paths of the copied files inside the staging directory

    Raises:
        AssertionFailure: If a named file does not exist
    """
    source_dir = Path(source_dir)
    staging_dir = Path(staging_dir)

    names = list(names)
    missing = [name for name in names if not (source_dir / name).is_file()]
    if missing:
        msg = f"Files to stage are missing from {source_dir}: {', '.join(missing)}"
        raise AssertionFailure(msg)

    if clean and staging_dir.exists():
        shutil.rmtree(staging_dir)
    staging_dir.mkdir(parents=True, exist_ok=True)

    copied = []
    for name in names:
        destination = staging_dir / name
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_dir / name, destination)
        copied.append(destination)

    logger.info("files_staged", staging_dir=str(staging_dir), count=len(copied))
    return copied


def assert_file_count(directory: str | Path, expected: int, pattern: str = "*") -> list[Path]:
    """Check that a directory holds exactly the expected number of files.

    Args:
        directory: Directory to inspect (recursively)
        expected: Expected file count
        pattern: Glob pattern filtering the files

    Returns:
        The matching files, sorted

    Raises:
        AssertionFailure: If the count differs
    """
    files = sorted(p for p in Path(directory).rglob(pattern) if p.is_file())
    if len(files) != expected:
        listing = ", ".join(str(p.relative_to(directory)) for p in files)
        msg = f"Expected {expected} files in {directory}, found {len(files)}: {listing}"
        raise AssertionFailure(msg)
    return files


def render_manifest(template: str, version: str, **fields: str) -> str:
    """Fill a textual manifest template.

    Placeholders use Jinja syntax ({{ name }}); ``version`` is always provided.

    Raises:
        AssertionFailure: If the template references a value that was not given
    """
    env = jinja2.Environment(undefined=jinja2.StrictUndefined, keep_trailing_newline=True)
    try:
        return env.from_string(template).render(version=version, **fields)
    except jinja2.UndefinedError as e:
        msg = f"Manifest template placeholder has no value: {e.message}"
        raise AssertionFailure(msg) from e
    except jinja2.TemplateSyntaxError as e:
        msg = f"Malformed manifest template: {e}"
        raise AssertionFailure(msg) from e


def normalize_log(text: str, placeholder: str = DEFAULT_PLACEHOLDER) -> str:
    """Replace timestamps and durations with a fixed placeholder.

    Line endings are normalised to LF so golden files compare across platforms.
    """
    text = text.replace("\r\n", "\n")
    for pattern in _TIME_PATTERNS:
        text = pattern.sub(placeholder, text)
    return text


def compare_with_golden(
    actual_path: str | Path,
    golden_path: str | Path,
    normalize: bool = True,
) -> None:
    """Compare a produced log with its golden sample.

    Without normalisation the files must match byte for byte, line endings
    included.

    Args:
        actual_path: Log produced by this run
        golden_path: Expected log
        normalize: Apply normalize_log() to both sides first

    Raises:
        AssertionFailure: If the files differ; the message carries a diff excerpt
    """
    actual = Path(actual_path).read_bytes()
    golden = Path(golden_path).read_bytes()
    if normalize:
        actual = normalize_log(actual.decode("utf-8")).encode("utf-8")
        golden = normalize_log(golden.decode("utf-8")).encode("utf-8")

    if actual == golden:
        logger.info("golden_comparison_passed", actual=str(actual_path))
        return

    # keepends so a line-ending-only difference still shows up in the diff
    diff = list(
        difflib.unified_diff(
            [repr(line)[1:-1] for line in golden.decode("utf-8", errors="replace").splitlines(keepends=True)],
            [repr(line)[1:-1] for line in actual.decode("utf-8", errors="replace").splitlines(keepends=True)],
            fromfile=str(golden_path),
            tofile=str(actual_path),
            lineterm="",
        ),
    )
    excerpt = "\n".join(diff[:DIFF_EXCERPT_LINES])
    msg = f"Output differs from golden sample {golden_path}:\n{excerpt}"
    raise AssertionFailure(msg)
