"""
Feature list I/O utilities.

Feature lists are stored as plain text, one feature per line:

    x y trackness

Blank lines and lines starting with ``#`` are ignored.
"""

import re
from pathlib import Path
from typing import Iterator

from kltrack.tracking.features import Feature


_NUMBER = r'(-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)'

# Pattern for parsing a feature line: x y [trackness]
FEATURE_PATTERN = re.compile(rf'{_NUMBER}\s+{_NUMBER}(?:\s+{_NUMBER})?\s*$')


def parse_feature_line(line: str) -> Feature | None:
    """
    Parse a single line of feature data.

    Args:
        line: Line of text to parse

    Returns:
        Feature or None if the line is empty, a comment, or malformed
    """
    line = line.strip()
    if not line or line.startswith('#'):
        return None

    match = FEATURE_PATTERN.match(line)
    if not match:
        return None

    trackness = match.group(3)
    return Feature(
        float(match.group(1)),
        float(match.group(2)),
        float(trackness) if trackness is not None else 0.0,
    )


def iter_feature_file(path: str | Path) -> Iterator[Feature]:
    """
    Iterate over the features stored in a file.

    Yields:
        Feature for every valid line
    """
    path = Path(path)
    with open(path, 'r') as f:
        for line in f:
            parsed = parse_feature_line(line)
            if parsed:
                yield parsed


def read_feature_file(path: str | Path) -> list[Feature]:
    """
    Read a feature list from a file.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Feature file not found: {path}")
    return list(iter_feature_file(path))


def write_feature_file(
    path: str | Path,
    features: list[Feature],
    header: str | None = None,
) -> None:
    """
    Write a feature list to a file.

    Args:
        path: Output path
        features: Features to write, in order
        header: Optional comment written as the first line

    Example:
        >>> write_feature_file("frame0001.txt", features, header="frame 1")
    """
    path = Path(path)
    with open(path, 'w') as f:
        if header:
            f.write(f"# {header}\n")
        for feature in features:
            f.write(
                f"{float(feature.x)!r} {float(feature.y)!r} "
                f"{float(feature.trackness)!r}\n"
            )
