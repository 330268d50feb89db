"""
presetdig.magic
===============
Infers magic-byte signatures from sample files of known type.

How it works
------------
Files under a directory are grouped by extension.  The first N bytes of
every file in a group are hex-encoded and compared nibble by nibble::

    file1.foo   dead beef 0102 ...
    file2.foo   dead beef 7f00 ...
    pattern     dead beef .... ...

Positions where every sample agrees keep the literal nibble, all others
become a ``.`` wildcard.  The share of literal positions is the match
percentage; groups with too little in common are dropped.  The trimmed
pattern anchored at ``^`` is a regular expression over the lowercase hex
of a file header, ready for a classifier that checks rules in order.

Because a classifier stops at the first matching rule, the representative
samples of each group are tested against every other group's pattern and
overlaps are reported as collisions.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ALL_FILES_GROUP   = "_all"
ALL_FILES_EXT     = "bin"
ALL_FILES_DESC    = "unknown"
WILDCARD          = "."

_RE_EXTENSION     = re.compile(r"\.([^.]+)$")
_RE_TRAILING_WILD = re.compile(r"\.+$")


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass
class MinerConfig:
    """Configuration for a single mining run."""
    header_bytes:  int  = 64
    use_dirname:   bool = False
    all_files:     bool = False
    min_match_pct: int  = 25
    max_samples:   int  = 3


@dataclass(slots=True)
class HeaderSample:
    """Hex-encoded, zero-padded header of one file."""
    path:   Path
    hex:    str
    length: int


@dataclass
class PatternResult:
    """A candidate detection rule for one group of files."""
    pattern:     str
    ext:         str
    description: str
    count:       int
    match_pct:   int
    samples:     list[str] = field(default_factory=list)

    @property
    def regex(self) -> str:
        """The pattern anchored at the start of a header."""
        return f"^{self.pattern}"

    def matches(self, header_hex: str) -> bool:
        """True if *header_hex* starts with something this pattern accepts."""
        return re.match(self.regex, header_hex) is not None


@dataclass(slots=True)
class Collision:
    """A sample of one group that also matches another group's pattern."""
    sample:      str
    sample_ext:  str
    pattern_ext: str

    def __str__(self) -> str:
        return (
            f".{self.sample_ext} sample matches .{self.pattern_ext} pattern "
            f"- possible collision"
        )


# ---------------------------------------------------------------------------
# File collection
# ---------------------------------------------------------------------------

def group_key(name: str, all_files: bool = False) -> str | None:
    """
    Return the grouping key for a file called *name*: its lowercase final
    dot-suffix, or :data:`ALL_FILES_GROUP` in all-files mode.  Files without
    a suffix yield ``None``.
    """
    if all_files:
        return ALL_FILES_GROUP
    match = _RE_EXTENSION.search(name)
    return match.group(1).lower() if match else None


def collect_files(directory: Path | str, all_files: bool = False) -> dict[str, list[Path]]:
    """
    Recursively collect regular files under *directory* grouped by
    :func:`group_key`.  Unreadable directories are skipped with a warning.
    """
    groups: dict[str, list[Path]] = {}

    def scan(path: Path) -> None:
        try:
            with os.scandir(path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            logger.warning("Cannot open %s: %s", path, exc)
            return
        for entry in entries:
            if entry.is_dir():
                scan(Path(entry.path))
            elif entry.is_file():
                key = group_key(entry.name, all_files)
                if key is not None:
                    groups.setdefault(key, []).append(Path(entry.path))

    scan(Path(directory))
    logger.debug(
        "Collected %d file(s) in %d group(s) under %s",
        sum(len(v) for v in groups.values()), len(groups), directory,
    )
    return groups


# ---------------------------------------------------------------------------
# Header sampling
# ---------------------------------------------------------------------------

def read_header(path: Path | str, header_bytes: int = 64) -> HeaderSample | None:
    """
    Read up to *header_bytes* from the start of *path*, zero-padded.

    Returns ``None`` for empty files and for files that cannot be read
    (the latter with a warning).
    """
    path = Path(path)
    try:
        with path.open("rb") as fh:
            buf = fh.read(header_bytes)
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return None
    if not buf:
        return None
    length = len(buf)
    buf += b"\x00" * (header_bytes - length)
    return HeaderSample(path=path, hex=buf.hex(), length=length)


# ---------------------------------------------------------------------------
# Consensus
# ---------------------------------------------------------------------------

def consensus_pattern(hex_strings: list[str], hex_len: int) -> tuple[str, int]:
    """
    Compare *hex_strings* nibble by nibble over *hex_len* positions.

    Returns the untrimmed pattern (exactly *hex_len* characters) and the
    number of literal positions.
    """
    pattern: list[str] = []
    common = 0
    for i in range(hex_len):
        nibbles = {h[i] for h in hex_strings}
        if len(nibbles) == 1:
            pattern.append(nibbles.pop())
            common += 1
        else:
            pattern.append(WILDCARD)
    return "".join(pattern), common


def match_percentage(common: int, total: int) -> int:
    """Integer percentage of literal positions."""
    if total <= 0:
        return 0
    return common * 100 // total


def trim_pattern(pattern: str) -> str:
    """Drop trailing wildcards so the rule ends at its last literal nibble."""
    return _RE_TRAILING_WILD.sub("", pattern)


def shared_dirname(samples: list[HeaderSample]) -> str | None:
    """The immediate parent directory name, if all *samples* share one."""
    names = {s.path.absolute().parent.name for s in samples}
    if len(names) == 1:
        return names.pop()
    return None


def mine_group(key: str, paths: list[Path], config: MinerConfig) -> PatternResult | None:
    """
    Build a :class:`PatternResult` for one group, or ``None`` when the group
    has fewer than two readable samples or scores below the threshold.
    """
    if len(paths) < 2:
        return None

    samples = [
        sample for sample in (read_header(p, config.header_bytes) for p in paths)
        if sample is not None
    ]
    if len(samples) < 2:
        return None

    hex_len = config.header_bytes * 2
    pattern, common = consensus_pattern([s.hex for s in samples], hex_len)
    pct = match_percentage(common, hex_len)
    if pct < config.min_match_pct:
        logger.debug("Group %s dropped: %d%% common nibbles", key, pct)
        return None

    is_all = key == ALL_FILES_GROUP
    ext  = ALL_FILES_EXT if is_all else key
    desc = ALL_FILES_DESC if is_all else key
    if config.use_dirname:
        desc = shared_dirname(samples) or desc

    return PatternResult(
        pattern=trim_pattern(pattern),
        ext=ext,
        description=desc,
        count=len(samples),
        match_pct=pct,
        samples=[s.hex for s in samples[:config.max_samples]],
    )


def mine_directory(directory: Path | str, config: MinerConfig | None = None) -> list[PatternResult]:
    """Mine a signature for every file group under *directory*, sorted by group key."""
    config = config or MinerConfig()
    groups = collect_files(directory, config.all_files)
    results: list[PatternResult] = []
    for key in sorted(groups):
        result = mine_group(key, groups[key], config)
        if result is not None:
            results.append(result)
    logger.info("Mined %d pattern(s) from %d group(s)", len(results), len(groups))
    return results


# ---------------------------------------------------------------------------
# Collision detection
# ---------------------------------------------------------------------------

def _first_collision(source: PatternResult, target: PatternResult) -> Collision | None:
    for sample in source.samples:
        if target.matches(sample):
            return Collision(sample=sample, sample_ext=source.ext, pattern_ext=target.ext)
    return None


def find_collisions(results: list[PatternResult]) -> list[Collision]:
    """
    Test the representative samples of every pair of results against each
    other's pattern.  At most one collision is reported per direction per
    pair.  Samples beyond the representatives are not checked.
    """
    collisions: list[Collision] = []
    for i, first in enumerate(results):
        for second in results[i + 1:]:
            for source, target in ((first, second), (second, first)):
                hit = _first_collision(source, target)
                if hit is not None:
                    logger.warning("%s", hit)
                    logger.warning("  sample: %s", hit.sample)
                    collisions.append(hit)
    return collisions
