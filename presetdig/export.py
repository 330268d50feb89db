"""
presetdig.export
================
Formatting and export helpers for mined signature rules.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path
from typing import Iterator

from presetdig.magic import Collision, PatternResult

logger = logging.getLogger(__name__)

NO_COLLISIONS_LINE = "# No collisions detected between patterns."


def format_rule(result: PatternResult) -> str:
    """The rule line, as a Python tuple a classifier table can paste in."""
    return f'    (re.compile(r"{result.regex}"), {"." + result.ext!r}, {result.description!r}),'


def iter_rule_lines(results: list[PatternResult]) -> Iterator[str]:
    """Yield the listing for *results*: comment, rule, samples, blank line per group."""
    for r in results:
        yield f"    # {r.count} files, {r.match_pct}% common nibbles"
        yield format_rule(r)
        for sample in r.samples:
            yield f"    #   {sample}"
        yield ""


def collision_summary(collisions: list[Collision]) -> str:
    """One-line warning summarising how many collisions were found."""
    return (
        f"{len(collisions)} collision(s) detected! Reorder the rules so more "
        f"specific patterns come first."
    )


def export_txt(results: list[PatternResult], path: Path) -> None:
    """Write the rule listing as plain text."""
    path.write_text("\n".join(iter_rule_lines(results)), encoding="utf-8")
    logger.info("Exported %d rules → %s (txt)", len(results), path)


def export_json(
    results: list[PatternResult],
    path: Path,
    collisions: list[Collision] | None = None,
    source_path: str = "",
) -> None:
    """Write rules and collisions as structured JSON."""
    collisions = collisions or []
    payload = {
        "source": source_path,
        "count": len(results),
        "rules": [
            {
                "pattern": r.regex,
                "ext": f".{r.ext}",
                "description": r.description,
                "files": r.count,
                "match_pct": r.match_pct,
                "samples": r.samples,
            }
            for r in results
        ],
        "collisions": [
            {"sample": c.sample, "sample_ext": c.sample_ext, "pattern_ext": c.pattern_ext}
            for c in collisions
        ],
    }
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Exported %d rules → %s (json)", len(results), path)


def export_csv(results: list[PatternResult], path: Path) -> None:
    """Write rules as CSV with pattern / ext / description / files / match_pct columns."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(["pattern", "ext", "description", "files", "match_pct"])
    for r in results:
        writer.writerow([r.regex, f".{r.ext}", r.description, r.count, r.match_pct])
    path.write_text(buf.getvalue(), encoding="utf-8")
    logger.info("Exported %d rules → %s (csv)", len(results), path)


def export_results(
    results: list[PatternResult],
    path: Path,
    collisions: list[Collision] | None = None,
    source_path: str = "",
) -> None:
    """Export to *path*, choosing the format from its suffix (txt by default)."""
    suffix = path.suffix.lower()
    if suffix == ".json":
        export_json(results, path, collisions, source_path)
    elif suffix == ".csv":
        export_csv(results, path)
    else:
        export_txt(results, path)
