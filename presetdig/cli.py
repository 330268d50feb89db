"""
CLI command definitions.
Thin click wrappers around :mod:`presetdig.extractor` and :mod:`presetdig.magic`.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from presetdig import __version__
from presetdig.errors import DocumentError
from presetdig.export import NO_COLLISIONS_LINE, collision_summary, export_results, iter_rule_lines
from presetdig.extractor import ExtractConfig, extract_file
from presetdig.magic import MinerConfig, find_collisions, mine_directory

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Send diagnostics to stderr; stdout is reserved for program output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)-8s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Preset extractor
# ---------------------------------------------------------------------------

@click.command(name="extract-presets")
@click.version_option(__version__)
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output_dir", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.option("--tag", default="Buffer", show_default=True, help="Element name holding hex payloads")
@click.option("-v", "--verbose", is_flag=True, help="Show debug diagnostics")
def extract_presets_cmd(input_file, output_dir, tag, verbose):
    """Extract VST/AU presets embedded in a project file (XML or gzipped XML)."""
    setup_logging(verbose)
    try:
        report = extract_file(
            input_file,
            output_dir,
            config=ExtractConfig(payload_tag=tag),
            progress=click.echo,
        )
    except DocumentError as exc:
        raise click.ClickException(str(exc)) from exc
    logger.info(
        "%d payload(s), %d file(s) written to %s",
        report.payload_count, len(report.files), report.output_dir,
    )
    click.echo("Done.")


# ---------------------------------------------------------------------------
# Magic pattern miner
# ---------------------------------------------------------------------------

@click.command(name="find-magic")
@click.version_option(__version__)
@click.option("-d", "--dirname", "use_dirname", is_flag=True,
              help="Describe a group by its shared parent directory name")
@click.option("-a", "--all", "all_files", is_flag=True,
              help="Treat every file as one group regardless of extension")
@click.option("-n", "--bytes", "header_bytes", type=click.IntRange(min=1), default=64,
              show_default=True, help="Header bytes to compare")
@click.option("--export", "export_path", type=click.Path(dir_okay=False, path_type=Path),
              help="Also write the rules to a .txt, .json or .csv file")
@click.option("-v", "--verbose", is_flag=True, help="Show debug diagnostics")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
def find_magic_cmd(use_dirname, all_files, header_bytes, export_path, verbose, directory):
    """Infer magic-byte detection rules from the files under DIRECTORY."""
    setup_logging(verbose)
    config = MinerConfig(header_bytes=header_bytes, use_dirname=use_dirname, all_files=all_files)
    results = mine_directory(directory, config)
    for line in iter_rule_lines(results):
        click.echo(line)

    collisions = find_collisions(results)
    if collisions:
        logger.warning(collision_summary(collisions))
    else:
        click.echo(NO_COLLISIONS_LINE)

    if export_path is not None:
        export_results(results, export_path, collisions, str(directory))
