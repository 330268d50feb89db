"""
presetdig.extractor
===================
Recovers plugin presets stored as hex blobs inside project documents.

How it works
------------
Ableton Live (and tools with similar formats) stores the opaque state of
third-party VST/AU plugins as hex text inside ``<Buffer>`` elements::

    <PluginDevice Id="3">
      <PluginDesc>
        <VstPluginInfo Id="0">
          <PlugName Value="Serum" />
          <Buffer>
            4343 6E4B 0000 ...
          </Buffer>

Each payload is decoded and written to its own file, named after the
ancestors that carry a human-meaningful name (``EffectiveName``, ``Name``
or ``PlugName`` children).  Repeated sibling tags get a positional
component such as ``AudioTrack2`` so that identically named devices on
different tracks do not clash.

AU presets are usually an XML property list whose ``<data>`` entries hold
the real state as base64.  Those payloads are written as ``.xml`` and every
``dict/data`` entry is additionally decoded to ``<stem>.<key>.bin``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator
from xml.etree import ElementTree as ET

from presetdig.document import (
    ParentMap,
    ancestors,
    build_parent_map,
    node_path,
    read_document,
    same_tag_siblings,
    text_content,
)
from presetdig.errors import PayloadError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_RE_WHITESPACE   = re.compile(r"\s+")
_RE_UNSAFE_CHARS = re.compile(r'[/\\:*?"<>|]')

# Name sources in descending priority.  UserName is collected but never chosen.
NAME_PRIORITY: tuple[str, ...] = ("EffectiveName", "Name", "PlugName")

UNKNOWN_KEY = "unknown"


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass
class ExtractConfig:
    """Configuration for a single extraction run."""
    payload_tag:     str = "Buffer"
    fallback_prefix: str = "buffer_"


@dataclass(slots=True)
class WrittenFile:
    """One output file and the payload node it came from."""
    path:      Path
    node_path: str

    def __str__(self) -> str:
        return str(self.path)


@dataclass
class ExtractionReport:
    """Outcome of an extraction run."""
    output_dir:    Path
    payload_count: int               = 0
    files:         list[WrittenFile] = field(default_factory=list)
    written:       set[Path]         = field(default_factory=set)
    warnings:      int               = 0


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def find_payloads(root: ET.Element, tag: str = "Buffer") -> list[ET.Element]:
    """Every element named *tag*, in document order, at any depth."""
    return list(root.iter(tag))


def collect_name_candidates(node: ET.Element) -> dict[str, str]:
    """
    Gather the name variants carried by the direct children of *node*.

    Returns a mapping from source (``EffectiveName``, ``Name``, ``UserName``,
    ``PlugName``) to its non-empty value.  Later children override earlier ones.
    """
    names: dict[str, str] = {}
    for name_el in node.findall("Name"):
        effective = name_el.find("EffectiveName")
        if effective is not None and effective.get("Value"):
            names["EffectiveName"] = effective.get("Value")
        if name_el.get("Value"):
            names["Name"] = name_el.get("Value")
        for user_el in name_el.findall("UserName"):
            if user_el.get("Value"):
                names["UserName"] = user_el.get("Value")
    for plug_el in node.findall("PlugName"):
        if plug_el.get("Value"):
            names["PlugName"] = plug_el.get("Value")
    return names


def resolve_ancestor_name(node: ET.Element) -> str | None:
    """Return the highest-priority name carried by *node*, if any."""
    names = collect_name_candidates(node)
    if len(names) > 1:
        logger.debug(
            "[%s] names: %s",
            node.tag,
            ", ".join(f'{k}="{v}"' for k, v in sorted(names.items())),
        )
    for source in NAME_PRIORITY:
        if source in names:
            return names[source]
    return None


def derive_name_parts(payload: ET.Element, parents: ParentMap) -> list[str]:
    """
    Build the filename components for *payload* from its ancestor chain.

    For each ancestor (root element first) this appends ``<Tag><index>``
    when the tag repeats among its siblings, then the ancestor's resolved
    name when it has one.
    """
    parts: list[str] = []
    for node in ancestors(payload, parents):
        siblings = same_tag_siblings(node, parents)
        if len(siblings) > 1:
            index = next(i for i, s in enumerate(siblings, start=1) if s is node)
            parts.append(f"{node.tag}{index}")
        name = resolve_ancestor_name(node)
        if name is not None:
            parts.append(name)
    return parts


def sanitize_stem(parts: list[str]) -> str:
    """Join *parts* with ``.`` and replace characters unsafe in filenames."""
    return _RE_UNSAFE_CHARS.sub("_", ".".join(parts))


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_payload(text: str) -> bytes:
    """Decode whitespace-insensitive hex *text* into bytes."""
    compact = _RE_WHITESPACE.sub("", text)
    try:
        return bytes.fromhex(compact)
    except ValueError as exc:
        raise PayloadError(f"invalid hex payload: {exc}") from exc


def is_embedded_xml(content: bytes) -> bool:
    """True if *content* looks like an XML document (first non-space byte is ``<``)."""
    return content.lstrip().startswith(b"<")


def decode_base64(text: str) -> bytes:
    """Strictly decode standard base64 *text*, ignoring whitespace."""
    compact = _RE_WHITESPACE.sub("", text)
    try:
        return base64.b64decode(compact, validate=True)
    except binascii.Error as exc:
        raise PayloadError(f"base64 decode failed: {exc}") from exc


def iter_plist_data(content: bytes) -> Iterator[tuple[str, str]]:
    """
    Yield ``(key_label, base64_text)`` for every ``data`` element that is a
    child of a ``dict`` element in the embedded XML *content*.

    The label is the text of the nearest preceding ``key`` sibling with
    whitespace runs collapsed to ``_``, or ``"unknown"`` when there is none.
    Raises :class:`xml.etree.ElementTree.ParseError` if *content* is not XML.
    """
    root = ET.fromstring(content)
    parents = build_parent_map(root)
    for node in root.iter("data"):
        parent = parents.get(node)
        if parent is None or parent.tag != "dict":
            continue
        siblings = list(parent)
        position = next(i for i, s in enumerate(siblings) if s is node)
        label = UNKNOWN_KEY
        for prev in reversed(siblings[:position]):
            if prev.tag == "key":
                label = _RE_WHITESPACE.sub("_", text_content(prev))
                break
        yield label, text_content(node)


# ---------------------------------------------------------------------------
# Extraction run
# ---------------------------------------------------------------------------

class _ExtractionRun:
    """Run-scoped state: written paths, fallback counter, report."""

    def __init__(
        self,
        output_dir: Path,
        config: ExtractConfig,
        progress: Callable[[str], None] | None,
    ) -> None:
        self.config   = config
        self.progress = progress
        self.report   = ExtractionReport(output_dir=output_dir)
        self._counter = 0

    def _emit(self, line: str) -> None:
        if self.progress is not None:
            self.progress(line)

    def _warn(self, msg: str, *args: object) -> None:
        self.report.warnings += 1
        logger.warning(msg, *args)

    def _write(self, path: Path, data: bytes, where: str) -> None:
        if path in self.report.written:
            self._warn("overwriting previously written %s", path)
        self.report.written.add(path)
        path.write_bytes(data)
        record = WrittenFile(path=path, node_path=where)
        self.report.files.append(record)
        self._emit(str(record))

    def _target(self, filename: str) -> Path:
        return self.report.output_dir / filename

    def _stem_for(self, payload: ET.Element, parents: ParentMap) -> str:
        parts = derive_name_parts(payload, parents)
        if not parts:
            parts = [f"{self.config.fallback_prefix}{self._counter}"]
            self._counter += 1
        return sanitize_stem(parts)

    def _extract_plist(self, stem: str, content: bytes, where: str) -> None:
        try:
            entries = list(iter_plist_data(content))
        except ET.ParseError as exc:
            self._warn("could not parse inner XML for %s: %s", stem, exc)
            return
        for label, b64 in entries:
            label = _RE_UNSAFE_CHARS.sub("_", label)
            try:
                blob = decode_base64(b64)
            except PayloadError as exc:
                self._warn("%s for %s in %s", exc, label, stem)
                continue
            self._write(self._target(f"{stem}.{label}.bin"), blob, where)

    def process(self, payload: ET.Element, parents: ParentMap) -> None:
        where = node_path(payload, parents)
        stem  = self._stem_for(payload, parents)
        try:
            content = decode_payload(text_content(payload))
        except PayloadError as exc:
            self._warn("skipping %s (%s): %s", stem, where, exc)
            return

        if is_embedded_xml(content):
            self._write(self._target(f"{stem}.xml"), content, where)
            self._extract_plist(stem, content, where)
        else:
            self._write(self._target(f"{stem}.bin"), content, where)
        self._emit(f"  XPath: {where}")


def extract_presets(
    root: ET.Element,
    output_dir: Path | str,
    config: ExtractConfig | None = None,
    progress: Callable[[str], None] | None = None,
) -> ExtractionReport:
    """
    Decode every payload node under *root* into files in *output_dir*.

    Parameters
    ----------
    root:
        Parsed document (see :func:`presetdig.document.load_document`).
    output_dir:
        Destination directory, created if missing.
    config:
        Payload tag and fallback naming options.
    progress:
        Called with each written path and with the tree position of each
        processed payload.  Warnings go through :mod:`logging` instead.

    Returns
    -------
    ExtractionReport
        Written files and the run's set of written paths.
    """
    config = config or ExtractConfig()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    payloads = find_payloads(root, config.payload_tag)
    logger.info("Found %d %s node(s)", len(payloads), config.payload_tag)

    run = _ExtractionRun(output_dir, config, progress)
    run.report.payload_count = len(payloads)
    parents = build_parent_map(root)
    for payload in payloads:
        run.process(payload, parents)
    return run.report


def default_output_dir(input_path: Path | str) -> Path:
    """``<input-stem>.presets`` relative to the working directory."""
    return Path(f"{Path(input_path).stem}.presets")


def extract_file(
    input_path: Path | str,
    output_dir: Path | str | None = None,
    config: ExtractConfig | None = None,
    progress: Callable[[str], None] | None = None,
) -> ExtractionReport:
    """Read, parse and extract *input_path* in one call."""
    root = read_document(input_path)
    if output_dir is None:
        output_dir = default_output_dir(input_path)
    return extract_presets(root, output_dir, config, progress)
