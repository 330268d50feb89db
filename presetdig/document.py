"""
presetdig.document
==================
Loading and read-only navigation of structured project documents.

Project files such as Ableton Live sets are XML, usually stored
gzip-compressed on disk.  :func:`load_document` accepts either form.
ElementTree elements carry no parent link, so navigation helpers take a
*parents* map built once per document with :func:`build_parent_map`.
"""

from __future__ import annotations

import gzip
import logging
import zlib
from pathlib import Path
from xml.etree import ElementTree as ET

from presetdig.errors import DocumentError

logger = logging.getLogger(__name__)

ParentMap = dict[ET.Element, ET.Element]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_document(raw: bytes) -> ET.Element:
    """
    Parse *raw* as XML, falling back to gzip decompression.

    Raises :class:`DocumentError` when the bytes are neither XML nor a gzip
    stream that decompresses to XML.
    """
    try:
        return ET.fromstring(raw)
    except ET.ParseError:
        logger.info("Input is not XML, attempting gzip decompression...")

    try:
        inflated = gzip.decompress(raw)
    except (OSError, EOFError, zlib.error) as exc:
        raise DocumentError(f"Failed to decompress: {exc}") from exc
    logger.info("Decompressed successfully (%d bytes)", len(inflated))

    try:
        return ET.fromstring(inflated)
    except ET.ParseError as exc:
        raise DocumentError(f"Decompressed content is not XML: {exc}") from exc


def read_document(path: Path | str) -> ET.Element:
    """Read *path* from disk and parse it with :func:`load_document`."""
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise DocumentError(f"Cannot read {path}: {exc}") from exc
    return load_document(raw)


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

def build_parent_map(root: ET.Element) -> ParentMap:
    """Map every element below *root* to its parent element."""
    return {child: parent for parent in root.iter() for child in parent}


def ancestors(node: ET.Element, parents: ParentMap) -> list[ET.Element]:
    """Return the element ancestors of *node*, root element first."""
    chain: list[ET.Element] = []
    current = parents.get(node)
    while current is not None:
        chain.append(current)
        current = parents.get(current)
    chain.reverse()
    return chain


def same_tag_siblings(node: ET.Element, parents: ParentMap) -> list[ET.Element]:
    """
    Return the direct children of *node*'s parent sharing its tag, in
    document order.  The root element has no siblings and yields ``[node]``.
    """
    parent = parents.get(node)
    if parent is None:
        return [node]
    return [child for child in parent if child.tag == node.tag]


def node_path(node: ET.Element, parents: ParentMap) -> str:
    """
    Return an XPath locating *node*, e.g. ``/Ableton/Tracks/MidiTrack[2]/Buffer``.
    Positional predicates only appear where a tag repeats among siblings.
    """
    steps: list[str] = []
    for element in ancestors(node, parents) + [node]:
        siblings = same_tag_siblings(element, parents)
        if len(siblings) > 1:
            index = next(i for i, s in enumerate(siblings, start=1) if s is element)
            steps.append(f"{element.tag}[{index}]")
        else:
            steps.append(str(element.tag))
    return "/" + "/".join(steps)


def text_content(node: ET.Element) -> str:
    """Concatenated text of *node* and all of its descendants."""
    return "".join(node.itertext())
