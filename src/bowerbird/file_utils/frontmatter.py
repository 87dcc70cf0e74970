"""Reading and writing note frontmatter.

A note is a UTF-8 text file whose frontmatter is a YAML mapping between two
`---` delimiter lines. The reader is line based rather than a simple split so
that a block which does not open the file can still be located, parsed and
moved back to the top.
"""

import datetime
from dataclasses import dataclass, field
from typing import Any

import frontmatter
import yaml

from bowerbird.file_utils.file_utils import ParseError
from bowerbird.utils import Value

BOM = "\ufeff"
TYPE_KEY = "type"


# --- Structure ---


@dataclass(frozen=True)
class FrontmatterBlock:
    """Line indexes of one delimiter pair."""

    start_line: int  # Opening delimiter
    end_line: int  # Closing delimiter


@dataclass
class NoteStructure:
    """Where the frontmatter sits in the raw text of a note."""

    raw: str
    lines: list[str]
    blocks: list[FrontmatterBlock] = field(default_factory=list)
    primary: FrontmatterBlock | None = None
    unterminated: bool = False

    @property
    def at_top(self) -> bool:
        """True when nothing but whitespace (or a BOM) precedes the primary block."""
        if self.primary is None:
            return True
        return self.prefix.lstrip(BOM).strip() == ""

    @property
    def prefix(self) -> str:
        if self.primary is None:
            return ""
        return "".join(self.lines[: self.primary.start_line])

    @property
    def yaml_text(self) -> str | None:
        if self.primary is None:
            return None
        return "".join(self.lines[self.primary.start_line + 1 : self.primary.end_line])

    @property
    def suffix(self) -> str:
        if self.primary is None:
            return self.raw
        return "".join(self.lines[self.primary.end_line + 1 :])

    @property
    def body(self) -> str:
        """Everything outside the primary block."""
        if self.primary is None:
            return self.raw
        return self.prefix + self.suffix

    @property
    def eol(self) -> str:
        return "\r\n" if "\r\n" in self.raw else "\n"


@dataclass
class ParsedNote:
    frontmatter: dict[str, Value]
    body: str
    structure: NoteStructure

    @property
    def has_frontmatter(self) -> bool:
        return self.structure.primary is not None


def is_delimiter(line: str) -> bool:
    return line.lstrip(BOM).strip() == "---"


def find_blocks(lines: list[str]) -> tuple[list[FrontmatterBlock], bool]:
    """Pair delimiter lines in order. Returns the blocks and whether one is left open."""
    blocks: list[FrontmatterBlock] = []
    opening: int | None = None
    for index, line in enumerate(lines):
        if not is_delimiter(line):
            continue
        if opening is None:
            opening = index
        else:
            blocks.append(FrontmatterBlock(opening, index))
            opening = None
    return blocks, opening is not None


def _is_mapping_block(lines: list[str], block: FrontmatterBlock) -> bool:
    text = "".join(lines[block.start_line + 1 : block.end_line])
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError:
        return False
    return isinstance(loaded, dict) and bool(loaded)


def read_structure(raw: str) -> NoteStructure:
    """Locate the frontmatter block of a note.

    The primary block is the first delimiter pair when it opens the file.
    Otherwise it is the first pair further down whose content is a non-empty
    YAML mapping, so that horizontal rules in the body are not mistaken for
    frontmatter.
    """
    lines = raw.splitlines(keepends=True)
    blocks, unterminated = find_blocks(lines)
    structure = NoteStructure(raw=raw, lines=lines, blocks=blocks, unterminated=unterminated)

    for block in blocks:
        structure.primary = block
        if structure.at_top or _is_mapping_block(lines, block):
            return structure
    structure.primary = None
    return structure


def _opens_with_delimiter(lines: list[str]) -> bool:
    for line in lines:
        if line.lstrip(BOM).strip():
            return is_delimiter(line.lstrip(BOM))
    return False


# --- Parsing ---


def normalize_value(value: Any) -> Value:
    """Convert YAML-decoded values into the closed `Value` shape."""
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, list):
        return [normalize_value(item) for item in value]
    if isinstance(value, dict):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def parse_frontmatter(yaml_text: str) -> dict[str, Value]:
    """
    Parse the YAML content of a frontmatter block.

    Args:
        yaml_text: Text between the delimiters

    Returns:
        Dictionary of frontmatter values

    Raises:
        ParseError: If the YAML is invalid or is not a mapping
    """
    try:
        loaded = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        error_msg = str(e)
        suggestions = []

        if "could not find expected ':'" in error_msg:
            suggestions.append("Missing space after colon - YAML requires 'key: value' not 'key:value'")
            for line in yaml_text.split("\n"):
                if ":" in line and ": " not in line:
                    suggestions.append(f"Problem line: '{line.strip()}'")
                    break
        if "[[" in yaml_text:
            suggestions.append("Wikilinks in frontmatter must be quoted: parent: \"[[Note]]\"")

        if suggestions:
            suggestion_text = "\n  ".join(suggestions)
            raise ParseError(f"Invalid YAML in frontmatter: {error_msg}\n\nSuggestions:\n  {suggestion_text}")
        raise ParseError(f"Invalid YAML in frontmatter: {error_msg}")

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ParseError("Frontmatter must be a YAML dictionary")
    return {str(key): normalize_value(value) for key, value in loaded.items()}


def parse_note_text(raw: str) -> ParsedNote:
    """Parse the frontmatter and body of a note's text.

    A note without any frontmatter parses to an empty mapping.

    Raises:
        ParseError: If the opening block is never closed or its YAML is invalid
    """
    structure = read_structure(raw)
    if structure.primary is None:
        if structure.unterminated and _opens_with_delimiter(structure.lines):
            raise ParseError("Unterminated frontmatter block: missing closing '---'")
        return ParsedNote(frontmatter={}, body=raw, structure=structure)

    yaml_text = structure.yaml_text or ""
    return ParsedNote(
        frontmatter=parse_frontmatter(yaml_text),
        body=structure.body,
        structure=structure,
    )


# --- Writing ---


def order_frontmatter(values: dict[str, Value], field_order: list[str]) -> dict[str, Value]:
    """Return `values` with `type` first, then `field_order`, then the remaining keys."""
    ordered: dict[str, Value] = {}
    if TYPE_KEY in values:
        ordered[TYPE_KEY] = values[TYPE_KEY]
    for key in field_order:
        if key in values and key not in ordered:
            ordered[key] = values[key]
    for key, value in values.items():
        if key not in ordered:
            ordered[key] = value
    return ordered


def dump_yaml(values: dict[str, Value]) -> str:
    """Serialize a frontmatter mapping in block style.

    SafeDumper quotes values that would otherwise re-parse differently,
    such as `[[wikilinks]]` and ISO date strings.
    """
    if not values:
        return ""
    return yaml.dump(
        values,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        Dumper=yaml.SafeDumper,
    )


def dump_frontmatter(post: frontmatter.Post, eol: str = "\n") -> str:
    """
    Serialize frontmatter.Post to note text.

    The body is appended verbatim after the closing delimiter so rewriting
    the metadata never reflows the note's content.

    Args:
        post: frontmatter.Post object to serialize
        eol: Line ending used for the delimiters and YAML lines

    Returns:
        String containing markdown with the YAML frontmatter block
    """
    yaml_str = dump_yaml(dict(post.metadata))
    text = f"---\n{yaml_str}---\n".replace("\n", eol)
    return text + post.content


def serialize_note(
    values: dict[str, Value], body: str, field_order: list[str], eol: str = "\n"
) -> str:
    post = frontmatter.Post(body)
    post.metadata.update(order_frontmatter(values, field_order))
    return dump_frontmatter(post, eol)


def replace_primary_yaml(
    structure: NoteStructure, values: dict[str, Value], field_order: list[str]
) -> str:
    """Rewrite only the YAML inside the primary block, leaving the rest of the text alone."""
    if structure.primary is None:
        return serialize_note(values, structure.raw, field_order, structure.eol)

    yaml_str = dump_yaml(order_frontmatter(values, field_order)).replace("\n", structure.eol)
    lines = structure.lines
    head = "".join(lines[: structure.primary.start_line + 1])
    tail = "".join(lines[structure.primary.end_line :])
    return head + yaml_str + tail


def move_primary_block_to_top(structure: NoteStructure) -> str:
    """Relocate the primary block to the start of the file, keeping a leading BOM."""
    if structure.primary is None:
        return structure.raw

    lines = structure.lines
    block_text = "".join(lines[structure.primary.start_line : structure.primary.end_line + 1])
    if not block_text.endswith("\n"):
        block_text += structure.eol
    remaining = structure.prefix + structure.suffix

    if remaining.startswith(BOM):
        return BOM + block_text + remaining[1:]
    return block_text + remaining

