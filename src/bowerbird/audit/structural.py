"""Frontmatter hygiene checks on raw note text.

These run on the text before (and independently of) YAML decoding, because
duplicate keys and bracket typos disappear once the block is parsed. Each
check has a matching rewrite used by the repair pipeline; rewrites always
start from the current text of the file, never from stored offsets.
"""

import re
from dataclasses import dataclass

import yaml
from loguru import logger

from bowerbird.audit.links import repair_near_wikilink
from bowerbird.audit.types import AuditIssue, IssueCode, default_severity
from bowerbird.file_utils.frontmatter import (
    NoteStructure,
    move_primary_block_to_top,
    read_structure,
)

_KEY_LINE = re.compile(r"^(?P<key>[^\s#:'\"-][^:]*?):(?:[ \t]+(?P<value>.*?))?\s*$")
_ITEM_LINE = re.compile(r"^\s*-[ \t]+(?P<value>.*?)\s*$")


# --- Duplicate keys ---


@dataclass(frozen=True)
class KeyEntry:
    key: str
    start_line: int  # Relative to the YAML text
    end_line: int  # Exclusive
    value: str | None = None  # Comparable text of the value, None when empty


def _node_text(node: yaml.Node) -> str | None:
    if isinstance(node, yaml.ScalarNode):
        if node.tag == "tag:yaml.org,2002:null" or not node.value.strip():
            return None
        return node.value
    # Collections compare by content, whatever their block or flow style
    loaded = yaml.safe_load(yaml.serialize(node, Dumper=yaml.SafeDumper))
    if not loaded:
        return None
    return yaml.safe_dump(loaded, default_flow_style=True, sort_keys=True).strip()


def mapping_entries(yaml_text: str) -> list[KeyEntry] | None:
    """Top-level keys of a block-style mapping with the line span of each entry.

    An entry runs from its key line up to the next key line. Returns None when
    the text is not a block mapping or does not compose.
    """
    try:
        node = yaml.compose(yaml_text, Loader=yaml.SafeLoader)
    except yaml.YAMLError:
        return None
    if not isinstance(node, yaml.MappingNode) or node.flow_style:
        return None

    total_lines = len(yaml_text.splitlines())
    starts = [
        (str(key.value), key.start_mark.line, _node_text(value)) for key, value in node.value
    ]
    entries = []
    for index, (key, start, value) in enumerate(starts):
        end = starts[index + 1][1] if index + 1 < len(starts) else total_lines
        entries.append(KeyEntry(key, start, end, value))
    return entries


def duplicate_entries(yaml_text: str) -> dict[str, list[KeyEntry]]:
    """Keys that appear more than once, with every occurrence in order."""
    grouped: dict[str, list[KeyEntry]] = {}
    for entry in mapping_entries(yaml_text) or []:
        grouped.setdefault(entry.key, []).append(entry)
    return {key: found for key, found in grouped.items() if len(found) > 1}


def candidate_values(entries: list[KeyEntry]) -> list[str]:
    """Distinct non-empty values of a duplicated key, in file order."""
    values: list[str] = []
    for entry in entries:
        if entry.value is not None and entry.value not in values:
            values.append(entry.value)
    return values


def drop_duplicate_key(raw: str, key: str, keep: str | None = None) -> str | None:
    """Keep one occurrence of `key` in the primary block and drop the rest.

    The kept occurrence is the one whose value is `keep`, or without `keep`
    the first one that has a value.
    """
    structure = read_structure(raw)
    if structure.primary is None:
        return None
    entries = mapping_entries(structure.yaml_text or "")
    if not entries:
        return None

    occurrences = [entry for entry in entries if entry.key == key]
    if len(occurrences) < 2:
        return None
    if keep is None:
        kept = next((e for e in occurrences if e.value is not None), occurrences[0])
    else:
        kept = next((e for e in occurrences if e.value == keep), None)
        if kept is None:
            return None

    offset = structure.primary.start_line + 1
    dropped: set[int] = set()
    for entry in occurrences:
        if entry is not kept:
            dropped.update(range(offset + entry.start_line, offset + entry.end_line))
    return "".join(line for index, line in enumerate(structure.lines) if index not in dropped)


# --- Malformed wikilinks ---


@dataclass(frozen=True)
class MalformedLink:
    field: str
    list_index: int | None
    line: int  # Index into the note's lines
    value: str
    repaired: str


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def find_malformed_links(structure: NoteStructure) -> list[MalformedLink]:
    """Scan the primary block line by line for near-miss wikilinks.

    Covers `key: value` lines and `- item` lines of block lists.
    """
    if structure.primary is None:
        return []

    found: list[MalformedLink] = []
    current_key: str | None = None
    item_index = 0
    for line_no in range(structure.primary.start_line + 1, structure.primary.end_line):
        line = structure.lines[line_no].rstrip("\r\n")

        key_match = _KEY_LINE.match(line)
        if key_match:
            current_key = key_match.group("key").strip()
            item_index = 0
            value = key_match.group("value")
            if value:
                repaired = repair_near_wikilink(_unquote(value))
                if repaired is not None:
                    found.append(MalformedLink(current_key, None, line_no, _unquote(value), repaired))
            continue

        item_match = _ITEM_LINE.match(line)
        if item_match and current_key is not None:
            value = _unquote(item_match.group("value"))
            repaired = repair_near_wikilink(value)
            if repaired is not None:
                found.append(MalformedLink(current_key, item_index, line_no, value, repaired))
            item_index += 1

    return found


def repair_malformed_link(raw: str, field: str, list_index: int | None) -> str | None:
    """Rewrite the malformed link at (`field`, `list_index`) in place."""
    structure = read_structure(raw)
    for link in find_malformed_links(structure):
        if link.field != field or link.list_index != list_index:
            continue
        line = structure.lines[link.line]
        # Replace after the key so a key containing the same text is untouched
        start = line.index(":") + 1 if link.list_index is None else line.index("-") + 1
        new_line = line[:start] + line[start:].replace(link.value, link.repaired, 1)
        lines = list(structure.lines)
        lines[link.line] = new_line
        return "".join(lines)
    return None


# --- Block position ---


def is_relocatable(structure: NoteStructure) -> bool:
    """A block can be moved unattended only when it is the note's single, closed, valid block."""
    if structure.primary is None or len(structure.blocks) != 1 or structure.unterminated:
        return False
    try:
        yaml.safe_load(structure.yaml_text or "")
    except yaml.YAMLError:
        return False
    return True


def relocate_frontmatter(raw: str) -> str | None:
    structure = read_structure(raw)
    if structure.primary is None or structure.at_top:
        return None
    return move_primary_block_to_top(structure)


# --- Detection ---


def hygiene_issues(relative_path: str, structure: NoteStructure) -> list[AuditIssue]:
    """Raw-text issues for one note: block position, duplicate keys, malformed links."""
    issues: list[AuditIssue] = []
    if structure.primary is None:
        return issues

    yaml_text = structure.yaml_text or ""
    if not structure.at_top:
        issues.append(
            AuditIssue(
                code=IssueCode.FRONTMATTER_NOT_AT_TOP,
                severity=default_severity(IssueCode.FRONTMATTER_NOT_AT_TOP),
                file=relative_path,
                message=f"Frontmatter starts on line {structure.primary.start_line + 1}, "
                "not at the top of the file",
                auto_fixable=is_relocatable(structure),
                extra={"line": structure.primary.start_line + 1, "blocks": len(structure.blocks)},
            )
        )

    offset = structure.primary.start_line + 2  # 1-based line of the first YAML line
    for key, found in duplicate_entries(yaml_text).items():
        values = candidate_values(found)
        message = f"Key '{key}' appears {len(found)} times in frontmatter"
        if len(values) > 1:
            message += f" with different values: {', '.join(values)}"
        issues.append(
            AuditIssue(
                code=IssueCode.DUPLICATE_FRONTMATTER_KEYS,
                severity=default_severity(IssueCode.DUPLICATE_FRONTMATTER_KEYS),
                file=relative_path,
                field=key,
                message=message,
                auto_fixable=len(values) <= 1,
                extra={"lines": [entry.start_line + offset for entry in found], "values": values},
            )
        )

    for link in find_malformed_links(structure):
        location = link.field if link.list_index is None else f"{link.field}[{link.list_index}]"
        extra: dict = {"value": link.value, "line": link.line + 1}
        if link.list_index is not None:
            extra["list_index"] = link.list_index
        issues.append(
            AuditIssue(
                code=IssueCode.MALFORMED_WIKILINK,
                severity=default_severity(IssueCode.MALFORMED_WIKILINK),
                file=relative_path,
                field=link.field,
                message=f"Malformed wikilink in {location}: {link.value}",
                suggestion=link.repaired,
                auto_fixable=True,
                extra=extra,
            )
        )

    if issues:
        logger.trace(f"{relative_path}: {len(issues)} hygiene issues")
    return issues
