"""bowerbird file utilities."""

from .gitignore import build_gitignore_spec, get_gitignore_patterns, should_ignore_path
from .file_utils import (
    FileError,
    FileWriteError,
    ParseError,
    decode_text,
    normalize_path_separators,
    read_file_bytes,
    write_file_atomic,
)
from .frontmatter import (
    FrontmatterBlock,
    NoteStructure,
    ParsedNote,
    dump_frontmatter,
    move_primary_block_to_top,
    order_frontmatter,
    parse_frontmatter,
    parse_note_text,
    read_structure,
    replace_primary_yaml,
    serialize_note,
)

__all__ = [
    "FileError",
    "FileWriteError",
    "FrontmatterBlock",
    "NoteStructure",
    "ParseError",
    "ParsedNote",
    "build_gitignore_spec",
    "decode_text",
    "dump_frontmatter",
    "get_gitignore_patterns",
    "move_primary_block_to_top",
    "normalize_path_separators",
    "order_frontmatter",
    "parse_frontmatter",
    "parse_note_text",
    "read_file_bytes",
    "read_structure",
    "replace_primary_yaml",
    "serialize_note",
    "should_ignore_path",
    "write_file_atomic",
]
