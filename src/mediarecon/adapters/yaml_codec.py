"""YAML frontmatter codec for content records."""

import io
import re
from typing import Any

import yaml

_FRONTMATTER = re.compile(r"\A\s*---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)


class YamlFrontmatter:
    """
    Split and join a ``---`` delimited YAML block and the body after it.

    Exported content may carry a byte-order mark or CRLF line endings; both
    are normalized before matching. Decoding never fails on content: a
    block that is not valid YAML or not a mapping leaves the text as body.
    """

    def decode(self, text: str) -> tuple[dict[str, Any], str]:
        text = text.lstrip("\ufeff").replace("\r\n", "\n")
        match = _FRONTMATTER.match(text)
        if not match:
            return {}, text
        try:
            meta = yaml.safe_load(io.StringIO(match.group(1))) or {}
        except yaml.YAMLError:
            return {}, text
        if not isinstance(meta, dict):
            return {}, text
        return meta, text[match.end():]

    def encode(self, meta: dict[str, Any]) -> str:
        if not meta:
            return ""
        dumped = yaml.safe_dump(
            meta, sort_keys=False, allow_unicode=True, default_flow_style=False
        )
        return f"---\n{dumped}---\n"
