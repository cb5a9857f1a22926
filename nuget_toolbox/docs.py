"""Lookup over compiler-generated XML documentation files."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Optional

from .logging import get_logger
from .models import DocumentationEntry


class XmlDocumentationProvider:
    """Member documentation keyed by the verbatim ``name`` attribute of each entry.

    Populate once with :meth:`load`; lookups never raise and return ``None`` or
    an empty mapping for members without an entry.
    """

    def __init__(self) -> None:
        self.logger = get_logger("docs")
        self._members: Dict[str, ET.Element] = {}

    def __len__(self) -> int:
        return len(self._members)

    def load(self, path: Path) -> None:
        path = Path(path)
        if not path.exists():
            self.logger.debug("XML documentation file not found: %s", path)
            return
        try:
            root = ET.parse(path).getroot()
        except (ET.ParseError, OSError) as exc:
            self.logger.error("Failed to parse XML documentation file %s: %s", path, exc)
            return

        members = root.find("members")
        if members is None:
            self.logger.debug("No members found in XML documentation: %s", path)
            return
        for member in members.findall("member"):
            name = member.get("name")
            if name:
                self._members[name] = member
        self.logger.debug("Loaded %d documentation members from %s", len(self._members), path)

    def get_summary(self, member_id: str) -> Optional[str]:
        return self._child_text(member_id, "summary")

    def get_returns(self, member_id: str) -> Optional[str]:
        return self._child_text(member_id, "returns")

    def get_parameters(self, member_id: str) -> Dict[str, str]:
        member = self._members.get(member_id)
        if member is None:
            return {}
        params: Dict[str, str] = {}
        for element in member.findall("param"):
            name = element.get("name")
            if name:
                params[name] = normalize_whitespace(_text_of(element))
        return params

    def get_entry(self, member_id: str) -> Optional[DocumentationEntry]:
        if member_id not in self._members:
            return None
        return DocumentationEntry(
            summary=self.get_summary(member_id),
            params=self.get_parameters(member_id),
            returns=self.get_returns(member_id),
        )

    def _child_text(self, member_id: str, tag: str) -> Optional[str]:
        member = self._members.get(member_id)
        if member is None:
            return None
        element = member.find(tag)
        if element is None:
            return None
        return normalize_whitespace(_text_of(element))


def _text_of(element: ET.Element) -> str:
    return "".join(element.itertext())


def normalize_whitespace(text: str) -> str:
    """Trim every line, drop blank ones and join the rest with single spaces."""
    lines = (line.strip() for line in text.split("\n"))
    return " ".join(line for line in lines if line)


__all__ = ["XmlDocumentationProvider", "normalize_whitespace"]
