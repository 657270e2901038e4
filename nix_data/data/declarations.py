"""
Collect the package attributes declared in configuration files.

Reading a single file is delegated to a `DeclarationReader`; the collector
only decides which reader to use and unions the results.
"""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import yaml

from nix_data.domain.errors import ConfigReadError

logger = logging.getLogger(__name__)

DEFAULT_DECLARATION_KEY = "environment.systemPackages"

_OPENERS = {"(": ")", "[": "]", "{": "}"}


class DeclarationReader(ABC):
    """Extracts the list declared under a key from the content of one file."""

    @abstractmethod
    def read_list(self, content: str, key: str) -> List[str]:
        """Return the ordered values under `key`, or raise ConfigReadError."""
        pass


def strip_nix_comments(content: str) -> str:
    """Remove `# ...` and `/* ... */` comments, leaving string literals alone."""
    out: List[str] = []
    i = 0
    n = len(content)
    while i < n:
        c = content[i]
        if c == '"':
            end = _skip_string(content, i)
            out.append(content[i:end])
            i = end
        elif content.startswith("''", i):
            end = content.find("''", i + 2)
            end = n if end == -1 else end + 2
            out.append(content[i:end])
            i = end
        elif c == "#":
            end = content.find("\n", i)
            i = n if end == -1 else end
        elif content.startswith("/*", i):
            end = content.find("*/", i + 2)
            if end == -1:
                raise ConfigReadError("Unterminated block comment")
            out.append(" ")
            i = end + 2
        else:
            out.append(c)
            i += 1
    return "".join(out)


def _skip_string(content: str, start: int) -> int:
    """Index just past the double-quoted string starting at `start`."""
    i = start + 1
    while i < len(content):
        if content[i] == "\\":
            i += 2
            continue
        if content[i] == '"':
            return i + 1
        i += 1
    raise ConfigReadError("Unterminated string literal")


class NixListReader(DeclarationReader):
    """
    Reads `key = [ a b (c d) ];` (optionally `key = with pkgs; [ ... ];`)
    from a Nix expression. Each top-level element is returned as written.
    """

    def read_list(self, content: str, key: str) -> List[str]:
        text = strip_nix_comments(content)
        pattern = re.compile(
            r"(?<![\w.'-])" + re.escape(key) + r"\s*=\s*(?:with\s+[^;]+;\s*)?"
        )
        match = pattern.search(text)
        if not match:
            raise ConfigReadError(f"'{key}' is not declared")

        start = match.end()
        if start >= len(text) or text[start] != "[":
            raise ConfigReadError(f"'{key}' is not assigned a list literal")
        return self._elements(text, start)

    def _elements(self, text: str, start: int) -> List[str]:
        elements: List[str] = []
        stack: List[str] = []
        current: List[str] = []
        i = start + 1
        while i < len(text):
            c = text[i]
            if c == '"':
                end = _skip_string(text, i)
                current.append(text[i:end])
                i = end
                continue
            if not stack and c == "]":
                if current:
                    elements.append("".join(current))
                return elements
            if not stack and c.isspace():
                if current:
                    elements.append("".join(current))
                    current = []
                i += 1
                continue
            if c in _OPENERS:
                stack.append(_OPENERS[c])
            elif stack and c == stack[-1]:
                stack.pop()
            elif c in _OPENERS.values():
                raise ConfigReadError(f"Unbalanced '{c}' in list")
            current.append(c)
            i += 1
        raise ConfigReadError("Unterminated list literal")


class YamlListReader(DeclarationReader):
    """Reads a dotted key (e.g. `environment.systemPackages`) from a YAML or JSON document."""

    def read_list(self, content: str, key: str) -> List[str]:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigReadError(f"Invalid YAML: {e}") from e

        # Accept both a literal dotted key and nested mappings.
        if isinstance(data, dict) and key in data:
            value = data[key]
        else:
            value = data
            for part in key.split("."):
                if not isinstance(value, dict) or part not in value:
                    raise ConfigReadError(f"'{key}' is not declared")
                value = value[part]

        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigReadError(f"'{key}' is not a list of strings")
        return list(value)


class AttributeCollector:
    """Unions the attributes declared across several declaration sources."""

    def __init__(
        self,
        key: str = DEFAULT_DECLARATION_KEY,
        readers: Optional[Dict[str, DeclarationReader]] = None,
        default_reader: Optional[DeclarationReader] = None,
    ):
        self.key = key
        yaml_reader = YamlListReader()
        self.readers: Dict[str, DeclarationReader] = readers if readers is not None else {
            ".yaml": yaml_reader,
            ".yml": yaml_reader,
            ".json": yaml_reader,
        }
        self.default_reader = default_reader or NixListReader()

    def reader_for(self, path: Path) -> DeclarationReader:
        return self.readers.get(path.suffix.lower(), self.default_reader)

    def read_source(self, path: Path) -> List[str]:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigReadError(f"Could not read {path}: {e}") from e
        return self.reader_for(path).read_list(content, self.key)

    def collect(self, paths: Iterable[str | Path]) -> Set[str]:
        """
        Union of the attributes of every readable source.

        A source that cannot be read or parsed contributes nothing; it never
        aborts the collection.
        """
        attributes: Set[str] = set()
        for raw in paths:
            path = Path(raw)
            try:
                declared = self.read_source(path)
            except ConfigReadError as e:
                logger.debug(f"Skipping declaration source {path}: {e}")
                continue
            attributes.update(declared)
        return attributes
