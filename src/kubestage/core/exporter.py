#!/usr/bin/env python3
"""
KUBESTAGE EXPORTER - Manifest Rendering
---------------------------------------
Turns in-memory object bodies back into Kubernetes-style YAML with the
usual top-level key order, and loads YAML documents into plain Python
structures for the overlay and the CLI.

Author: KubeStage Team
Date: 2026-10-17
"""

import io
from typing import Any, Dict, List, Union

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq
from ruamel.yaml.error import YAMLError

from kubestage.core.errors import ConfigurationError


def to_plain(data: Any) -> Any:
    """Recursively converts ruamel containers into plain dicts and lists."""
    if isinstance(data, dict):
        return {str(k): to_plain(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [to_plain(item) for item in data]
    if isinstance(data, str):
        # Drops quoting-style subclasses such as DoubleQuotedScalarString
        return str(data)
    return data


class KubeExporter:
    """
    The Reconstructor: converts object bodies to YAML strings and back.
    """

    def __init__(self):
        self.yaml = YAML(typ='rt')
        self.yaml.preserve_quotes = True
        # 2 spaces for mappings, sequences indented 4 with the dash at offset 2
        self.yaml.indent(mapping=2, sequence=4, offset=2)
        self.yaml.width = 4096
        self.preferred_order = ["apiVersion", "kind", "metadata", "spec", "data", "stringData", "status"]

    def _get_sorted_map(self, data: Any) -> Any:
        """
        Recursively rebuilds mappings with the preferred top-level order.
        Unknown keys keep their relative original position; lists keep order.
        """
        if isinstance(data, list):
            seq = CommentedSeq()
            seq.extend(self._get_sorted_map(item) for item in data)
            return seq
        if not isinstance(data, dict):
            return data

        keys = list(data.keys())

        def sort_logic(key):
            if key in self.preferred_order:
                return self.preferred_order.index(key)
            return len(self.preferred_order) + keys.index(key)

        sorted_map = CommentedMap()
        for key in sorted(keys, key=sort_logic):
            sorted_map[key] = self._get_sorted_map(data[key])
        return sorted_map

    def export(self, docs: Union[Dict[str, Any], List[Dict[str, Any]]]) -> str:
        """
        Exports one or many bodies into a single string with explicit
        document separators between them.
        """
        stream = io.StringIO()
        docs = docs if isinstance(docs, list) else [docs]

        for i, doc in enumerate(docs):
            if not doc:
                continue
            if i > 0:
                stream.write("---\n")
            self.yaml.dump(self._get_sorted_map(doc), stream)

        return stream.getvalue()

    def load(self, content: Union[str, bytes], source: str = "<string>") -> Any:
        """Parses a single YAML document into plain Python data."""
        if isinstance(content, bytes):
            content = content.decode("utf-8")
        try:
            return to_plain(self.yaml.load(content))
        except YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {source}: {e}") from e

    def load_all(self, content: Union[str, bytes], source: str = "<string>") -> List[Any]:
        """Parses a multi-document stream, dropping empty documents."""
        if isinstance(content, bytes):
            content = content.decode("utf-8")
        try:
            return [to_plain(doc) for doc in self.yaml.load_all(content) if doc]
        except YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {source}: {e}") from e
