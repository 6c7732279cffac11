"""Parsers for JSON list arguments such as rootDependencies and excludes."""

import json
import logging
import os
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


def _read_content(value: str) -> str:
    """
    Return the content of the file at value, or value itself if no such file exists.

    Args:
        value: File path or JSON literal

    Returns:
        Content as string
    """
    if os.path.isfile(value):
        logger.info(f"Reading content from file: {value}")
        with open(value, 'r', encoding='utf-8') as f:
            return f.read()
    return value


class DependencyListParser:
    """Parser for lists of artifact references given as JSON literal or JSON file."""

    @staticmethod
    def parse_json_list(value: str, name: str = 'rootDependencies') -> List[Any]:
        """
        Parse a JSON array given either literally or as path to a file.

        Args:
            value: JSON array literal or path to a file containing one
            name: Name of the argument, used in error messages

        Returns:
            The parsed list

        Raises:
            ValueError: If the content is not valid JSON or not an array
        """
        content = _read_content(value)
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(
                f"'{name}' should be a valid JSON array or a path to a file containing a valid JSON array: {e}"
            ) from e
        if not isinstance(parsed, list):
            raise ValueError(f"'{name}' is not a valid JSON list")
        return parsed

    @staticmethod
    def parse_root_dependencies(value: str) -> List[Dict[str, Any]]:
        """Parse root dependencies of the form [{webpackageId, artifactId, ...}]."""
        root_dependencies = DependencyListParser.parse_json_list(value, 'rootDependencies')
        logger.info(f"Parsed {len(root_dependencies)} root dependencies")
        return root_dependencies

    @staticmethod
    def parse_excludes(value: str) -> List[Dict[str, str]]:
        """Parse exclude rules of the form [{webpackageId, artifactId}]; invalid rules are skipped."""
        excludes = []
        for rule in DependencyListParser.parse_json_list(value, 'excludes'):
            if isinstance(rule, dict) and isinstance(rule.get('artifactId'), str):
                excludes.append(rule)
            else:
                logger.error(f"Skipping invalid exclude rule {rule!r}")
        return excludes
