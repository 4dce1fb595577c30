"""
URI template matching.
Templates use ``{param}`` placeholders, each matching exactly one
``/``-delimited segment of a URI.
"""

import re
from typing import Dict, List, Optional

from journal_mcp.error_handling.exceptions import ConfigurationError

_PARAM_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


class UriTemplate:
    """A compiled ``{param}`` URI template."""

    def __init__(self, template: str):
        """
        Compile a template.

        Args:
            template: Template string, e.g. ``journal://entries/{id}``

        Raises:
            ConfigurationError: If a parameter name appears twice or braces are unbalanced
        """
        self.template = template
        self.params: List[str] = _PARAM_RE.findall(template)
        if len(set(self.params)) != len(self.params):
            raise ConfigurationError(f"Duplicate parameter name in URI template: {template}")

        pattern_parts = []
        position = 0
        for match in _PARAM_RE.finditer(template):
            literal = template[position:match.start()]
            self._check_literal(literal)
            pattern_parts.append(re.escape(literal))
            pattern_parts.append(f"(?P<{match.group(1)}>[^/]+)")
            position = match.end()
        tail = template[position:]
        self._check_literal(tail)
        pattern_parts.append(re.escape(tail))
        self._regex = re.compile("^" + "".join(pattern_parts) + "$")

    def _check_literal(self, literal: str) -> None:
        if "{" in literal or "}" in literal:
            raise ConfigurationError(f"Malformed URI template: {self.template}")

    @property
    def shape(self) -> str:
        """The template with parameter names erased; equal shapes match the same URIs."""
        return _PARAM_RE.sub("{}", self.template)

    def match(self, uri: str) -> Optional[Dict[str, str]]:
        """
        Match a URI against this template.

        Args:
            uri: Concrete URI

        Returns:
            Optional[Dict[str, str]]: Parameter values if the URI matches, None otherwise
        """
        match = self._regex.match(uri)
        if match is None:
            return None
        return match.groupdict()

    def __repr__(self) -> str:
        return f"UriTemplate({self.template!r})"
