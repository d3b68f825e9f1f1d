"""Utility functions for locating embedded expressions in strings."""
import re
from typing import Any, Dict, List, Optional

from config_template.system.models import EngineSettings


class TemplateSyntax:
    """
    Compiled delimiter rules for one EngineSettings instance.

    Supports:
    - Literal escape: "$! text" -> "text", never evaluated
    - Whole-string expression: "<$ expr $>" -> typed result of expr
    - Interpolation: "a <$ x $> b <$ y $>" -> each fragment stringified in place
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        open_ = re.escape(self.settings.open_delimiter)
        close = re.escape(self.settings.close_delimiter)
        # The body may not contain the closing delimiter
        body = rf"((?:(?!{close}).)*?)"
        self._pattern = re.compile(rf"{open_}{body}{close}", re.DOTALL)

    def is_escaped(self, text: str) -> bool:
        return text.startswith(self.settings.escape_prefix)

    def strip_escape(self, text: str) -> str:
        return text[len(self.settings.escape_prefix):]

    def whole_expression(self, text: str) -> Optional[str]:
        """
        Returns the expression body if `text` is exactly one delimited
        expression with nothing before or after it, else None.
        """
        match = self._pattern.fullmatch(text)
        if match is None:
            return None
        return match.group(1)

    def detect_expressions(self, text: str) -> List[Dict[str, Any]]:
        """
        Finds every delimited expression in `text`.

        Returns:
            List of dicts with the expression body ("source"), the full
            delimited match ("match") and its "start"/"end" offsets, in order.
        """
        if not isinstance(text, str):
            return []
        return [
            {
                "source": match.group(1),
                "match": match.group(0),
                "start": match.start(),
                "end": match.end(),
            }
            for match in self._pattern.finditer(text)
        ]

    def split(self, text: str) -> List[Any]:
        """
        Splits `text` into alternating literal strings and expression dicts
        (as returned by detect_expressions), preserving order.
        """
        parts: List[Any] = []
        position = 0
        for found in self.detect_expressions(text):
            if found["start"] > position:
                parts.append(text[position:found["start"]])
            parts.append(found)
            position = found["end"]
        if position < len(text):
            parts.append(text[position:])
        return parts

