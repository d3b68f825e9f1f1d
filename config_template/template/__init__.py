"""Delimiter scanning and structure walking."""

from .structure_walker import StructureWalk, StructureWalker
from .template_utils import TemplateSyntax

__all__ = [
    "StructureWalk",
    "StructureWalker",
    "TemplateSyntax"
]
