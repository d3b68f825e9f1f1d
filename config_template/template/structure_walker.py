"""
Recursive evaluation of embedded expressions in JSON-like trees.

The walker never mutates its input. Containers of the result are created
before their children are evaluated, so the result shape is observable
immediately; a child whose value is still pending is represented by a Pending
placeholder that writes the settled value back into its slot.
"""

import copy
import logging
from typing import Any, Mapping, Optional

from config_template.evaluator.expression_evaluator import NO_OUTPUT, ExpressionEvaluator
from config_template.evaluator.pending import Pending, PendingSet, PendingStructure
from config_template.system.models import EngineSettings, EvaluationContext
from config_template.template.template_utils import TemplateSyntax

logger = logging.getLogger(__name__)


class StructureWalk:
    """
    The streaming form of one walk.

    Attributes:
        value: The result tree. Usable right away; unsettled leaves hold Pending
               placeholders that are replaced in place as they settle.
        pending: Every Pending produced by this walk.
    """

    def __init__(self, expose_output: bool = True):
        self.value: Any = None
        self.pending = PendingSet()
        self.expose_output = expose_output

    def is_pending(self) -> bool:
        return not self.pending.settled()

    async def settle(self) -> Any:
        """Waits for every pending leaf and returns the fully resolved tree."""
        await self.pending.settle()
        return self.value


class StructureWalker:
    """Evaluates embedded expressions throughout a nested structure."""

    def __init__(self, evaluator: Optional[ExpressionEvaluator] = None, settings: Optional[EngineSettings] = None):
        self.evaluator = evaluator or ExpressionEvaluator(settings)
        self.settings = self.evaluator.settings
        self.syntax = TemplateSyntax(self.settings)

    def evaluate_structure(self, tree: Any, context: EvaluationContext) -> Any:
        """
        Evaluates `tree` against `context`.

        Returns:
            The result tree, or a PendingStructure when some leaf is pending.
            Await it for the settled tree; its `partial` is the eager shape.
        """
        walk = self.walk(tree, context)
        if walk.is_pending():
            logger.debug(f"evaluate_structure: {walk.pending.outstanding} pending leaf value(s)")
            return PendingStructure(walk)
        return walk.value

    def walk(self, tree: Any, context: EvaluationContext, expose_output: bool = True) -> StructureWalk:
        """
        Walks `tree` and returns the streaming result.

        Args:
            tree: The input structure; never modified.
            context: Ambient values and environments for the expressions.
            expose_output: Whether expressions see the result tree as `output`.
        """
        walk = StructureWalk(expose_output=expose_output)
        value = self._walk(tree, context, walk, root=True)
        walk.value = value
        if isinstance(value, Pending):
            value.add_done_callback(lambda settled: setattr(walk, "value", settled))
        return walk

    def _walk(self, node: Any, context: EvaluationContext, walk: StructureWalk, root: bool = False) -> Any:
        if isinstance(node, list):
            result_list = [None] * len(node)
            if root:
                walk.value = result_list
            for index, item in enumerate(node):
                self._place(result_list, index, self._walk(item, context, walk))
            return result_list

        if isinstance(node, Mapping):
            # Keys are laid out first so the key order matches the input
            result_dict = dict.fromkeys(node.keys())
            if root:
                walk.value = result_dict
            for key, item in node.items():
                self._place(result_dict, key, self._walk(item, context, walk))
            return result_dict

        if isinstance(node, str):
            return self.evaluate_template(node, context, walk)

        return copy.deepcopy(node)

    @staticmethod
    def _place(container: Any, key: Any, value: Any) -> None:
        container[key] = value
        if isinstance(value, Pending):
            value.add_done_callback(lambda settled: container.__setitem__(key, settled))

    def evaluate_template(
        self,
        template: str,
        context: EvaluationContext,
        walk: Optional[StructureWalk] = None,
        without_delimiters: bool = False
    ) -> Any:
        """
        Evaluates one string.

        Rules, in order:
          1. escape prefix: the remainder is returned verbatim;
          2. the whole string is one delimited expression: its typed result;
          3. delimited fragments are evaluated, stringified and substituted;
          4. no delimiters: returned unchanged, or evaluated as one whole
             expression when `without_delimiters` is set.

        Returns:
            The value, or a Pending (also tracked by `walk` when given).
        """
        if self.syntax.is_escaped(template):
            return self.syntax.strip_escape(template)

        output = NO_OUTPUT
        if walk is not None and walk.expose_output:
            output = walk.value

        whole = self.syntax.whole_expression(template)
        if whole is not None:
            value = self.evaluator.evaluate(whole, context, sentinel=self.settings.error_sentinel, output=output)
            return self._track(walk, value)

        parts = self.syntax.split(template)
        if any(isinstance(part, dict) for part in parts):
            pieces = []
            for part in parts:
                if isinstance(part, dict):
                    part = self.evaluator.evaluate(
                        part["source"], context,
                        sentinel=self.settings.fragment_error_text,
                        output=output
                    )
                pieces.append(self._track(walk, part))
            if not any(isinstance(piece, Pending) for piece in pieces):
                return "".join(str(piece) for piece in pieces)
            return self._track(walk, Pending(self._join(pieces), sentinel=self.settings.error_sentinel, label=template))

        if without_delimiters:
            value = self.evaluator.evaluate(template, context, sentinel=self.settings.error_sentinel, output=output)
            return self._track(walk, value)

        return template

    @staticmethod
    def _track(walk: Optional[StructureWalk], value: Any) -> Any:
        if walk is not None and isinstance(value, Pending):
            walk.pending.track(value)
        return value

    @staticmethod
    async def _join(pieces: list) -> str:
        texts = []
        for piece in pieces:
            if isinstance(piece, Pending):
                piece = await piece
            texts.append(str(piece))
        return "".join(texts)
