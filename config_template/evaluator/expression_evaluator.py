"""
Expression evaluation against an explicit, per-call symbol table.

Expressions are Python expressions (or short statement sequences whose last
statement provides the value) run by the asteval interpreter. Every call gets
a fresh interpreter whose symbol table is built from the EvaluationContext, so
expressions can neither see nor modify anything outside that table, and there
is no shared slot to save and restore around nested or overlapping calls.
"""

import copy
import inspect
import io
import logging
from typing import Any, Dict, Optional

from asteval import Interpreter

from config_template.evaluator.pending import Pending
from config_template.evaluator.scope import EnvironmentView, EvaluationScope, ReadOnlyMapping
from config_template.system.errors import ExpressionEvaluationError
from config_template.system.models import EngineSettings, EvaluationContext

logger = logging.getLogger(__name__)

# Marks "not evaluating a structure", as opposed to an output slot holding None
NO_OUTPUT = object()


def _view(environment: Any) -> Any:
    return None if environment is None else EnvironmentView(environment)


class ExpressionEvaluator:
    """
    Evaluates one expression string against an EvaluationContext.

    Names visible to an expression, innermost last:
      hass, states, user, svars, vars, plus any host-registered symbols;
      the static environment's named variables;
      the dynamic environment's named variables;
      output (only while a structure is being evaluated).
    """

    def __init__(self, settings: Optional[EngineSettings] = None, symbols: Optional[Dict[str, Any]] = None):
        """
        Args:
            settings: Engine settings; the error sentinel default comes from here.
            symbols: Extra names (helper functions, constants) made available to
                     every expression. Variables and ambient names shadow them.
        """
        self.settings = settings or EngineSettings()
        self._symbols: Dict[str, Any] = dict(symbols or {})

    def register_symbol(self, name: str, value: Any) -> None:
        """Makes `value` available to every expression under `name`."""
        self._symbols[name] = value

    def build_scope(self, context: EvaluationContext, output: Any = NO_OUTPUT) -> EvaluationScope:
        """
        Builds the scope chain for one evaluation.

        Static bindings are applied before dynamic ones, so a name declared in
        both tiers resolves to the dynamic value. States and variables are
        exposed read-only; bare variable names bind copies.
        """
        scope = EvaluationScope(self._symbols, name="helpers")
        scope = scope.extend({
            "hass": context.host,
            "states": ReadOnlyMapping(context.states),
            "user": copy.deepcopy(context.user),
            "svars": _view(context.static_env),
            "vars": _view(context.dynamic_env),
        }, name="ambient")
        if context.static_env is not None:
            scope = scope.extend(copy.deepcopy(context.static_env.bindings()), name="static")
        if context.dynamic_env is not None:
            scope = scope.extend(copy.deepcopy(context.dynamic_env.bindings()), name="dynamic")
        if output is not NO_OUTPUT:
            scope = scope.extend({"output": output}, name="output")
        return scope

    def evaluate(
        self,
        source: str,
        context: EvaluationContext,
        sentinel: Any = None,
        output: Any = NO_OUTPUT
    ) -> Any:
        """
        Evaluates `source` and returns its value.

        Args:
            source: Expression text, without delimiters.
            context: Ambient values and variable environments.
            sentinel: Returned instead of raising when the expression fails.
            output: The in-progress result tree, when evaluating a structure.

        Returns:
            The expression's value; a Pending if the value is awaitable (a
            rejection settles to `sentinel`); `sentinel` on error.
        """
        expression = source.strip()
        if not expression:
            return None

        symbols = self.build_scope(context, output).flatten()
        try:
            value = self._run(expression, symbols)
        except ExpressionEvaluationError as e:
            logger.error(f"Template error: {e}")
            return sentinel

        if inspect.isawaitable(value):
            logger.debug(f"Expression '{expression}' returned an awaitable; deferring")
            return Pending(value, sentinel=sentinel, label=expression)
        return value

    def _run(self, expression: str, symbols: Dict[str, Any]) -> Any:
        writer = io.StringIO()
        interpreter = Interpreter(
            user_symbols=symbols,
            use_numpy=False,
            writer=writer,
            err_writer=writer,
        )
        try:
            value = interpreter.eval(expression, show_errors=False, raise_errors=True)
        except Exception as e:
            raise ExpressionEvaluationError(
                "Expression evaluation failed",
                expression=expression,
                error_details=f"{type(e).__name__}: {e}"
            ) from e
        finally:
            printed = writer.getvalue()
            if printed:
                logger.info(f"Expression output: {printed.rstrip()}")

        if interpreter.error:
            details = "; ".join(" ".join(err.get_error()) for err in interpreter.error)
            raise ExpressionEvaluationError("Expression evaluation failed", expression=expression, error_details=details)
        return value
