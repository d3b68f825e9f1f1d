"""
Hosting instance for one templated configuration.

TemplateEngine collects the inputs a host supplies over time (configuration,
global variable declarations, runtime context, element factory), keeps the
static variable environment cached for the lifetime of a configuration, and
turns the configuration into a rendered element on demand.

Readiness:
    UNINITIALIZED     no configuration or no context yet
    AWAITING_STATIC   static variables not built or still pending
    AWAITING_HELPERS  no element factory yet
    READY             render() may be called
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from config_template.engine.change_detector import has_observable_change
from config_template.evaluator.expression_evaluator import ExpressionEvaluator
from config_template.evaluator.pending import Pending, PendingSet
from config_template.system.errors import EnvironmentNotReadyError
from config_template.system.models import (
    ElementKind, EngineSettings, EvaluationContext, ReadinessState, RenderResult, TemplateConfig,
)
from config_template.template.structure_walker import StructureWalker
from config_template.variables.environment_builder import VariableEnvironment, VariableEnvironmentBuilder

logger = logging.getLogger(__name__)


@runtime_checkable
class ElementFactory(Protocol):
    """Creates host elements from evaluated configuration sections."""

    def create_card_element(self, config: Dict[str, Any]) -> Any:
        ...

    def create_row_element(self, config: Dict[str, Any]) -> Any:
        ...

    def create_hui_element(self, config: Dict[str, Any]) -> Any:
        ...


class PassthroughElementFactory:
    """Element factory that returns the evaluated section itself."""

    def create_card_element(self, config: Dict[str, Any]) -> Any:
        return config

    def create_row_element(self, config: Dict[str, Any]) -> Any:
        return config

    def create_hui_element(self, config: Dict[str, Any]) -> Any:
        return config


_FACTORY_METHODS = {
    ElementKind.CARD: "create_card_element",
    ElementKind.ROW: "create_row_element",
    ElementKind.ELEMENT: "create_hui_element",
}


class TemplateEngine:
    """Evaluates one configuration against a changing context."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        symbols: Optional[Dict[str, Any]] = None,
        helpers: Optional[ElementFactory] = None
    ):
        """
        Args:
            settings: Delimiters and error fallbacks.
            symbols: Extra names available to every expression.
            helpers: Element factory; can also be supplied later via set_helpers().
        """
        self.settings = settings or EngineSettings()
        self.walker = StructureWalker(ExpressionEvaluator(self.settings, symbols))
        self.builder = VariableEnvironmentBuilder(self.walker)

        self._config: Optional[TemplateConfig] = None
        self._context: Optional[EvaluationContext] = None
        self._helpers: Optional[ElementFactory] = helpers
        self._global_variables: Any = None
        self._global_static_variables: Any = None
        self._static_env: Any = None
        self._config_changed = False

    # --- Inputs ---

    @property
    def config(self) -> Optional[TemplateConfig]:
        return self._config

    @property
    def context(self) -> Optional[EvaluationContext]:
        return self._context

    def set_config(self, raw: Any) -> TemplateConfig:
        """
        Validates and installs a new configuration.

        Raises:
            ConfigurationError: If the configuration is malformed. The previous
                configuration stays in place.
        """
        config = TemplateConfig.from_raw(raw)
        self._config = config
        self._config_changed = True
        self._invalidate_static("configuration replaced")
        self._advance()
        return config

    def set_global_variables(self, variables: Any = None, static_variables: Any = None) -> None:
        """Installs the host-level dynamic and static variable declarations."""
        static_changed = static_variables != self._global_static_variables
        self._global_variables = variables
        self._global_static_variables = static_variables
        if static_changed:
            self._invalidate_static("global static variables replaced")
        self._advance()

    def set_helpers(self, helpers: ElementFactory) -> None:
        self._helpers = helpers
        self._advance()

    def update_context(self, states: Optional[Dict[str, Any]] = None, user: Any = None, host: Any = None) -> bool:
        """
        Installs a new runtime context.

        Returns:
            Whether the change calls for a new render (see should_update).
        """
        old_context = self._context
        self._context = EvaluationContext(states=dict(states or {}), user=user, host=host)
        self._advance()
        return self.should_update(old_context)

    # --- Readiness ---

    @property
    def state(self) -> ReadinessState:
        if self._config is None or self._context is None:
            return ReadinessState.UNINITIALIZED
        if self._settled_static() is None:
            return ReadinessState.AWAITING_STATIC
        if self._helpers is None:
            return ReadinessState.AWAITING_HELPERS
        return ReadinessState.READY

    def _advance(self) -> None:
        if self._config is not None and self._context is not None and self._static_env is None:
            self.ensure_static()
        logger.debug(f"TemplateEngine state: {self.state.value}")

    def _invalidate_static(self, reason: str) -> None:
        if self._static_env is not None:
            logger.debug(f"Discarding static environment: {reason}")
        self._static_env = None

    def _settled_static(self) -> Optional[VariableEnvironment]:
        static_env = self._static_env
        if isinstance(static_env, Pending):
            if not static_env.done():
                return None
            static_env = static_env.result()
            self._static_env = static_env
        return static_env

    def ensure_static(self) -> Any:
        """
        Returns the cached static environment, building it if needed.

        Returns:
            The VariableEnvironment, or a PendingEnvironment while it settles.
        """
        if self._config is None or self._context is None:
            raise EnvironmentNotReadyError("A configuration and a context are required to build static variables")
        if self._static_env is None:
            logger.debug("Building static environment")
            self._static_env = self.builder.build_static(
                self._global_static_variables, self._config.static_variables, self._context
            )
        return self._static_env

    async def ensure_static_async(self) -> VariableEnvironment:
        """Returns the static environment once it has fully settled."""
        static_env = self.ensure_static()
        if isinstance(static_env, Pending):
            settled = await static_env
            # A newer configuration may have replaced it while we waited
            if self._static_env is static_env:
                self._static_env = settled
            return settled
        return static_env

    # --- Evaluation ---

    def _build_dynamic(self, context: EvaluationContext) -> Any:
        static_env = self._settled_static()
        return self.builder.build_dynamic(static_env, self._global_variables, self._config.variables, context)

    def should_update(self, old_context: Optional[EvaluationContext]) -> bool:
        """
        Whether the current context differs observably from `old_context`.

        Always True until the engine is READY, right after a configuration
        change, and when there is no previous context.
        """
        if self.state != ReadinessState.READY:
            return True
        if self._config_changed or old_context is None:
            return True

        dynamic_env = self._build_dynamic(self._context)
        if isinstance(dynamic_env, Pending):
            dynamic_env = dynamic_env.partial
        bound = self._context.with_environments(self._settled_static(), dynamic_env)
        try:
            return has_observable_change(old_context, bound, self._config.entities, self.walker)
        finally:
            # This environment only serves the comparison
            for pending in dynamic_env.pending:
                pending.cancel()

    def render(self) -> RenderResult:
        """
        Evaluates the configuration without waiting for pending results.

        Leaves that are still pending hold Pending placeholders. Inside a running
        event loop they are replaced in place as they settle; `complete` tells
        whether any were left and `await result.settle()` waits for all of them.

        Raises:
            EnvironmentNotReadyError: If the engine is not READY.
        """
        if self.state != ReadinessState.READY:
            raise EnvironmentNotReadyError(f"Cannot render in state '{self.state.value}'")

        dynamic_env = self._build_dynamic(self._context)
        if isinstance(dynamic_env, Pending):
            dynamic_env = dynamic_env.partial
        context = self._context.with_environments(self._settled_static(), dynamic_env)

        section_walk = self.walker.walk(self._config.section, context)
        style_walk = self.walker.walk(self._config.style or {}, context)
        pending = PendingSet()
        for pending_set in (dynamic_env.pending, section_walk.pending, style_walk.pending):
            pending.extend(pending_set)
        return self._finish_render(section_walk.value, style_walk.value, pending)

    async def render_async(self) -> RenderResult:
        """
        Evaluates the configuration and waits until every result has settled.

        Static variables settle first, then dynamic variables, then the
        section and style walks.
        """
        if self._config is None or self._context is None:
            raise EnvironmentNotReadyError(f"Cannot render in state '{self.state.value}'")
        static_env = await self.ensure_static_async()
        if self._helpers is None:
            raise EnvironmentNotReadyError(f"Cannot render in state '{self.state.value}'")

        dynamic_env = self.builder.build_dynamic(static_env, self._global_variables, self._config.variables, self._context)
        if isinstance(dynamic_env, Pending):
            dynamic_env = await dynamic_env
        context = self._context.with_environments(static_env, dynamic_env)

        section = await self.walker.walk(self._config.section, context).settle()
        style = await self.walker.walk(self._config.style or {}, context).settle()
        return self._finish_render(section, style, PendingSet())

    def _finish_render(self, section: Any, style: Any, pending: PendingSet) -> RenderResult:
        kind = self._config.kind
        element = getattr(self._helpers, _FACTORY_METHODS[kind])(section)
        if self._context.host is not None and hasattr(element, "hass"):
            element.hass = self._context.host

        element_style: Dict[str, Any] = {}
        if kind == ElementKind.ELEMENT and isinstance(section, dict) and isinstance(section.get("style"), dict):
            element_style = section["style"]

        self._config_changed = False
        complete = pending.settled()
        if not complete:
            logger.debug("Rendered with pending values still in flight")
        return RenderResult(
            kind=kind,
            element=element,
            config=section,
            style=style if isinstance(style, dict) else {},
            element_style=element_style,
            complete=complete,
            pending=pending,
        )
