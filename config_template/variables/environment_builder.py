"""
Layered variable environments.

Declarations come in two tiers (static, evaluated once per configuration load;
dynamic, evaluated on every context change) and from two sources (global,
supplied by the host; local, from one configuration). Named entries from the
local source override global ones; positional entries are concatenated,
global first.
"""

import keyword
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from config_template.evaluator.pending import Pending, PendingEnvironment, PendingSet
from config_template.system.errors import ConfigurationError, EnvironmentNotReadyError
from config_template.system.models import EvaluationContext, VariableTier
from config_template.template.structure_walker import StructureWalker

logger = logging.getLogger(__name__)


class VariableEnvironment:
    """
    Resolved variables of one tier.

    Indexable by position (``vars[0]``) and by name (``vars['x']``). Named
    entries whose names are valid identifiers are also bound as bare names in
    the expression scope; `initializer` lists those names in declaration order.
    """

    def __init__(self, tier: VariableTier):
        self.tier = tier
        self.positional: List[Any] = []
        self.named: Dict[str, Any] = {}
        self.initializer: List[str] = []
        self.pending = PendingSet()

    def bindings(self) -> Dict[str, Any]:
        """Name -> value for every name in `initializer`, in declaration order."""
        return {name: self.named[name] for name in self.initializer}

    def is_settled(self) -> bool:
        """Whether no entry is still pending."""
        return self.pending.settled()

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, str):
            return self.named[key]
        return self.positional[key]

    def __contains__(self, key: Any) -> bool:
        if isinstance(key, str):
            return key in self.named
        return key in self.positional

    def __iter__(self) -> Iterator[Any]:
        return iter(self.positional)

    def __len__(self) -> int:
        return len(self.positional)

    def __repr__(self) -> str:
        return (f"<VariableEnvironment {self.tier.value} positional={len(self.positional)} "
                f"named={list(self.named.keys())}>")


def merge_declarations(global_decl: Any, local_decl: Any) -> Tuple[List[Any], Dict[str, Any]]:
    """
    Merges the global and local declarations of one tier.

    Returns:
        (positional, named): positional entries global then local; named
        entries global first, local overriding by name.

    Raises:
        ConfigurationError: If a declaration is neither a list nor a mapping.
    """
    positional: List[Any] = []
    named: Dict[str, Any] = {}
    for source, declaration in (("global", global_decl), ("local", local_decl)):
        if declaration is None:
            continue
        if isinstance(declaration, list):
            positional.extend(declaration)
        elif isinstance(declaration, Mapping):
            named.update(declaration)
        else:
            raise ConfigurationError(
                "Variable declarations must be a list or a mapping",
                field=f"{source} variables",
                error_details=f"got {type(declaration).__name__}"
            )
    return positional, named


class VariableEnvironmentBuilder:
    """Builds static and dynamic VariableEnvironments."""

    def __init__(self, walker: Optional[StructureWalker] = None):
        self.walker = walker or StructureWalker()

    def build(
        self,
        tier: VariableTier,
        global_decl: Any,
        local_decl: Any,
        context: EvaluationContext,
        static_env: Any = None
    ) -> Any:
        """
        Builds one tier.

        Entries are evaluated positional first, then named in declaration order;
        each entry sees the entries evaluated before it. String values are
        evaluated as whole expressions (typed results); other values are walked
        as structures.

        Args:
            tier: Which tier is built.
            global_decl: Host-level declaration for the tier, or None.
            local_decl: The configuration's own declaration, or None.
            context: Host states, user and host object.
            static_env: The settled static environment (dynamic tier only).

        Returns:
            The VariableEnvironment, or a PendingEnvironment if any entry is pending.

        Raises:
            ConfigurationError: If a declaration has the wrong shape.
            EnvironmentNotReadyError: If a dynamic build is requested without a
                settled static environment.
        """
        positional, named = merge_declarations(global_decl, local_decl)
        environment = VariableEnvironment(tier)

        if tier == VariableTier.STATIC:
            build_context = context.with_environments(static_env=environment, dynamic_env=None)
        else:
            static_env = self._require_settled_static(static_env)
            build_context = context.with_environments(static_env=static_env, dynamic_env=environment)

        for value in positional:
            environment.positional.append(None)
            self._place(environment.positional, len(environment.positional) - 1,
                        self._evaluate_entry(value, build_context, environment.pending))

        for name, value in named.items():
            environment.named[name] = None
            self._place(environment.named, name, self._evaluate_entry(value, build_context, environment.pending))
            if name.isidentifier() and not keyword.iskeyword(name):
                environment.initializer.append(name)
            else:
                logger.warning(f"Variable '{name}' is not a valid name; it is only reachable by subscript")

        logger.debug(f"Built {tier.value} environment: {environment!r}, pending={environment.pending.outstanding}")
        if environment.is_settled():
            return environment
        return PendingEnvironment(environment, environment.pending, label=f"{tier.value} variables")

    def build_static(self, global_static: Any, local_static: Any, context: EvaluationContext) -> Any:
        return self.build(VariableTier.STATIC, global_static, local_static, context)

    def build_dynamic(self, static_env: Any, global_dynamic: Any, local_dynamic: Any, context: EvaluationContext) -> Any:
        return self.build(VariableTier.DYNAMIC, global_dynamic, local_dynamic, context, static_env=static_env)

    @staticmethod
    def _require_settled_static(static_env: Any) -> Optional[VariableEnvironment]:
        if isinstance(static_env, Pending):
            if not static_env.done():
                raise EnvironmentNotReadyError("The static environment is still pending; await it before building the dynamic tier")
            static_env = static_env.result()
        if static_env is None:
            raise EnvironmentNotReadyError("The static environment has not been built")
        if not static_env.is_settled():
            raise EnvironmentNotReadyError("The static environment still has pending entries")
        return static_env

    def _evaluate_entry(self, value: Any, context: EvaluationContext, pending: PendingSet) -> Any:
        if isinstance(value, str):
            result = self.walker.evaluate_template(value, context, without_delimiters=True)
            if isinstance(result, Pending):
                pending.track(result)
            return result
        walk = self.walker.walk(value, context, expose_output=False)
        pending.extend(walk.pending)
        return walk.value

    @staticmethod
    def _place(container: Any, key: Any, value: Any) -> None:
        container[key] = value
        if isinstance(value, Pending):
            value.add_done_callback(lambda settled: container.__setitem__(key, settled))


def build_static_environment(
    global_static: Any,
    local_static: Any,
    context: Optional[EvaluationContext] = None,
    builder: Optional[VariableEnvironmentBuilder] = None
) -> Any:
    """Builds the static tier. See VariableEnvironmentBuilder.build."""
    builder = builder or VariableEnvironmentBuilder()
    return builder.build_static(global_static, local_static, context or EvaluationContext())


def build_dynamic_environment(
    static_env: Any,
    global_dynamic: Any,
    local_dynamic: Any,
    context: Optional[EvaluationContext] = None,
    builder: Optional[VariableEnvironmentBuilder] = None
) -> Any:
    """Builds the dynamic tier against a settled static environment. See VariableEnvironmentBuilder.build."""
    builder = builder or VariableEnvironmentBuilder()
    return builder.build_dynamic(static_env, global_dynamic, local_dynamic, context or EvaluationContext())
