"""
System-wide Pydantic models: instance configuration, engine settings,
evaluation context and render results.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from config_template.system.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Either positional (list) or named (mapping) variable declarations
VariableDeclaration = Union[Dict[str, Any], List[Any]]


class VariableTier(str, Enum):
    """Evaluation phase of a variable declaration."""
    STATIC = "static"
    DYNAMIC = "dynamic"


class ReadinessState(str, Enum):
    """Readiness of a hosting TemplateEngine instance."""
    UNINITIALIZED = "uninitialized"
    AWAITING_STATIC = "awaiting_static"
    AWAITING_HELPERS = "awaiting_helpers"
    READY = "ready"


class ElementKind(str, Enum):
    """Which body of the configuration is rendered."""
    CARD = "card"
    ROW = "row"
    ELEMENT = "element"


# --- Engine Settings ---

class EngineSettings(BaseModel):
    """
    Tunable parts of the template syntax and the error fallbacks.
    The defaults are the public delimiter contract.
    """
    model_config = ConfigDict(frozen=True)

    open_delimiter: str = "<$"
    close_delimiter: str = "$>"
    escape_prefix: str = "$! "
    error_sentinel: Any = None
    fragment_error_text: str = "<error>"

    @field_validator("open_delimiter", "close_delimiter", "escape_prefix")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value

    @model_validator(mode="after")
    def _distinct_delimiters(self) -> "EngineSettings":
        if self.open_delimiter == self.close_delimiter:
            raise ValueError("open and close delimiters must differ")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        """
        Builds settings from CONFIG_TEMPLATE_* environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            EngineSettings with every variable that is set applied over the defaults.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for field_name in ("open_delimiter", "close_delimiter", "escape_prefix", "fragment_error_text"):
            env_name = f"CONFIG_TEMPLATE_{field_name.upper()}"
            if env_name in environ:
                overrides[field_name] = environ[env_name]
                logger.debug(f"EngineSettings: {env_name} overrides default")
        try:
            return cls(**overrides)
        except ValidationError as e:
            raise ConfigurationError("Invalid engine settings", error_details=str(e)) from e


# --- Instance Configuration ---

class TemplateConfig(BaseModel):
    """
    Configuration of one templated instance.

    Exactly one of card/row/element carries the body that gets evaluated;
    `style` is an optional map evaluated alongside it.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Optional[str] = None
    entities: Optional[Union[List[Any], str]] = None
    variables: Optional[VariableDeclaration] = None
    static_variables: Optional[VariableDeclaration] = Field(None, alias="staticVariables")
    card: Optional[Dict[str, Any]] = None
    row: Optional[Dict[str, Any]] = None
    element: Optional[Dict[str, Any]] = None
    style: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_sections(self) -> "TemplateConfig":
        present = [kind.value for kind in ElementKind if getattr(self, kind.value) is not None]
        if not present:
            raise ValueError("No card or row or element defined")
        if len(present) > 1:
            raise ValueError(f"Conflicting sections defined: {', '.join(present)}; use exactly one")
        if self.card is not None and not self.card.get("type"):
            raise ValueError("No card type defined")
        if self.element is not None and not self.element.get("type"):
            raise ValueError("No element type defined")
        return self

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]]) -> "TemplateConfig":
        """
        Validates a raw configuration mapping.

        Raises:
            ConfigurationError: If the configuration is missing or malformed.
        """
        if not raw:
            raise ConfigurationError("Invalid configuration")
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Invalid configuration", error_details=f"expected a mapping, got {type(raw).__name__}")
        try:
            config = cls.model_validate(dict(raw))
        except ValidationError as e:
            first = e.errors()[0]
            original = first.get("ctx", {}).get("error")
            message = str(original) if original is not None else first.get("msg", "Invalid configuration")
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise ConfigurationError(message, field=field, error_details=str(e)) from e

        if config.card is not None and config.card.get("type") == "picture-elements":
            logger.warning(
                "config-template should not be used with the picture-elements card itself. "
                "Instead use it as one of the elements."
            )
        return config

    @property
    def kind(self) -> ElementKind:
        """The section this configuration renders."""
        for kind in ElementKind:
            if getattr(self, kind.value) is not None:
                return kind
        raise ConfigurationError("No card or row or element defined")

    @property
    def section(self) -> Dict[str, Any]:
        """The raw (unevaluated) body for `kind`."""
        return getattr(self, self.kind.value)


# --- Evaluation ---

class EvaluationContext(BaseModel):
    """
    Ambient values visible to every expression of one evaluation pass.

    static_env and dynamic_env hold VariableEnvironment instances; they are typed
    loosely to keep this module free of engine imports.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    states: Dict[str, Any] = Field(default_factory=dict)
    user: Any = None
    host: Any = None
    static_env: Any = None
    dynamic_env: Any = None

    def with_environments(self, static_env: Any = None, dynamic_env: Any = None) -> "EvaluationContext":
        """Returns a copy of this context bound to the given environments."""
        return self.model_copy(update={"static_env": static_env, "dynamic_env": dynamic_env})


class RenderResult(BaseModel):
    """
    Outcome of one render of a TemplateEngine.

    `complete` is False when some leaves were still pending; those leaves hold
    Pending placeholders in `config`/`style` and are replaced in place as they
    settle. `pending` tracks them all; `await result.settle()` waits for them.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: ElementKind
    element: Any = None
    config: Any = None
    # Plain Any so placeholders patched later land in the same dicts
    style: Any = Field(default_factory=dict)
    element_style: Any = Field(default_factory=dict)
    complete: bool = True
    # PendingSet of the render; typed loosely to keep this module free of engine imports
    pending: Any = Field(None, exclude=True)

    async def settle(self) -> "RenderResult":
        """Waits until every pending leaf of this render has been filled in."""
        if self.pending is not None:
            await self.pending.settle()
        self.complete = True
        return self
