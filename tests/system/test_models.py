"""
Unit tests for system-wide Pydantic models defined in config_template.system.models.
"""
import logging

import pytest
from pydantic import ValidationError

from config_template.system.errors import ConfigurationError
from config_template.system.models import (
    ElementKind, EngineSettings, EvaluationContext, RenderResult, TemplateConfig,
)


# --- Test EngineSettings ---

def test_engine_settings_defaults():
    settings = EngineSettings()
    assert settings.open_delimiter == "<$"
    assert settings.close_delimiter == "$>"
    assert settings.escape_prefix == "$! "
    assert settings.error_sentinel is None
    assert settings.fragment_error_text == "<error>"

def test_engine_settings_invalid():
    with pytest.raises(ValidationError):
        EngineSettings(open_delimiter="")
    with pytest.raises(ValidationError):
        EngineSettings(open_delimiter="%%", close_delimiter="%%")

def test_engine_settings_frozen():
    settings = EngineSettings()
    with pytest.raises(ValidationError):
        settings.open_delimiter = "{{"

def test_engine_settings_from_env():
    settings = EngineSettings.from_env({
        "CONFIG_TEMPLATE_OPEN_DELIMITER": "{{",
        "CONFIG_TEMPLATE_CLOSE_DELIMITER": "}}",
        "UNRELATED": "x",
    })
    assert settings.open_delimiter == "{{"
    assert settings.close_delimiter == "}}"
    assert settings.escape_prefix == "$! "

def test_engine_settings_from_empty_env():
    assert EngineSettings.from_env({}) == EngineSettings()

def test_engine_settings_from_env_invalid():
    with pytest.raises(ConfigurationError) as excinfo:
        EngineSettings.from_env({"CONFIG_TEMPLATE_ESCAPE_PREFIX": ""})
    assert excinfo.value.message == "Invalid engine settings"


# --- Test TemplateConfig ---

def test_template_config_card():
    config = TemplateConfig.from_raw({
        "type": "custom:config-template-card",
        "entities": ["light.a"],
        "staticVariables": {"x": "1"},
        "variables": ["2"],
        "card": {"type": "entities"},
    })
    assert config.kind == ElementKind.CARD
    assert config.section == {"type": "entities"}
    assert config.static_variables == {"x": "1"}
    assert config.variables == ["2"]
    assert config.entities == ["light.a"]

def test_template_config_row_needs_no_type():
    config = TemplateConfig.from_raw({"row": {"entity": "light.a"}})
    assert config.kind == ElementKind.ROW

def test_template_config_element_with_style():
    config = TemplateConfig.from_raw({"element": {"type": "icon"}, "style": {"top": "10%"}})
    assert config.kind == ElementKind.ELEMENT
    assert config.style == {"top": "10%"}

def test_template_config_extra_keys_kept():
    config = TemplateConfig.from_raw({"card": {"type": "entities"}, "view_layout": {"position": "main"}})
    assert config.model_extra == {"view_layout": {"position": "main"}}

def test_template_config_entities_expression():
    config = TemplateConfig.from_raw({"card": {"type": "entities"}, "entities": "<$ vars['watched'] $>"})
    assert config.entities == "<$ vars['watched'] $>"

@pytest.mark.parametrize("raw", [None, {}, ["card"]])
def test_template_config_invalid_input(raw):
    with pytest.raises(ConfigurationError) as excinfo:
        TemplateConfig.from_raw(raw)
    assert excinfo.value.message == "Invalid configuration"

@pytest.mark.parametrize("raw, message", [
    ({"type": "custom:config-template-card"}, "No card or row or element defined"),
    ({"card": {"title": "x"}}, "No card type defined"),
    ({"element": {"entity": "light.a"}}, "No element type defined"),
])
def test_template_config_missing_parts(raw, message):
    with pytest.raises(ConfigurationError) as excinfo:
        TemplateConfig.from_raw(raw)
    assert excinfo.value.message == message

def test_template_config_conflicting_sections():
    with pytest.raises(ConfigurationError) as excinfo:
        TemplateConfig.from_raw({"card": {"type": "entities"}, "row": {"entity": "light.a"}})
    assert "Conflicting sections" in excinfo.value.message
    assert "card" in excinfo.value.message and "row" in excinfo.value.message

def test_template_config_bad_variables_shape():
    with pytest.raises(ConfigurationError) as excinfo:
        TemplateConfig.from_raw({"card": {"type": "entities"}, "variables": "not a declaration"})
    assert excinfo.value.field.startswith("variables")

def test_template_config_picture_elements_warning(caplog):
    with caplog.at_level(logging.WARNING):
        TemplateConfig.from_raw({"card": {"type": "picture-elements"}})
    assert "picture-elements" in caplog.text


# --- Test EvaluationContext / RenderResult ---

def test_evaluation_context_defaults():
    context = EvaluationContext()
    assert context.states == {}
    assert context.user is None
    assert context.static_env is None

def test_evaluation_context_with_environments_copies():
    context = EvaluationContext(states={"a": 1}, user="alex")
    static_env, dynamic_env = object(), object()
    bound = context.with_environments(static_env, dynamic_env)
    assert bound is not context
    assert bound.static_env is static_env
    assert bound.dynamic_env is dynamic_env
    assert bound.user == "alex"
    assert context.dynamic_env is None

def test_render_result_keeps_style_identity():
    style = {"top": "1%"}
    result = RenderResult(kind=ElementKind.ELEMENT, config={}, style=style)
    assert result.style is style
    assert result.element_style == {}
    assert result.complete is True
