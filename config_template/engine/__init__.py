"""Hosting instance and change detection."""

from config_template.engine.change_detector import has_observable_change
from config_template.engine.template_engine import ElementFactory, PassthroughElementFactory, TemplateEngine

__all__ = ["ElementFactory", "PassthroughElementFactory", "TemplateEngine", "has_observable_change"]
