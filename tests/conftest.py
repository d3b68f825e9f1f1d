import asyncio

import pytest

from config_template.evaluator.expression_evaluator import ExpressionEvaluator
from config_template.system.models import EngineSettings, EvaluationContext
from config_template.template.structure_walker import StructureWalker
from config_template.variables.environment_builder import VariableEnvironmentBuilder


# --- Async helpers exposed to expressions ---

async def async_value(value, delay=0.0):
    """Resolves to `value` after `delay` seconds."""
    await asyncio.sleep(delay)
    return value


async def async_fail(message="boom", delay=0.0):
    """Rejects with a RuntimeError after `delay` seconds."""
    await asyncio.sleep(delay)
    raise RuntimeError(message)


HELPER_SYMBOLS = {"later": async_value, "fail_later": async_fail}


# --- Core component fixtures ---

@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def evaluator(settings):
    """ExpressionEvaluator with the async helpers registered."""
    return ExpressionEvaluator(settings, symbols=HELPER_SYMBOLS)


@pytest.fixture
def walker(evaluator):
    return StructureWalker(evaluator)


@pytest.fixture
def builder(walker):
    return VariableEnvironmentBuilder(walker)


@pytest.fixture
def context():
    """A context with a few entity states and a user."""
    return EvaluationContext(
        states={
            "light.kitchen": {"state": "on", "attributes": {"brightness": 128}},
            "sensor.temperature": {"state": "21.5"},
        },
        user={"name": "alex", "is_admin": True},
    )
