"""Tests for has_observable_change."""
import asyncio
import inspect
import logging

import pytest

from config_template.engine.change_detector import has_observable_change
from config_template.evaluator.expression_evaluator import ExpressionEvaluator
from config_template.system.models import EvaluationContext, VariableTier
from config_template.template.structure_walker import StructureWalker
from config_template.variables.environment_builder import VariableEnvironment

from conftest import async_value


def _ctx(**states):
    return EvaluationContext(states=states)


class TestHasObservableChange:

    def test_unchanged_states(self, walker):
        assert has_observable_change(_ctx(a=1, b=2), _ctx(a=1, b=2), ["a", "b"], walker) is False

    def test_changed_state(self, walker):
        assert has_observable_change(_ctx(a=1, b=2), _ctx(a=1, b=9), ["a", "b"], walker) is True

    def test_unwatched_entity_change_is_ignored(self, walker):
        assert has_observable_change(_ctx(a=1, c=1), _ctx(a=1, c=2), ["a"], walker) is False

    def test_entity_appearing_counts_as_change(self, walker):
        assert has_observable_change(_ctx(), _ctx(a="on"), ["a"], walker) is True

    @pytest.mark.parametrize("entities", [None, [], ""])
    def test_absent_or_empty_list_always_updates(self, walker, entities):
        assert has_observable_change(_ctx(a=1), _ctx(a=1), entities, walker) is True

    def test_templated_entries(self, walker):
        old = EvaluationContext(states={"light.a": "on"}, user={"room": "a"})
        new = EvaluationContext(states={"light.a": "off"}, user={"room": "a"})
        assert has_observable_change(old, new, ["light.<$ user['room'] $>"], walker) is True

    def test_whole_list_expression_uses_variables(self, walker):
        dynamic_env = VariableEnvironment(VariableTier.DYNAMIC)
        dynamic_env.named["watched"] = ["x", "y"]
        dynamic_env.initializer.append("watched")
        static_env = VariableEnvironment(VariableTier.STATIC)

        old = _ctx(x=1, y=1)
        new = _ctx(x=1, y=2).with_environments(static_env, dynamic_env)
        assert has_observable_change(old, new, "<$ watched $>", walker) is True

    def test_non_list_result_is_not_actionable(self, walker, caplog):
        with caplog.at_level(logging.WARNING):
            result = has_observable_change(_ctx(a=1), _ctx(a=2), "<$ 'a' $>", walker)
        assert result is False
        assert "must evaluate to a list" in caplog.text

    @pytest.mark.asyncio
    async def test_pending_list_is_not_actionable(self, walker, caplog):
        with caplog.at_level(logging.WARNING):
            result = has_observable_change(_ctx(a=1), _ctx(a=2), "<$ later(['a']) $>", walker)
        assert result is False
        assert "still pending" in caplog.text

    @pytest.mark.asyncio
    async def test_pending_entries_are_skipped(self, walker):
        entities = ["<$ later('a') $>", "b"]
        assert has_observable_change(_ctx(a=1, b=1), _ctx(a=2, b=1), entities, walker) is False
        assert has_observable_change(_ctx(a=1, b=1), _ctx(a=2, b=3), entities, walker) is True


class TestDroppedResults:

    @pytest.fixture
    def recording_walker(self):
        created = []

        def slow(value):
            coroutine = async_value(value, 1.0)
            created.append(coroutine)
            return coroutine

        walker = StructureWalker(ExpressionEvaluator(symbols={"slow": slow}))
        return walker, created

    def test_pending_list_is_closed(self, recording_walker):
        walker, created = recording_walker
        assert has_observable_change(_ctx(a=1), _ctx(a=2), "<$ slow(['a']) $>", walker) is False
        assert inspect.getcoroutinestate(created[0]) == inspect.CORO_CLOSED

    def test_skipped_entries_are_closed(self, recording_walker):
        walker, created = recording_walker
        entities = ["<$ slow('a') $>", "light.<$ slow('b') $>", "c"]
        assert has_observable_change(_ctx(a=1, c=1), _ctx(a=2, c=2), entities, walker) is True
        assert len(created) == 2
        assert all(inspect.getcoroutinestate(coroutine) == inspect.CORO_CLOSED for coroutine in created)

    @pytest.mark.asyncio
    async def test_scheduled_results_are_cancelled(self, recording_walker):
        walker, created = recording_walker
        assert has_observable_change(_ctx(a=1), _ctx(a=2), "<$ slow(['a']) $>", walker) is False
        await asyncio.sleep(0)
        assert inspect.getcoroutinestate(created[0]) == inspect.CORO_CLOSED
