"""Decides whether a context change is observable by a configuration."""

import logging
from typing import Any

from config_template.evaluator.pending import Pending
from config_template.system.models import EvaluationContext
from config_template.template.structure_walker import StructureWalker

logger = logging.getLogger(__name__)


def has_observable_change(
    old_context: EvaluationContext,
    new_context: EvaluationContext,
    entities: Any,
    walker: StructureWalker
) -> bool:
    """
    Compares the states of the declared entities between two contexts.

    Args:
        old_context: Context of the previous render.
        new_context: Incoming context, already bound to the current variable
                     environments; the entity list is evaluated against it.
        entities: The declared entity list: a list (possibly holding
                  expressions) or a single expression producing a list.
        walker: Walker used to evaluate the entity list.

    Returns:
        True if any resolved entity's state differs, or if no entity list is
        declared. False if nothing changed, or if the entity list could not be
        resolved to a list right away (logged, not treated as a change).
    """
    if entities is None or (isinstance(entities, (list, str)) and len(entities) == 0):
        logger.debug("No entities declared; every context change is observable")
        return True

    walk = walker.walk(entities, new_context)
    try:
        return _compare(old_context, new_context, walk.value)
    finally:
        # Results still in flight are not waited for
        for pending in walk.pending:
            pending.cancel()


def _compare(old_context: EvaluationContext, new_context: EvaluationContext, resolved: Any) -> bool:
    if isinstance(resolved, Pending):
        logger.warning("Entity list is still pending; cannot decide which entities to watch")
        return False
    if not isinstance(resolved, list):
        logger.warning(f"Entity list must evaluate to a list, got {type(resolved).__name__}")
        return False

    for entity_id in resolved:
        if isinstance(entity_id, Pending):
            logger.debug(f"Skipping entity that is still pending: {entity_id!r}")
            continue
        try:
            old_state = old_context.states.get(entity_id)
            new_state = new_context.states.get(entity_id)
        except TypeError:
            logger.warning(f"Entity id is not usable as a key: {entity_id!r}")
            continue
        if old_state != new_state:
            logger.debug(f"State of '{entity_id}' changed")
            return True
    return False
