"""
Lexical scope handed to the expression interpreter.

Each evaluation builds its own chain of scopes (ambient names, then static
variables, then dynamic variables, then the output slot) and flattens it into
the symbol table of a fresh interpreter. Nothing is shared between evaluations.

Ambient data reaches expressions through read-only views that hand out deep
copies, so an expression can change its own copy of a value but never the
host's states or a cached variable environment.
"""

import copy
from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional


class EvaluationScope:
    """
    A layer of name bindings with an optional parent layer.
    Inner layers shadow outer ones.
    """

    def __init__(
        self,
        bindings: Optional[Dict[str, Any]] = None,
        parent: Optional['EvaluationScope'] = None,
        name: str = ""
    ):
        """
        Args:
            bindings: Initial bindings of this layer. Copied, never aliased.
            parent: Enclosing layer, or None for the outermost one.
            name: Label used in debug output (e.g. "static", "dynamic").
        """
        self._bindings: Dict[str, Any] = dict(bindings) if bindings else {}
        self._parent: Optional['EvaluationScope'] = parent
        self.name = name

    def extend(self, bindings: Dict[str, Any], name: str = "") -> 'EvaluationScope':
        """Creates a child layer holding `bindings`, with this layer as its parent."""
        return EvaluationScope(bindings=bindings, parent=self, name=name)

    def flatten(self) -> Dict[str, Any]:
        """
        Collapses the chain into one dict, outermost first, so that inner
        layers win for names bound more than once.
        """
        chain = []
        scope: Optional[EvaluationScope] = self
        while scope is not None:
            chain.append(scope)
            scope = scope._parent
        symbols: Dict[str, Any] = {}
        for scope in reversed(chain):
            symbols.update(scope._bindings)
        return symbols

    def __repr__(self) -> str:
        parent = self._parent.name if self._parent else None
        return f"<EvaluationScope '{self.name}' parent={parent} bindings={list(self._bindings.keys())}>"


class ReadOnlyMapping(Mapping):
    """Mapping view whose values are returned as deep copies."""

    def __init__(self, data: Mapping):
        self._data = data

    def __getitem__(self, key: Any) -> Any:
        return copy.deepcopy(self._data[key])

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"<ReadOnlyMapping keys={list(self._data.keys())}>"


class EnvironmentView:
    """
    Read-only view of a variable environment.

    Supports the same access as the environment itself: ``vars[0]``,
    ``vars['name']``, ``'name' in vars``, iteration and len() over the
    positional entries.
    """

    def __init__(self, environment: Any):
        self._environment = environment

    def __getitem__(self, key: Any) -> Any:
        return copy.deepcopy(self._environment[key])

    def get(self, key: Any, default: Any = None) -> Any:
        try:
            return self[key]
        except (KeyError, IndexError):
            return default

    def keys(self):
        return self._environment.named.keys()

    def __contains__(self, key: Any) -> bool:
        return key in self._environment

    def __iter__(self) -> Iterator[Any]:
        return (copy.deepcopy(value) for value in self._environment)

    def __len__(self) -> int:
        return len(self._environment)

    def __repr__(self) -> str:
        return f"<EnvironmentView of {self._environment!r}>"
