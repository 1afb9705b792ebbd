from __future__ import annotations

import itertools
import re
from collections.abc import Iterable
from dataclasses import dataclass

from domain.errors import ForeignNodeIdError

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_scope_tokens = itertools.count(1)


@dataclass(frozen=True, order=True)
class NodeId:
    key: int
    scope: int

    def __repr__(self) -> str:
        return f"NodeId({self.key}@{self.scope})"


def is_identifier(name: str) -> bool:
    return bool(IDENTIFIER_RE.match(name))


class IdInterner:
    def __init__(self) -> None:
        self.scope = next(_scope_tokens)
        self._names: list[str] = []
        self._keys: dict[str, int] = {}
        self._reserved: set[str] = set()
        self._counters: dict[str, int] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def intern(self, name: str) -> NodeId:
        key = self._keys.get(name)
        if key is None:
            key = len(self._names)
            self._names.append(name)
            self._keys[name] = key
        return NodeId(key, self.scope)

    def lookup(self, name: str) -> NodeId | None:
        key = self._keys.get(name)
        if key is None:
            return None
        return NodeId(key, self.scope)

    def resolve(self, node_id: NodeId) -> str:
        self.check(node_id)
        return self._names[node_id.key]

    def check(self, node_id: NodeId) -> None:
        if not isinstance(node_id, NodeId) or node_id.scope != self.scope:
            msg = f"{node_id!r} was not issued by this graph (scope {self.scope})"
            raise ForeignNodeIdError(msg)
        if node_id.key >= len(self._names):
            msg = f"{node_id!r} is not a known key"
            raise ForeignNodeIdError(msg)

    def reserve(self, names: Iterable[str]) -> None:
        self._reserved.update(names)

    def is_free(self, name: str) -> bool:
        return name not in self._keys and name not in self._reserved

    def fresh(self, prefix: str) -> NodeId:
        counter = self._counters.get(prefix, 0)
        while True:
            counter += 1
            name = f"_{prefix}_{counter}"
            if self.is_free(name):
                break
        self._counters[prefix] = counter
        return self.intern(name)

    def rebind(self, node_id: NodeId, new_name: str) -> None:
        # Every handle holder sees the new spelling at once.
        self.check(node_id)
        if new_name in self._keys:
            msg = f"'{new_name}' is already interned"
            raise ValueError(msg)
        old_name = self._names[node_id.key]
        del self._keys[old_name]
        self._names[node_id.key] = new_name
        self._keys[new_name] = node_id.key
