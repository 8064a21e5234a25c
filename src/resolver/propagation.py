"""Scope propagation over arbitrated nodes."""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from manifest.models import ModuleKey, format_key
from resolver import scopes
from resolver.arbiter import ResolvedNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeDrop:
    """A resolved module whose scope chain does not reach the consumer."""
    key: ModuleKey
    version: Optional[str]
    chain: Tuple[str, ...]

    def to_dict(self) -> dict:
        return {"module": format_key(self.key), "version": self.version, "scope_chain": list(self.chain)}


class ScopePropagator:
    """Assigns the final scope of each resolved node.

    The scope of a node is derived from the chain of declared scopes along
    its winning path. Every hop of that path is itself a winning edge, so
    the parent's final scope is already known when a child is processed in
    breadth-first order.
    """

    def __init__(self) -> None:
        self.dropped: List[ScopeDrop] = []

    def propagate(
        self, nodes: "OrderedDict[ModuleKey, ResolvedNode]"
    ) -> "OrderedDict[ModuleKey, ResolvedNode]":
        self.dropped = []
        final: Dict[ModuleKey, str] = {}
        chains: Dict[ModuleKey, Tuple[str, ...]] = {}
        result: "OrderedDict[ModuleKey, ResolvedNode]" = OrderedDict()

        # nodes arrive in breadth-first decision order: parents before children
        for key, node in nodes.items():
            edge = node.winning_edge
            parent_key = edge.parent.key
            chain: Tuple[str, ...] = (edge.declared_scope,)
            if edge.depth > 1:
                chain = chains.get(parent_key, ()) + chain
            scope = scopes.propagate(chain)
            parent_scope = final.get(parent_key)
            if (scope is not None and parent_scope is not None
                    and not scopes.narrower_or_equal(scope, parent_scope)):
                raise RuntimeError(f"Scope of {node.coordinate} widened from {parent_scope} to {scope}")
            chains[key] = chain
            if scope is None:
                self.dropped.append(ScopeDrop(key, node.version, chain))
                logger.info("Dropping %s: scope chain %s does not propagate", node.coordinate, "/".join(chain))
                continue
            final[key] = scope
            result[key] = replace(node, scope=scope)
        return result
