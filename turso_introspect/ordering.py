"""
ordering
========

Foreign-key dependency graph and table creation order.

:func:`build_dependency_graph` builds a :class:`networkx.DiGraph` with an edge
from every table to each table it references. :func:`order_tables` linearizes
that graph so that, cycles aside, a table is never created before a table it
depends on.

Cycles (``a -> b -> a``) cannot be satisfied by any order. They are broken by
force-placing the unplaced table that was declared first. Because the SQL
formatter emits foreign keys as trailing ``ALTER TABLE`` statements, a
cycle-broken order still yields an executable script.
"""

from __future__ import annotations

import heapq
from typing import List, Optional

import networkx as nx

from .schema import Snapshot, validate_table_names


def build_dependency_graph(snapshot: Snapshot) -> nx.DiGraph:
    """Return a directed graph with an edge ``child -> parent`` per reference.

    Every table of *snapshot* is a node. A self-referencing table gets a
    self-loop. References to tables that are not part of the snapshot
    (filtered out, or never introspected) are dropped.
    """
    graph = nx.DiGraph()
    graph.add_nodes_from(snapshot.table_names())
    for table in snapshot.tables:
        for group in table.foreign_key_groups():
            parent = group[0].table
            if snapshot.has_table(parent):
                graph.add_edge(table.name, parent)
    return graph


def order_tables(snapshot: Snapshot, graph: Optional[nx.DiGraph] = None) -> List[str]:
    """Return the snapshot's table names in a safe creation order.

    Kahn's algorithm over *graph* (built from *snapshot* when omitted): a
    table is ready once it has no outgoing edge left. When several tables are
    ready at once, the one declared first goes first, so the result is
    deterministic. Self-loops never hold a table back.

    When tables remain but none is ready, the remaining tables form at least
    one cycle: the earliest-declared of them is placed anyway and its edges
    are released.

    Parameters
    ----------
    snapshot:
        Source of the table set and declaration order.
    graph:
        Optional precomputed dependency graph. Nodes outside the snapshot
        are ignored.

    Returns
    -------
    list[str]
        A permutation of ``snapshot.table_names()``.
    """
    validate_table_names(snapshot.tables)
    if graph is None:
        graph = build_dependency_graph(snapshot)

    names = snapshot.table_names()
    work = nx.DiGraph(graph.subgraph(n for n in names if n in graph))
    work.add_nodes_from(names)
    work.remove_edges_from(list(nx.selfloop_edges(work)))

    ready = [snapshot.position(n) for n in names if work.out_degree(n) == 0]
    heapq.heapify(ready)
    placed = set()
    order: List[str] = []

    while len(order) < len(names):
        if ready:
            name = names[heapq.heappop(ready)]
        else:
            # cycle: force the earliest-declared unplaced table
            name = next(n for n in names if n not in placed)
            work.remove_edges_from(list(work.out_edges(name)))

        placed.add(name)
        order.append(name)
        children = list(work.predecessors(name))
        work.remove_edges_from([(child, name) for child in children])
        for child in children:
            if work.out_degree(child) == 0:
                heapq.heappush(ready, snapshot.position(child))

    return order
