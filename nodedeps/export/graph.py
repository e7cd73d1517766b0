"""Dependency graph built from request paths.

Every request path ``[parent, grandparent, ..., root]`` contributes the
edges ``root -> ... -> parent -> dependency``.
"""

import json
import logging
from pathlib import Path

import networkx as nx

from nodedeps.resolvers.base import ResolutionResult

logger = logging.getLogger("nodedeps.export.graph")


def build_dependency_graph(result: ResolutionResult) -> nx.DiGraph:
    """Build a directed graph with an edge from each requester to its dependency.

    Args:
        result: Resolution result.

    Returns:
        nx.DiGraph: Nodes are dependency ids plus the root id.
    """
    graph = nx.DiGraph(root=result.root_id, tool=result.tool)
    graph.add_node(result.root_id, root=True, scopes=[], checksums={})

    for dep in result.dependencies:
        graph.add_node(dep.id, root=False, scopes=list(dep.scopes), checksums=dict(dep.checksums))

    for dep in result.dependencies:
        for path in dep.requested_by:
            chain = [dep.id, *path]
            for child, parent in zip(chain, chain[1:]):
                if not graph.has_node(parent):
                    # Requesters that were left out of the final list
                    graph.add_node(parent, root=False, scopes=[], checksums={}, excluded=True)
                graph.add_edge(parent, child)

    logger.debug(
        "Built dependency graph: %d nodes, %d edges",
        graph.number_of_nodes(),
        graph.number_of_edges(),
    )
    return graph


def export_graph_json(graph: nx.DiGraph, output_path: Path) -> None:
    """Export a dependency graph in node-link JSON format."""
    logger.info("Exporting dependency graph to JSON: %s", output_path)

    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = nx.readwrite.json_graph.node_link_data(graph, edges="edges")

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    logger.info(
        "Graph export completed: %d nodes, %d edges",
        graph.number_of_nodes(),
        graph.number_of_edges(),
    )
