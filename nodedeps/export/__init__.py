"""Export of resolution results."""

from .graph import build_dependency_graph, export_graph_json
from .json import export_json

__all__ = ["build_dependency_graph", "export_graph_json", "export_json"]
