"""JSON export for resolution results."""

import json
import logging
from pathlib import Path

from nodedeps.resolvers.base import ResolutionResult

logger = logging.getLogger("nodedeps.export.json")


def export_json(result: ResolutionResult, output_path: Path) -> None:
    """Export a resolution result to JSON format.

    Args:
        result: Resolution result to export.
        output_path: Output file path.
    """
    logger.info("Exporting dependencies to JSON: %s", output_path)

    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)

    logger.info("JSON export completed: %d dependencies", len(result.dependencies))
