"""
JSON file storage for GEO Audit records.

Each saved audit gets its own directory under the output directory:

    <output_dir>/<audit_id>/audit.json       full record (summary + results)
    <output_dir>/<audit_id>/citations.json   flat citation rows

Files are UTF-8, pretty-printed (indent=2) and end with a newline.
"""

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from geo_audit.audit.assembler import AuditRecord

logger = logging.getLogger(__name__)

AUDIT_FILENAME = "audit.json"
CITATIONS_FILENAME = "citations.json"


def write_json(filepath: Path, data: dict | list) -> None:
    """
    Write data as pretty-printed UTF-8 JSON.

    Raises:
        TypeError: If data is not JSON-serializable
        OSError: If the file cannot be written
    """
    try:
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        logger.debug(f"Wrote JSON file: {filepath}")
    except TypeError as e:
        logger.error(f"Cannot serialize data to JSON: {e}", exc_info=True)
        raise TypeError(
            f"Cannot write JSON to '{filepath}': Data is not JSON-serializable. {e}"
        ) from e
    except OSError as e:
        logger.error(f"Failed to write JSON file: {filepath}", exc_info=True)
        raise OSError(
            f"Cannot write JSON file '{filepath}': {e}. "
            f"Check disk space and permissions."
        ) from e


class JsonAuditStore:
    """AuditStore writing one directory of JSON artifacts per audit."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)

    def audit_dir(self, audit_id: str) -> Path:
        if not audit_id or any(sep in audit_id for sep in ("/", "\\", "..")):
            raise ValueError(f"Invalid audit id for a directory name: {audit_id!r}")
        return self.output_dir / audit_id

    def save_audit(self, record: "AuditRecord") -> str:
        directory = self.audit_dir(record.audit_id)
        directory.mkdir(parents=True, exist_ok=True)

        data = record.to_dict()
        data["request"] = record.request.model_dump(mode="json")
        write_json(directory / AUDIT_FILENAME, data)

        logger.info(f"Wrote audit record: {directory / AUDIT_FILENAME}")
        return record.audit_id

    def save_citations(self, audit_id: str, rows: Sequence[dict[str, Any]]) -> int:
        directory = self.audit_dir(audit_id)
        directory.mkdir(parents=True, exist_ok=True)
        write_json(directory / CITATIONS_FILENAME, list(rows))
        return len(rows)
