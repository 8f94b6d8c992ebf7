"""JSON reporter for structured, machine-readable command output."""

import dataclasses
import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from osscmd.models import ObjectEntry, TransferCounts
from osscmd.reporters.base import Reporter


def to_jsonable(value: Any) -> Any:
    """Convert result dataclasses (and what they contain) to JSON types."""
    if isinstance(value, TransferCounts):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)
        }
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class JsonReporter(Reporter):
    """Collects a command's result and writes it as JSON.

    Args:
        output_path: Optional file path to write JSON output
        include_entries: Also record every listed object
    """

    def __init__(self, output_path: Optional[str] = None, include_entries: bool = True):
        self.output_path = output_path
        self.include_entries = include_entries
        self._transfers: dict[str, dict[str, int]] = {}
        self._entries: list[ObjectEntry] = []

    def on_transfer_start(self, label: str, total: int) -> None:
        """No-op for JSON reporter."""
        pass

    def on_progress(self, label: str, finished: int, total: int) -> None:
        """No-op for JSON reporter."""
        pass

    def on_transfer_complete(self, label: str, counts: TransferCounts) -> None:
        self._transfers[label] = counts.to_dict()

    def on_entry(self, entry: ObjectEntry) -> None:
        if self.include_entries:
            self._entries.append(entry)

    def on_command_complete(self, command: str, result: Any) -> dict:
        """Generate the JSON document and write it if a path was given.

        Returns:
            The generated JSON data as a dictionary
        """
        output = self._generate_output(command, result)
        if self.output_path:
            self._write_to_file(output)
        return output

    def _generate_output(self, command: str, result: Any) -> dict:
        output: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "command": command,
            "result": to_jsonable(result),
        }
        if self._transfers:
            output["transfers"] = dict(self._transfers)
        if self._entries:
            output["entries"] = to_jsonable(self._entries)
        return output

    def _write_to_file(self, output: dict) -> None:
        path = Path(self.output_path)

        # Create parent directories if needed
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=2)
