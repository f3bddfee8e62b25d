"""JSON rendering of process snapshots."""

import json

from procinfo.snapshot import ProcessSnapshot


def to_json(snapshot: ProcessSnapshot, indent: int | None = None) -> str:
    """Render the snapshot record as a JSON object, keys in record order."""
    return json.dumps(snapshot.as_dict(), indent=indent)
