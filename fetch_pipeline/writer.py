# fetch_pipeline/writer.py

from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, Iterable, Union
from .models import FetchedData


def summarize_result(result: FetchedData) -> Dict[str, Any]:
    """
    JSON-safe summary of a FetchedData (the body itself is not included).
    """
    resource = result.resource
    return {
        "url": resource.url if resource is not None else None,
        "resource_status": resource.status.value if resource is not None else None,
        "status_code": result.status_code,
        "content_type": result.content_type,
        "bytes": result.size,
        "truncated": result.truncated,
    }


def write_results_jsonl(
    results: Iterable[FetchedData],
    output_path: Union[str, Path],
) -> int:
    """
    Write one summary line per FetchedData to a JSONL file.

    Results are consumed as they arrive, so a lazy fetch stream is written
    incrementally.

    Returns:
        Number of results written.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with output_path.open("w", encoding="utf-8") as f:
        for result in results:
            json_line = json.dumps(summarize_result(result), ensure_ascii=False)
            f.write(json_line + "\n")
            count += 1

    return count
