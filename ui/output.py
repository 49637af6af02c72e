"""
Output formatting -- JSON export and plain text.
"""
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from netcap.orchestrator import LogEntry, RunResults
from netcap.rating import ProfileVerdict


def create_result_json(
    results: RunResults,
    capabilities: List[ProfileVerdict],
    status: str,
    upload_target: Optional[Dict[str, str]] = None,
    log: Optional[List[LogEntry]] = None,
) -> Dict[str, Any]:
    """Build the JSON document for one run."""
    result: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status,
        **results.to_dict(),
        "capabilities": [c.to_dict() for c in capabilities],
    }
    if upload_target:
        result["upload_target"] = upload_target
    if log:
        result["log"] = [
            {"t": round(entry.timestamp, 3), "message": entry.message} for entry in log
        ]
    return result


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except (IOError, OSError) as exc:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise IOError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

def _line(label: str, value: Optional[str], error: Optional[str]) -> str:
    if error:
        return f"{label}: Not accessible ({error})"
    return f"{label}: {value if value is not None else '-'}"


def format_text_result(results: RunResults, capabilities: List[ProfileVerdict]) -> str:
    dl, ul, lat = results.download, results.upload, results.latency
    errors = results.errors
    lines = [
        _line("Download", f"{dl.mbps:.2f} Mbps" if dl else None, errors.get("download")),
        _line("Upload", f"{ul.mbps:.2f} Mbps" if ul else None, errors.get("upload")),
        _line("Latency", f"{lat.average_ms:.1f} ms" if lat else None, errors.get("latency")),
        _line("Jitter", f"{lat.jitter_ms:.2f} ms" if lat else None, errors.get("latency")),
        _line("Packet Loss", f"{lat.loss_percent:.1f}%" if lat else None, errors.get("latency")),
    ]
    for verdict in capabilities:
        lines.append(f"{verdict.service}: {verdict.verdict.value.upper()} - {verdict.why}")
    return "\n".join(lines)
