from __future__ import annotations

import dataclasses
import datetime as _dt
import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


# -------------------------
# Path utilities
# -------------------------
def normalize_abs_posix(path: str | Path) -> str:
    """
    Return an absolute POSIX-style path string for the given input.
    Ensures deterministic representation across platforms.
    """
    p = Path(path).resolve()
    return p.as_posix()


# -------------------------
# Hashing utilities
# -------------------------
def canonical_json_dumps(payload: dict[str, Any]) -> str:
    """
    Deterministic JSON string for hashing and storage:
    - separators=(',', ':')
    - sort_keys=True
    - ensure_ascii=False
    """
    return json.dumps(
        payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True
    )


def canonical_json_hash(payload: dict[str, Any]) -> tuple[str, str]:
    """
    Return (short_hash8, full_hash_hex) computed over canonical JSON bytes (UTF-8).
    """
    s = canonical_json_dumps(payload)
    h = hashlib.sha256(s.encode("utf-8")).hexdigest()
    return h[:8], h


# -------------------------
# Manifest helpers
# -------------------------
def _sanitize_for_json(obj: Any) -> Any:
    """
    Recursively convert parameter objects into JSON-serializable primitives.

    Conversions performed:
    - pathlib.Path -> normalized POSIX string
    - dataclasses -> dict, sanitized recursively
    - numpy scalars -> Python int/float via .item()
    - dicts -> dicts with stringified keys
    - lists/tuples/sets -> lists
    - anything else -> str()
    """
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, Path):
        return normalize_abs_posix(obj)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _sanitize_for_json(dataclasses.asdict(obj))
    if hasattr(obj, "item") and callable(obj.item):
        # numpy scalar
        return obj.item()
    if isinstance(obj, dict):
        return {str(k): _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_sanitize_for_json(x) for x in obj]
    return str(obj)


def build_effective_parameters(plot: Any, brackets: Any) -> dict[str, Any]:
    """
    JSON-serializable mapping {"plot": {...}, "brackets": {...}} of the effective
    PlotParams / BracketParams, used for run identity and manifests.
    """
    return {
        "plot": _sanitize_for_json(plot),
        "brackets": _sanitize_for_json(brackets),
    }


def write_manifest(path: str | Path, manifest: Dict[str, Any]) -> None:
    """
    Write manifest JSON with UTF-8 encoding and stable formatting (indent=2 for readability).
    """
    p = Path(path)
    p.write_text(json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8")


def utc_timestamp_seconds() -> str:
    """
    ISO-8601 UTC timestamp with seconds precision and Z suffix.
    """
    now = _dt.datetime.now(_dt.timezone.utc).replace(tzinfo=None)
    return now.isoformat(timespec="seconds") + "Z"


# -------------------------
# Run directories
# -------------------------
def ensure_run_dir(base: Path | str = ".", prefix: str = "output_gradio") -> Path:
    """
    Ensure and return a per-run directory under `base`/`prefix`/<timestamp>.

    The timestamp format is time.strftime("%Y%m%dT%H%M%S") so directory names sort
    chronologically (relied on by the retention pruning in gradio_ui).
    """
    run_ts = time.strftime("%Y%m%dT%H%M%S", time.localtime())
    run_dir = Path(base) / prefix / run_ts
    run_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured run_dir=%s", str(run_dir))
    return run_dir
