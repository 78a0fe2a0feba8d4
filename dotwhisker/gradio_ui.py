"""Gradio UI wrapper for dotwhisker.

Upload a tidy coefficient table (CSV/parquet), pick a plot kind and get an SVG back.
Each run writes its artifacts into a timestamped directory; old runs are pruned.
"""

import json
import logging
import os
import shutil
import traceback
from pathlib import Path
from typing import Any, List, Optional

import gradio as gr
import pandas as pd

from .errors import DotWhiskerError
from .params import get_default_params, with_overrides
from .plot import add_brackets, dotwhisker_plot, secret_weapon, small_multiple
from .tidy import load_table
from .utils import (
    build_effective_parameters,
    canonical_json_hash,
    ensure_run_dir,
    normalize_abs_posix,
    utc_timestamp_seconds,
    write_manifest,
)

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

PLOT_KINDS = ["dotwhisker", "secret_weapon", "small_multiple"]
RUN_PREFIX = "output_gradio"


def parse_bracket_specs(raw: Optional[str]) -> List[List[str]]:
    """
    Parse multiline bracket input. Each non-empty line is either a JSON array
    ["Label", "term1", "term2"] or "Label: term1, term2".
    Returns [] for None/blank input; raises ValueError naming the offending line.
    """
    if raw is None or str(raw).strip() == "":
        return []

    groups: List[List[str]] = []
    for i, line in enumerate(str(raw).splitlines(), start=1):
        ln = line.strip()
        if not ln:
            continue
        if ln.startswith("["):
            try:
                item = json.loads(ln)
            except json.JSONDecodeError as e:
                raise ValueError(f"Bracket line {i}: invalid JSON ({e}): {ln!r}")
            if not isinstance(item, list) or len(item) < 2:
                raise ValueError(f"Bracket line {i}: expected [label, term, ...]: {ln!r}")
            groups.append([str(v) for v in item])
            continue
        if ":" not in ln:
            raise ValueError(f"Bracket line {i}: expected 'Label: term1, term2': {ln!r}")
        label, members = ln.split(":", 1)
        terms = [m.strip() for m in members.split(",") if m.strip()]
        if not label.strip() or not terms:
            raise ValueError(f"Bracket line {i}: label and at least one term required: {ln!r}")
        groups.append([label.strip()] + terms)
    return groups


def _prune_old_runs(run_root: Path, keep: Optional[int] = None) -> None:
    """
    Retention helper: keep only the newest `keep` subdirectories under `run_root`.

    Timestamp-named run directories (YYYYmmddTHHMMSS) are ordered by name, anything
    else by mtime. Deletion failures are logged at WARNING; a later run retries.
    """
    if keep is None:
        try:
            keep = int(os.getenv("DOTWHISKER_GRADIO_RETENTION_KEEP", "10"))
        except ValueError:
            keep = 10
    if keep <= 0:
        logger.debug("retention keep <=0 (%s) -> skipping prune", keep)
        return

    if not run_root.exists() or not run_root.is_dir():
        return
    subdirs = [p for p in run_root.iterdir() if p.is_dir()]
    if not subdirs:
        return

    def _looks_like_run_ts(name: str) -> bool:
        return (
            len(name) >= 15
            and name[0:8].isdigit()
            and name[8] == "T"
            and name[9:15].isdigit()
        )

    if all(_looks_like_run_ts(p.name) for p in subdirs):
        subdirs_sorted = sorted(subdirs, key=lambda p: p.name, reverse=True)
    else:
        subdirs_sorted = sorted(subdirs, key=lambda p: p.stat().st_mtime, reverse=True)

    root_resolved = run_root.resolve()
    for d in subdirs_sorted[keep:]:
        if d.is_symlink():
            logger.warning("Skipping symlink during prune: %s", d)
            continue
        # never delete anything that resolves outside run_root
        if os.path.commonpath([str(root_resolved), str(d.resolve())]) != str(root_resolved):
            logger.warning("Skipping prune of %s - resolved outside run_root", d)
            continue
        try:
            shutil.rmtree(d)
            logger.info("Pruned old run dir: %s", d)
        except OSError as e:
            logger.warning("Failed to prune %s: %s", d, e)


def _render(df: pd.DataFrame, kind: str, predictor: Optional[str], plot_params, bracket_params, groups):
    if kind == "secret_weapon":
        if not predictor:
            raise ValueError("secret_weapon requires a predictor name")
        chart = secret_weapon(df, predictor, params=plot_params)
    elif kind == "small_multiple":
        chart = small_multiple(df, params=plot_params)
    elif kind == "dotwhisker":
        chart = dotwhisker_plot(df, params=plot_params)
    else:
        raise ValueError(f"Unknown plot kind: {kind}")
    if groups:
        try:
            add_brackets(chart, groups, params=bracket_params)
        except Exception:
            chart.close()
            raise
    return chart


def _run_plot(
    uploaded_file_path: Optional[str],
    kind: str,
    predictor: Optional[str],
    alpha: Optional[float],
    show_intercept: bool,
    vline: Optional[float],
    brackets_raw: Optional[str],
    output_base: str = ".",
):
    """
    Load, plot and save one chart. Returns (status_text, svg_path or None, preview df or None).
    Errors are reported in status_text; the UI never raises.
    """
    logger.info("_run_plot START - uploaded_file_path=%r kind=%s", uploaded_file_path, kind)
    if not uploaded_file_path:
        return "Please upload a coefficient table (CSV or parquet).", None, None

    try:
        d_plot, d_brackets = get_default_params()
        plot_params = with_overrides(
            d_plot,
            alpha=float(alpha) if alpha is not None else None,
            show_intercept=bool(show_intercept),
            vline=float(vline) if vline is not None else None,
        )
        groups = parse_bracket_specs(brackets_raw)

        effective = build_effective_parameters(plot_params, d_brackets)
        identity = {
            "input": normalize_abs_posix(uploaded_file_path),
            "kind": kind,
            "predictor": predictor,
            "brackets": groups,
            "params": effective,
        }
        short_hash, full_hash = canonical_json_hash(identity)

        df = load_table(uploaded_file_path)
        chart = _render(df, kind, predictor, plot_params, d_brackets, groups)

        run_root = Path(output_base) / RUN_PREFIX
        run_dir = ensure_run_dir(output_base, RUN_PREFIX)
        try:
            svg_path = chart.savefig(run_dir / f"{kind}-{short_hash}.svg")
        finally:
            chart.close()

        preview = chart.data.copy()
        for col in ("term", "model", "submodel"):
            if col in preview.columns:
                preview[col] = preview[col].astype(str)
        write_manifest(
            run_dir / f"manifest-{short_hash}.json",
            {
                "created_at": utc_timestamp_seconds(),
                "hash": full_hash,
                **identity,
                "rows": int(len(preview)),
                "artifacts": [svg_path.name],
            },
        )
        _prune_old_runs(run_root)
        logger.info("_run_plot DONE - %s", svg_path)
        return f"Saved {svg_path.name} ({len(preview)} rows)", str(svg_path), preview

    except (DotWhiskerError, ValueError, FileNotFoundError) as e:
        # user-correctable input problems
        logger.info("User-facing error: %s", e)
        return f"Error: {e}", None, None
    except Exception as e:
        logger.exception("Unhandled exception while plotting")
        return f"Unexpected error: {e}\n{traceback.format_exc()}", None, None


def _file_path(file_obj: Any) -> Optional[str]:
    # gr.File returns a path string, a dict or a tempfile wrapper depending on version
    if file_obj is None:
        return None
    if isinstance(file_obj, str):
        return file_obj
    if isinstance(file_obj, dict):
        return file_obj.get("name") or file_obj.get("path")
    return getattr(file_obj, "name", None)


def _build_ui():
    d_plot, _ = get_default_params()
    with gr.Blocks() as demo:
        gr.Markdown("### dotwhisker - dot-and-whisker plots of regression results")
        with gr.Row():
            file_input = gr.File(label="Upload tidy table", file_types=[".csv", ".parquet"])
        with gr.Row():
            kind = gr.Radio(label="Plot kind", choices=PLOT_KINDS, value="dotwhisker")
            predictor = gr.Textbox(label="Predictor (secret_weapon only)", value="")
            alpha = gr.Number(label="alpha", value=d_plot.alpha, precision=3, step=0.01)
            show_intercept = gr.Checkbox(label="show_intercept", value=d_plot.show_intercept)
            vline = gr.Number(label="Reference line (optional)", value=None)
        brackets = gr.Textbox(
            label="Brackets (optional) - one per line",
            placeholder='Economy: gdp, inflation\n["Controls", "age", "income"]',
            lines=4,
        )
        run_button = gr.Button("Plot")
        status = gr.Textbox(label="Status", interactive=False)
        output_html = gr.HTML(label="Plot")
        output_file = gr.File(label="Download SVG")
        output_table = gr.Dataframe(label="Plotted table")

        def _click(file_obj, kind_v, predictor_v, alpha_v, intercept_v, vline_v, brackets_v):
            msg, svg, preview = _run_plot(
                _file_path(file_obj),
                kind_v,
                predictor_v.strip() if predictor_v else None,
                alpha_v,
                intercept_v,
                vline_v,
                brackets_v,
            )
            html = Path(svg).read_text(encoding="utf-8") if svg else ""
            return msg, html, svg, preview

        run_button.click(
            _click,
            inputs=[file_input, kind, predictor, alpha, show_intercept, vline, brackets],
            outputs=[status, output_html, output_file, output_table],
        )

    return demo


if __name__ == "__main__":
    demo = _build_ui()
    demo.launch()
