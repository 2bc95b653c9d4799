"""
CLI experiment runner.
Usage examples:
    python -m welfare_sim.run_experiment --runs 10 --steps 264 --seed 42
    python -m welfare_sim.run_experiment --runs 5 --investigation_freq 12 --label yearly
    python -m welfare_sim.run_experiment --config my_params.yaml --no-events --log_level DEBUG

Writes results to ./outputs/<label>_<timestamp>/results.csv plus averages.json,
metadata.json and one time series CSV per run.
"""
from __future__ import annotations

import argparse
import copy
import os
import csv
import json
import logging
import time
import yaml

import pandas as pd

from .model import DEFAULT_STEPS, WelfareModel
from .utils import ensure_dir, sha1_of_dict

logger = logging.getLogger(__name__)


def _load_parameters(config_path: str | None = None) -> dict:
    params_path = config_path or os.path.join(os.getcwd(), "parameters.yaml")
    if os.path.exists(params_path):
        try:
            with open(params_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning(f"Could not read parameters from {params_path}: {exc}")
            return {}
    return {}


def _apply_overrides(params: dict, args) -> dict:
    """CLI flags win over parameters.yaml; unset flags leave the file values alone."""
    merged = copy.deepcopy(params)
    model_cfg = merged.setdefault("model", {}) or {}
    merged["model"] = model_cfg
    for key in ("total_agents", "investigation_freq", "p_random_nomination", "target"):
        value = getattr(args, key, None)
        if value is not None:
            model_cfg[key] = value
    if getattr(args, "no_oracle", False):
        merged["oracle"] = {"enabled": False}
    return merged


def run_once(args, params: dict) -> tuple[dict, pd.DataFrame]:
    """
    Run a single simulation and return the metrics summary plus the per-tick
    stage occupancy. Key parameters are packed into the row for later analysis.
    """
    model = WelfareModel.from_parameters(
        params,
        seed=args.seed,
        events_path=getattr(args, "events_path", None),
    )
    summary = model.run(steps=args.steps)
    model_cfg = params.get("model", {}) or {}
    summary.update({
        "label": args.label,
        "steps": args.steps,
        "seed": args.seed,
        "total_agents": len(model.cases),
        "investigation_freq": model.investigation_freq,
        "p_random_nomination": model.p_random_nomination,
        "target": model.target,
        "oracle": model.nomination_oracle is not None,
        "evolution_period": model_cfg.get("evolution_period", model.evolution_period),
    })
    series = model.datacollector.get_model_vars_dataframe()
    series.index.name = "tick"
    return summary, series


def _averages(rows: list[dict]) -> dict:
    frame = pd.DataFrame(rows)
    numeric = frame.select_dtypes(include="number").drop(columns=["seed"], errors="ignore")
    averages = {k: float(v) for k, v in numeric.mean().items()}
    distributions = [r["agent_distribution"] for r in rows if r.get("agent_distribution")]
    if distributions:
        averages["agent_distribution"] = [float(x) for x in pd.DataFrame(distributions).mean().tolist()]
    averages["runs"] = len(rows)
    return averages


def main() -> None:
    # CLI flags keep experiments explicit and reproducible
    p = argparse.ArgumentParser()
    p.add_argument("--config", type=str, default=None, help="Path to a YAML config file (defaults to parameters.yaml)")
    p.add_argument("--runs", type=int, default=5)
    p.add_argument("--steps", type=int, default=None, help=f"Ticks per run (default: parameters.yaml or {DEFAULT_STEPS})")
    p.add_argument("--seed", type=int, default=None, help="Base seed; run i uses seed + i")
    p.add_argument("--total_agents", type=int, default=None)
    p.add_argument("--investigation_freq", type=int, default=None)
    p.add_argument("--p_random_nomination", type=float, default=None)
    p.add_argument("--target", type=int, default=None, help="Label the recourse oracle aims for")
    p.add_argument("--no_oracle", action="store_true", help="Disable the nomination/recourse oracle")
    p.add_argument("--label", type=str, default="welfare", help="Prefix of the output folder")
    p.add_argument(
        "--events",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write per-run event CSVs",
    )
    p.add_argument("--log_level", type=str, default=None, help="DEBUG, INFO, WARNING, ...")
    args = p.parse_args()

    params = _apply_overrides(_load_parameters(args.config), args)
    log_cfg = params.get("logging", {}) or {}
    logging.basicConfig(
        level=getattr(logging, str(args.log_level or log_cfg.get("level", "INFO")).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    model_cfg = params.get("model", {}) or {}
    if args.steps is None:
        args.steps = int(model_cfg.get("steps", DEFAULT_STEPS))
    base_seed = args.seed if args.seed is not None else int(model_cfg.get("seed", 42))

    # Each run batch gets its own timestamped folder under outputs/
    tstamp = int(time.time())
    outdir = os.path.join("outputs", f"{args.label}_{tstamp}")
    ensure_dir(outdir)

    # Execute N runs with incrementing seeds for independence
    rows = []
    for i in range(args.runs):
        args_copy = argparse.Namespace(**vars(args))
        args_copy.seed = base_seed + i
        args_copy.events_path = os.path.join(outdir, f"events_run_{i}.csv") if args.events else None
        summary, series = run_once(args_copy, params)
        series.to_csv(os.path.join(outdir, f"timeseries_run_{i}.csv"))
        rows.append(summary)
        logger.info(
            f"Run {i} (seed {args_copy.seed}): {summary['total_investigations']} investigations, "
            f"{summary['recommendations_issued']} recommendations, {summary['oracle_failures']} oracle failures."
        )

    # Save CSV aggregate
    csv_path = os.path.join(outdir, "results.csv")
    with open(csv_path, "w", newline="") as f:
        w = csv.DictWriter(f, fieldnames=sorted(rows[0].keys()))
        w.writeheader()
        w.writerows(rows)

    with open(os.path.join(outdir, "averages.json"), "w") as f:
        json.dump(_averages(rows), f, indent=2)

    # Save metadata for reproducibility
    meta = vars(args).copy()
    meta.update({"base_seed": base_seed, "parameters": params, "config_sha1": sha1_of_dict(params)})
    with open(os.path.join(outdir, "metadata.json"), "w") as f:
        json.dump(meta, f, indent=2, default=str)

    print(f"Wrote {csv_path}")


if __name__ == "__main__":
    main()
