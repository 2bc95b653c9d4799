"""
CI/Smoke helper: run a short simulation and assert that applicants reach benefits.
Usage:
    python -m welfare_sim.smoke_demo
"""
from __future__ import annotations

import logging
import os

from .run_experiment import _load_parameters
from .model import WelfareModel


def main() -> None:
    logging.basicConfig(level=logging.WARNING)
    params = _load_parameters(os.path.join(os.getcwd(), "parameters.yaml"))
    params.setdefault("model", {})
    params["model"]["total_agents"] = 50

    model = WelfareModel.from_parameters(params, seed=123)
    summary = model.run(steps=36)
    counts = model.datacollector.get_model_vars_dataframe()
    peak = int(counts["stage_ReceivingBenefits"].max())
    if peak <= 0:
        raise AssertionError("Smoke demo expected agents on benefits; none reached ReceivingBenefits.")
    print(
        f"Smoke demo OK: peak on benefits={peak}, investigations={summary['total_investigations']}, "
        f"recommendations={summary['recommendations_issued']}"
    )


if __name__ == "__main__":
    main()
