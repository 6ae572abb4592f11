#!/usr/bin/env python3
"""
CCR Exposure Engine - Demo Script

This script demonstrates the complete exposure workflow:
1. Load a scenario (market, volatilities, calibration, portfolio)
2. Calibrate the factor model and run the Monte Carlo simulation
3. Report CVA, DVA, FVA and the exposure profiles
4. Compute CVA sensitivities with both engines
5. Export results

Usage:
    python examples/run_demo.py [scenario.yaml]
"""

import logging
import sys
from pathlib import Path

from ccr_core import (
    BumpDirection,
    BumpSpecification,
    SensitivityEngine,
    build_scenario,
    create_default_scenario_config,
    load_scenario,
)
from ccr_core.reporting import (
    create_exposure_plot,
    export_to_csv,
    exposure_profile_table,
    measure_table,
    peak_exposure,
)


def main() -> None:
    """Run the CCR demo."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    print("=" * 60)
    print("CCR Exposure Engine - Demo")
    print("=" * 60)
    print()

    # =========================================================================
    # 1. Load Scenario
    # =========================================================================
    print("1. Loading scenario...")

    if len(sys.argv) > 1:
        scenario = load_scenario(sys.argv[1])
    else:
        scenario = build_scenario(create_default_scenario_config(n_paths=2000))

    print(f"   Portfolio: {len(scenario.trades)} trades")
    print(f"   Netting groups: {[g.name for g in scenario.netting.groups]}")
    print()

    # =========================================================================
    # 2. Run Simulation
    # =========================================================================
    print("2. Running Monte Carlo simulation...")

    calc = scenario.calculations().execute()

    print(f"   Paths: {calc.settings.n_paths}")
    print(f"   Dates: {len(calc.grid)}")
    print()

    # =========================================================================
    # 3. Exposure Measures
    # =========================================================================
    print("3. Exposure measures...")

    summary = measure_table(
        calc.aggregator, ["CVA", "CVA0", "DVA", "FCA", "FBA", "FVA", "EPE", "EEPE"]
    )
    print(summary.to_string(index=False))
    t_peak, ee_peak = peak_exposure(calc.aggregator)
    print(f"   Peak EE: ${ee_peak:,.0f} at {t_peak:.1f}Y")
    print()

    # =========================================================================
    # 4. Sensitivities
    # =========================================================================
    print("4. CVA sensitivities...")

    usd = scenario.environment.discount_curve("USD")
    cpty = scenario.credit.counterparty
    bumps = [
        BumpSpecification(usd, size=1.0),
        BumpSpecification(cpty, size=1.0, direction=BumpDirection.BOTH),
    ]
    engine = SensitivityEngine(calc, measures=["CVA"])
    print(engine.factor_sensitivities(bumps).to_string(index=False))
    print()

    # =========================================================================
    # 5. Export Results
    # =========================================================================
    print("5. Exporting results...")

    output_dir = Path(__file__).parent / "outputs"
    output_dir.mkdir(exist_ok=True)

    export_to_csv(calc.results(), output_dir / "demo_measures.csv")
    export_to_csv(exposure_profile_table(calc.aggregator), output_dir / "demo_profiles.csv")
    fig = create_exposure_plot(calc.aggregator)
    fig.savefig(output_dir / "demo_exposure.png")

    for path in sorted(output_dir.glob("demo_*")):
        print(f"   Saved: {path}")

    print()
    print("=" * 60)
    print("Demo complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
