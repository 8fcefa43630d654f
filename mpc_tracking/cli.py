"""
Command-line MPC solve.

Solves one or more MPC cycles for a given state and reference polynomial
and prints the commands. With --steps > 1 the kinematic model advances the
state with each returned command and the previous solution warm-starts the
next solve, which is a quick way to check a tuning in closed loop.

Usage:
    mpc_solve --state 0 0 0 10 0 0 --coeffs 0 0 0 0 --set reference_velocity=10
    mpc_solve --preset low_speed --state 0 1 0 15 1 0 --coeffs 0 0.1 --steps 20
"""

import argparse
import json
import logging

import numpy as np
import yaml

from mpc_tracking.mpc_config import load_mpc_config, load_preset, list_presets
from mpc_tracking.mpc_core import MPCController, MPCError, ReferencePolynomial

logger = logging.getLogger(__name__)


def _parse_overrides(items):
    """--set key=value pairs; values are parsed as YAML scalars."""
    overrides = {}
    for item in items:
        if '=' not in item:
            raise argparse.ArgumentTypeError(f"Expected key=value, got '{item}'")
        key, value = item.split('=', 1)
        overrides[key.strip()] = yaml.safe_load(value)
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Solve polynomial-tracking MPC cycles")
    parser.add_argument("--state", type=float, nargs='+', default=[0.0, 0.0, 0.0, 10.0, 0.0, 0.0],
                        help="Initial state: x y psi v cte epsi")
    parser.add_argument("--coeffs", type=float, nargs='+', default=[0.0, 0.0, 0.0, 0.0],
                        help="Reference polynomial coefficients c0 [c1 [c2 [c3]]]")
    parser.add_argument("--config", default=None, help="Path to an mpc.yaml")
    parser.add_argument("--preset", default=None, help="Named preset (see --list-presets)")
    parser.add_argument("--list-presets", action="store_true", help="List presets and exit")
    parser.add_argument("--set", dest="overrides", action="append", default=[],
                        metavar="KEY=VALUE", help="Override one MPCConfig field")
    parser.add_argument("--steps", type=int, default=1, help="Closed-loop cycles to run")
    parser.add_argument("--json-out", default="", help="Optional output JSON path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def run_closed_loop(controller, state, coeffs, steps):
    """Solve `steps` cycles, advancing the state with the kinematic model."""
    reference = ReferencePolynomial(coeffs)
    state = np.asarray(state, dtype=np.float64)
    warm_start = None
    records = []

    for step in range(steps):
        result = controller.solve(state, coeffs, warm_start=warm_start)
        records.append({
            'step': step,
            'state': state.tolist(),
            'steering': result.steering,
            'acceleration': result.acceleration,
            'cost': result.cost,
            'solve_time': result.solve_time,
            'trajectory': result.trajectory.tolist(),
        })
        state = controller.model.step(state, result.actuation, reference)
        warm_start = result.solution

    return records


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_presets:
        for name in list_presets():
            print(name)
        return 0

    try:
        overrides = _parse_overrides(args.overrides)
        if args.preset:
            config = load_preset(args.preset, **overrides)
            if config is None:
                logger.error("Preset '%s' not found (available: %s)",
                             args.preset, ', '.join(list_presets()))
                return 1
        else:
            config = load_mpc_config(args.config, **overrides)

        controller = MPCController(config)
        records = run_closed_loop(controller, args.state, args.coeffs, max(args.steps, 1))
    except (MPCError, argparse.ArgumentTypeError) as e:
        logger.error("%s", e)
        return 1

    print(f"{'step':>4s} {'steering':>10s} {'accel':>10s} {'cost':>14s} {'ms':>8s}")
    for rec in records:
        print(f"{rec['step']:4d} {rec['steering']:10.5f} {rec['acceleration']:10.5f} "
              f"{rec['cost']:14.6g} {rec['solve_time'] * 1e3:8.1f}")

    last = records[-1]
    print("\nPredicted trajectory (last step):")
    for x, y in last['trajectory']:
        print(f"  {x:10.4f} {y:10.4f}")

    if args.json_out:
        with open(args.json_out, "w") as f:
            json.dump({"records": records}, f, indent=2)
        print(f"\nSaved results JSON: {args.json_out}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
