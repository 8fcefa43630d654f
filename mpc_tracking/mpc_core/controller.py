"""
MPC Controller - one trajectory-optimisation cycle per call.

Builds the problem fresh on every solve() call (layout, bounds, initial
guess, evaluator), hands it to the NLP solver, and decodes the first
actuator pair and the predicted (x, y) trajectory from the solution.
Nothing from a previous solve is kept on the controller; warm-starting
is an explicit argument.

Key features:
- Kinematic bicycle model with cross-track / heading error states
- Cubic reference polynomial in the vehicle frame
- Weighted tracking, actuator and smoothness costs
- IPOPT via CasADi with a configurable CPU-time ceiling
"""

import logging
import math
import time
import numpy as np
from dataclasses import dataclass, field, fields
from collections.abc import Mapping
from typing import Any, Dict, Optional, Tuple

from .constraints import ConstraintBuilder
from .dynamics import KinematicModel, DEFAULT_LF
from .errors import InvalidInputError, SolveNonConvergenceError
from .evaluator import ProblemEvaluator
from .layout import VariableLayout, STATE_FIELDS
from .objective import ObjectiveFunction
from .polynomial import ReferencePolynomial
from .solver import IpoptSolver, NLPSolver, SolveStatus

logger = logging.getLogger(__name__)

_WEIGHT_FIELDS = (
    'cte_weight', 'epsi_weight', 'velocity_weight', 'steering_weight',
    'acceleration_weight', 'steering_rate_weight', 'acceleration_rate_weight',
)
_FLOAT_FIELDS = (
    'dt', 'lf', 'max_steering', 'max_acceleration', 'reference_velocity', 'max_cpu_time',
) + _WEIGHT_FIELDS


@dataclass(frozen=True)
class MPCConfig:
    """MPC configuration. Read-only for the lifetime of a controller."""
    # Horizon
    horizon: int = 10
    dt: float = 0.05

    # Vehicle
    lf: float = DEFAULT_LF
    max_steering: float = math.radians(25.0)
    max_acceleration: float = 1.0

    # Reference velocity (simulator units)
    reference_velocity: float = 50.0

    # Cost weights; steering dominates to keep the command gentle
    cte_weight: float = 4.0
    epsi_weight: float = 4.0
    velocity_weight: float = 1.0
    steering_weight: float = 1000.0
    acceleration_weight: float = 10.0
    steering_rate_weight: float = 4.0
    acceleration_rate_weight: float = 0.0

    # Solver; extra IPOPT options, stored as sorted (key, value) pairs
    max_cpu_time: float = 0.5
    print_level: int = 0
    solver_options: Tuple[Tuple[str, Any], ...] = ()

    def __post_init__(self):
        for name in ('horizon', 'print_level'):
            self._coerce(name, int)
        for name in _FLOAT_FIELDS:
            self._coerce(name, float)

        if self.horizon < 2:
            raise InvalidInputError(f"horizon must be an integer >= 2, got {self.horizon}")
        for name in ('dt', 'lf', 'max_steering', 'max_acceleration', 'max_cpu_time'):
            value = getattr(self, name)
            if not value > 0:
                raise InvalidInputError(f"{name} must be positive, got {value}")
        if not math.isfinite(self.reference_velocity):
            raise InvalidInputError(
                f"reference_velocity must be finite, got {self.reference_velocity}")
        for name in _WEIGHT_FIELDS:
            value = getattr(self, name)
            if not value >= 0:
                raise InvalidInputError(f"{name} must be non-negative, got {value}")

        options = self.solver_options
        if isinstance(options, Mapping):
            options = options.items()
        try:
            options = tuple(sorted(((str(k), v) for k, v in options), key=lambda kv: kv[0]))
        except (TypeError, ValueError):
            raise InvalidInputError(
                f"solver_options must be a mapping, got {self.solver_options!r}") from None
        object.__setattr__(self, 'solver_options', options)

    def _coerce(self, name, kind):
        value = getattr(self, name)
        if isinstance(value, (str, bytes)) or value is None:
            raise InvalidInputError(f"{name} must be numeric, got {value!r}")
        try:
            converted = kind(value)
        except (TypeError, ValueError, OverflowError):
            raise InvalidInputError(f"{name} must be numeric, got {value!r}") from None
        if kind is int and converted != value:
            raise InvalidInputError(f"{name} must be an integer, got {value!r}")
        object.__setattr__(self, name, converted)

    @classmethod
    def field_names(cls):
        return [f.name for f in fields(cls)]


@dataclass
class MPCResult:
    """Result from one successful MPC solve."""
    steering: float = 0.0
    acceleration: float = 0.0
    trajectory: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))
    cost: float = float('inf')
    cost_terms: Dict[str, float] = field(default_factory=dict)
    solve_time: float = 0.0
    iterations: int = 0
    status: SolveStatus = SolveStatus.SUCCESS
    solution: Optional[np.ndarray] = None

    @property
    def actuation(self) -> Tuple[float, float]:
        return self.steering, self.acceleration

    @property
    def predicted_x(self) -> np.ndarray:
        return self.trajectory[:, 0]

    @property
    def predicted_y(self) -> np.ndarray:
        return self.trajectory[:, 1]


class MPCController:
    """
    Polynomial-tracking MPC.

    Each solve() is independent: the problem is rebuilt from the given
    state and reference coefficients, so one controller can be reused
    across control cycles and across different references.
    """

    def __init__(self, config: Optional[MPCConfig] = None,
                 solver: Optional[NLPSolver] = None):
        self.config = config if config is not None else MPCConfig()
        self.model = KinematicModel(lf=self.config.lf, dt=self.config.dt)
        if solver is None:
            solver = IpoptSolver(
                max_cpu_time=self.config.max_cpu_time,
                print_level=self.config.print_level,
                options=self.config.solver_options,
            )
        self.solver = solver

    def solve(self, state, coeffs, warm_start: Optional[np.ndarray] = None) -> MPCResult:
        """
        Solve the MPC problem for one control cycle.

        Args:
            state: [x, y, psi, v, cte, epsi] in the vehicle frame
            coeffs: Reference polynomial coefficients, ascending powers (<= 4)
            warm_start: Previous MPCResult.solution, shifted one step as the
                initial guess

        Returns:
            MPCResult with the first actuation and the predicted trajectory

        Raises:
            InvalidInputError: malformed state, coefficients or warm start
            SolveNonConvergenceError: the solver did not report success
        """
        t_start = time.time()
        cfg = self.config

        state = self._validate_state(state)
        reference = ReferencePolynomial(coeffs)

        layout = VariableLayout(cfg.horizon)
        builder = ConstraintBuilder(layout, self.model, cfg)
        objective = ObjectiveFunction(layout, cfg)

        x0 = builder.initial_guess(warm_start)
        lbx, ubx = builder.variable_bounds()
        lbg, ubg = builder.constraint_bounds(state)
        evaluator = ProblemEvaluator(objective, builder, reference)

        solution = self.solver.solve(evaluator, x0, lbx, ubx, lbg, ubg)
        solve_time = time.time() - t_start

        if not solution.success:
            logger.warning("MPC solve failed: %s (%s) after %.1f ms",
                           solution.status.name, solution.return_status, solve_time * 1e3)
            raise SolveNonConvergenceError(solution.status, solution.return_status, solve_time)

        vars = np.asarray(solution.x, dtype=np.float64).ravel()
        if vars.shape[0] != layout.n_vars:
            raise SolveNonConvergenceError(
                SolveStatus.ERROR,
                f"solver returned {vars.shape[0]} variables, expected {layout.n_vars}",
                solve_time)

        # IPOPT may relax bounds by its tolerance; report commands inside them
        steering = float(np.clip(vars[layout.delta_start], -cfg.max_steering, cfg.max_steering))
        acceleration = float(np.clip(
            vars[layout.a_start], -cfg.max_acceleration, cfg.max_acceleration))

        trajectory = np.column_stack([
            layout.block(vars, 'x')[1:],
            layout.block(vars, 'y')[1:],
        ])

        logger.debug("MPC solve ok: delta=%.4f a=%.4f cost=%.6g (%.1f ms)",
                     steering, acceleration, solution.cost, solve_time * 1e3)

        return MPCResult(
            steering=steering,
            acceleration=acceleration,
            trajectory=trajectory,
            cost=solution.cost,
            cost_terms=objective.breakdown(vars),
            solve_time=solve_time,
            iterations=solution.iterations,
            status=solution.status,
            solution=vars,
        )

    @staticmethod
    def _validate_state(state) -> np.ndarray:
        try:
            state = np.asarray(state, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"State must be numeric: {e}") from e
        if state.ndim != 1 or state.shape[0] != len(STATE_FIELDS):
            raise InvalidInputError(
                f"State must have exactly {len(STATE_FIELDS)} components "
                f"{STATE_FIELDS}, got shape {state.shape}")
        return state
