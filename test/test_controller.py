"""
Tests for MPCController and the IPOPT adapter.

Tests cover:
1. Straight-reference scenario - near-zero commands, straight prediction
2. Braking scenario - reference speed below current speed
3. Optimality vs the do-nothing trajectory
4. Command bounds and initial-condition rows on real solves
5. Warm-starting from the previous solution
6. Input validation happens before any solver call
7. Solver failures surface as SolveNonConvergenceError

Run with:
    python3 -m pytest test/test_controller.py -v
"""

import sys
import os
import math
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from mpc_tracking.mpc_core import (
    MPCController, MPCConfig, MPCResult, KinematicModel, ObjectiveFunction,
    ReferencePolynomial, VariableLayout, InvalidInputError,
    SolveNonConvergenceError, NLPSolver, NLPSolution, IpoptSolver, SolveStatus,
)
from mpc_tracking.mpc_core.solver import _IPOPT_STATUS


# ============================================================================
# Fixtures
# ============================================================================

STRAIGHT = [0.0, 0.0, 0.0, 0.0]
ON_REFERENCE = np.array([0.0, 0.0, 0.0, 10.0, 0.0, 0.0])


@pytest.fixture
def cruise_config():
    """N=10, dt=0.05, Lf=2.67, cruising at the current speed."""
    return MPCConfig(
        horizon=10,
        dt=0.05,
        lf=2.67,
        reference_velocity=10.0,
        max_cpu_time=5.0,
    )


@pytest.fixture
def controller(cruise_config):
    return MPCController(cruise_config)


class RecordingSolver(NLPSolver):
    """Returns a canned solution and remembers what it was asked."""

    def __init__(self, solution=None):
        self.calls = []
        self.solution = solution or NLPSolution(status=SolveStatus.INFEASIBLE,
                                                return_status='Infeasible_Problem_Detected')

    def solve(self, evaluator, x0, lbx, ubx, lbg, ubg):
        self.calls.append({'evaluator': evaluator, 'x0': x0, 'lbx': lbx, 'ubx': ubx,
                           'lbg': lbg, 'ubg': ubg})
        return self.solution


# ============================================================================
# Scenarios
# ============================================================================

class TestScenarios:

    def test_straight_reference(self, controller, cruise_config):
        """On a straight reference at target speed, do almost nothing."""
        result = controller.solve(ON_REFERENCE, STRAIGHT)

        assert isinstance(result, MPCResult)
        assert result.status is SolveStatus.SUCCESS
        assert abs(result.steering) < 1e-3, f"steering {result.steering} should be ~0"
        assert abs(result.acceleration) < 1e-2, f"accel {result.acceleration} should be ~0"

        traj = result.trajectory
        assert traj.shape == (cruise_config.horizon - 1, 2)
        assert np.all(np.abs(traj[:, 1]) < 1e-3), "Prediction should stay on y=0"
        assert np.all(np.diff(traj[:, 0]) > 0), "Prediction should move forward"
        np.testing.assert_allclose(traj[:, 0], 0.5 * np.arange(1, 10), atol=1e-2)

    def test_braking_when_over_reference_speed(self, cruise_config):
        config = MPCConfig(horizon=10, dt=0.05, lf=2.67, reference_velocity=5.0,
                           max_cpu_time=5.0)
        result = MPCController(config).solve(ON_REFERENCE, STRAIGHT)

        assert result.acceleration < 0, f"Expected braking, got a={result.acceleration}"
        assert result.acceleration >= -config.max_acceleration

    def test_accelerates_when_under_reference_speed(self, cruise_config):
        config = MPCConfig(horizon=10, dt=0.05, lf=2.67, reference_velocity=20.0,
                           max_cpu_time=5.0)
        result = MPCController(config).solve(ON_REFERENCE, STRAIGHT)
        assert result.acceleration > 0
        assert result.acceleration <= config.max_acceleration

    def test_not_worse_than_doing_nothing(self, controller, cruise_config):
        """The optimum costs no more than the zero-actuation rollout."""
        coeffs = [0.0, 0.0, 0.005, 0.0]
        reference = ReferencePolynomial(coeffs)
        layout = VariableLayout(cruise_config.horizon)
        model = KinematicModel(cruise_config.lf, cruise_config.dt)
        objective = ObjectiveFunction(layout, cruise_config)

        idle = np.zeros((cruise_config.horizon - 1, 2))
        states = model.simulate(ON_REFERENCE, idle, reference)
        idle_cost = objective(layout.pack(states, idle))

        result = controller.solve(ON_REFERENCE, coeffs)
        assert result.cost <= idle_cost + 1e-6, \
            f"Optimal cost {result.cost} exceeds do-nothing cost {idle_cost}"

    def test_straight_cost_is_near_zero(self, controller):
        result = controller.solve(ON_REFERENCE, STRAIGHT)
        assert result.cost < 1e-6
        assert sum(result.cost_terms.values()) == pytest.approx(result.cost, abs=1e-6)


# ============================================================================
# Invariants on real solves
# ============================================================================

class TestSolutionInvariants:

    CASES = [
        (np.array([0.0, 0.0, 0.0, 10.0, 2.0, 0.3]), [2.0, 0.1, 0.0, 0.0]),
        (np.array([0.0, 0.0, 0.0, 15.0, -1.5, -0.2]), [-1.5, -0.2, 0.01, 0.0]),
        (np.array([0.0, 0.0, 0.0, 5.0, 0.5, 0.05]), [0.5, 0.05, 0.0, 0.001]),
    ]

    def test_commands_within_bounds(self, controller, cruise_config):
        for state, coeffs in self.CASES:
            result = controller.solve(state, coeffs)
            assert abs(result.steering) <= cruise_config.max_steering
            assert abs(result.acceleration) <= cruise_config.max_acceleration

    def test_initial_rows_match_state(self, controller, cruise_config):
        layout = VariableLayout(cruise_config.horizon)
        for state, coeffs in self.CASES:
            result = controller.solve(state, coeffs)
            first = [layout.value(result.solution, name, 0)
                     for name in ('x', 'y', 'psi', 'v', 'cte', 'epsi')]
            np.testing.assert_allclose(first, state, atol=1e-6)

    def test_initial_rows_pinned_for_any_horizon(self):
        """Constraint bounds carry the exact state whatever N or weights are."""
        state = np.array([0.3, -0.1, 0.05, 7.0, 0.2, -0.01])
        for horizon, steering_weight in ((2, 1.0), (5, 10.0), (25, 5000.0)):
            solver = RecordingSolver()
            config = MPCConfig(horizon=horizon, steering_weight=steering_weight)
            with pytest.raises(SolveNonConvergenceError):
                MPCController(config, solver=solver).solve(state, STRAIGHT)

            call = solver.calls[0]
            layout = VariableLayout(horizon)
            for i, name in enumerate(('x', 'y', 'psi', 'v', 'cte', 'epsi')):
                row = layout.start(name)
                assert call['lbg'][row] == state[i]
                assert call['ubg'][row] == state[i]
            assert call['lbg'].shape == (6 * horizon,)

    def test_solution_satisfies_dynamics(self, controller):
        state = np.array([0.0, 0.0, 0.0, 10.0, 1.0, 0.1])
        coeffs = [1.0, 0.1, 0.0, 0.0]
        result = controller.solve(state, coeffs)

        solver = RecordingSolver()
        with pytest.raises(SolveNonConvergenceError):
            MPCController(controller.config, solver=solver).solve(state, coeffs)
        g = solver.calls[0]['evaluator'].constraints(result.solution)
        lbg = solver.calls[0]['lbg']
        assert np.max(np.abs(g - lbg)) < 1e-6


# ============================================================================
# Warm starting
# ============================================================================

class TestWarmStart:

    def test_warm_start_from_previous_solution(self, controller, cruise_config):
        state = np.array([0.0, 0.0, 0.0, 10.0, 0.5, 0.0])
        coeffs = [0.5, 0.0, 0.0, 0.0]
        first = controller.solve(state, coeffs)

        reference = ReferencePolynomial(coeffs)
        next_state = controller.model.step(state, first.actuation, reference)
        second = controller.solve(next_state, coeffs, warm_start=first.solution)

        assert second.status is SolveStatus.SUCCESS
        assert abs(second.steering) <= cruise_config.max_steering

    def test_warm_start_is_shifted_into_initial_guess(self, cruise_config):
        solver = RecordingSolver()
        controller = MPCController(cruise_config, solver=solver)
        layout = VariableLayout(cruise_config.horizon)
        previous = np.arange(layout.n_vars, dtype=float)

        with pytest.raises(SolveNonConvergenceError):
            controller.solve(ON_REFERENCE, STRAIGHT, warm_start=previous)
        x0 = solver.calls[0]['x0']
        assert x0[layout.x_start] == previous[layout.x_start + 1]
        assert x0[layout.a_start] == previous[layout.a_start + 1]

    def test_wrong_size_warm_start_rejected(self, cruise_config):
        solver = RecordingSolver()
        with pytest.raises(InvalidInputError):
            MPCController(cruise_config, solver=solver).solve(
                ON_REFERENCE, STRAIGHT, warm_start=np.zeros(3))
        assert solver.calls == []


# ============================================================================
# Input validation
# ============================================================================

class TestInvalidInput:

    def test_five_component_state(self, cruise_config):
        solver = RecordingSolver()
        controller = MPCController(cruise_config, solver=solver)
        with pytest.raises(InvalidInputError):
            controller.solve([0.0, 0.0, 0.0, 10.0, 0.0], STRAIGHT)
        assert solver.calls == [], "Solver must not run on invalid input"

    def test_two_dimensional_state(self, cruise_config):
        solver = RecordingSolver()
        with pytest.raises(InvalidInputError):
            MPCController(cruise_config, solver=solver).solve(np.zeros((2, 3)), STRAIGHT)
        assert solver.calls == []

    def test_polynomial_degree_too_high(self, cruise_config):
        solver = RecordingSolver()
        with pytest.raises(InvalidInputError):
            MPCController(cruise_config, solver=solver).solve(ON_REFERENCE, [0.0] * 5)
        assert solver.calls == []

    def test_short_coefficients_accepted(self, controller):
        result = controller.solve(ON_REFERENCE, [0.0])
        assert abs(result.steering) < 1e-3

    def test_bad_configuration(self):
        with pytest.raises(InvalidInputError):
            MPCConfig(horizon=1)
        with pytest.raises(InvalidInputError):
            MPCConfig(max_steering=0.0)
        with pytest.raises(InvalidInputError):
            MPCConfig(max_acceleration=-1.0)
        with pytest.raises(InvalidInputError):
            MPCConfig(steering_weight=-5.0)
        with pytest.raises(InvalidInputError):
            MPCConfig(dt=0.0)


# ============================================================================
# Solver failures
# ============================================================================

class TestSolveFailure:

    def test_non_success_status_raises(self, cruise_config):
        controller = MPCController(cruise_config, solver=RecordingSolver())
        with pytest.raises(SolveNonConvergenceError) as exc_info:
            controller.solve(ON_REFERENCE, STRAIGHT)
        assert exc_info.value.status is SolveStatus.INFEASIBLE
        assert exc_info.value.return_status == 'Infeasible_Problem_Detected'

    def test_iteration_limit_reported(self):
        config = MPCConfig(reference_velocity=10.0, max_cpu_time=5.0,
                           solver_options={'ipopt.max_iter': 1})
        with pytest.raises(SolveNonConvergenceError) as exc_info:
            MPCController(config).solve(ON_REFERENCE, [0.0, 0.0, 0.01, 0.0])
        assert exc_info.value.status is SolveStatus.LIMIT_EXCEEDED

    def test_success_without_solution_is_failure(self, cruise_config):
        solver = RecordingSolver(NLPSolution(status=SolveStatus.SUCCESS, x=None))
        with pytest.raises(SolveNonConvergenceError):
            MPCController(cruise_config, solver=solver).solve(ON_REFERENCE, STRAIGHT)

    def test_failure_is_an_mpc_error_and_runtime_error(self, cruise_config):
        controller = MPCController(cruise_config, solver=RecordingSolver())
        with pytest.raises(RuntimeError):
            controller.solve(ON_REFERENCE, STRAIGHT)


# ============================================================================
# IPOPT adapter
# ============================================================================

class TestIpoptSolver:

    def test_status_mapping(self):
        assert _IPOPT_STATUS['Solve_Succeeded'] is SolveStatus.SUCCESS
        assert _IPOPT_STATUS['Infeasible_Problem_Detected'] is SolveStatus.INFEASIBLE
        assert _IPOPT_STATUS['Maximum_CpuTime_Exceeded'] is SolveStatus.LIMIT_EXCEEDED

    def test_early_stops_are_not_numerical_failures(self):
        assert _IPOPT_STATUS['Solved_To_Acceptable_Level'] is SolveStatus.LIMIT_EXCEEDED
        assert _IPOPT_STATUS['User_Requested_Stop'] is SolveStatus.ERROR
        assert _IPOPT_STATUS['Insufficient_Memory'] is SolveStatus.ERROR
        assert _IPOPT_STATUS['Restoration_Failed'] is SolveStatus.NUMERICAL_FAILURE

    def test_options_carry_time_limit(self):
        opts = IpoptSolver(max_cpu_time=0.25, options={'ipopt.tol': 1e-6}).build_options()
        assert opts['ipopt.max_cpu_time'] == 0.25
        assert opts['ipopt.tol'] == 1e-6
        assert opts['ipopt.print_level'] == 0

    def test_controller_builds_solver_from_config(self):
        config = MPCConfig(max_cpu_time=0.1, solver_options={'ipopt.tol': 1e-7})
        solver = MPCController(config).solver
        assert isinstance(solver, IpoptSolver)
        assert solver.max_cpu_time == 0.1
        assert solver.build_options()['ipopt.tol'] == 1e-7

    def test_default_steering_limit(self):
        assert MPCConfig().max_steering == pytest.approx(math.radians(25.0))


if __name__ == '__main__':
    pytest.main([__file__, '-v', '--tb=short'])
