"""
NLP solver contract and the IPOPT adapter.

The MPC core only formulates the problem; the optimisation itself is done
by an external solver that takes an evaluator, variable bounds, constraint
bounds and an initial guess, and reports a status plus the solution.

IpoptSolver lifts the evaluator to a CasADi SX graph, so IPOPT receives
exact, sparse Jacobians and Hessians without hand-written derivatives. A
fresh nlpsol is built on every call; nothing is cached between solves.
"""

import enum
import logging
import time
import numpy as np
import casadi as ca
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class SolveStatus(enum.Enum):
    SUCCESS = 'success'
    INFEASIBLE = 'infeasible'
    LIMIT_EXCEEDED = 'limit_exceeded'
    NUMERICAL_FAILURE = 'numerical_failure'
    ERROR = 'error'


# IPOPT return_status strings, as reported by casadi's solver.stats()
_IPOPT_STATUS = {
    'Solve_Succeeded': SolveStatus.SUCCESS,
    'Infeasible_Problem_Detected': SolveStatus.INFEASIBLE,
    'Not_Enough_Degrees_Of_Freedom': SolveStatus.INFEASIBLE,
    'Search_Direction_Becomes_Too_Small': SolveStatus.NUMERICAL_FAILURE,
    'Diverging_Iterates': SolveStatus.NUMERICAL_FAILURE,
    'Restoration_Failed': SolveStatus.NUMERICAL_FAILURE,
    'Error_In_Step_Computation': SolveStatus.NUMERICAL_FAILURE,
    'Invalid_Number_Detected': SolveStatus.NUMERICAL_FAILURE,
    # Stopped early at a looser tolerance or a feasible point; not converged
    'Solved_To_Acceptable_Level': SolveStatus.LIMIT_EXCEEDED,
    'Feasible_Point_Found': SolveStatus.LIMIT_EXCEEDED,
    'Maximum_Iterations_Exceeded': SolveStatus.LIMIT_EXCEEDED,
    'Maximum_CpuTime_Exceeded': SolveStatus.LIMIT_EXCEEDED,
    'Maximum_WallTime_Exceeded': SolveStatus.LIMIT_EXCEEDED,
    'User_Requested_Stop': SolveStatus.ERROR,
    'Insufficient_Memory': SolveStatus.ERROR,
    'Invalid_Problem_Definition': SolveStatus.ERROR,
    'Invalid_Option': SolveStatus.ERROR,
    'Internal_Error': SolveStatus.ERROR,
    'Unrecoverable_Exception': SolveStatus.ERROR,
    'NonIpopt_Exception_Thrown': SolveStatus.ERROR,
}


@dataclass
class NLPSolution:
    """Outcome of one NLP solve."""
    status: SolveStatus = SolveStatus.ERROR
    x: Optional[np.ndarray] = None
    cost: float = float('inf')
    iterations: int = 0
    return_status: str = ''
    solve_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is SolveStatus.SUCCESS and self.x is not None


class NLPSolver(ABC):
    """Anything that can minimise an evaluator subject to bounds."""

    @abstractmethod
    def solve(self, evaluator, x0: np.ndarray,
              lbx: np.ndarray, ubx: np.ndarray,
              lbg: np.ndarray, ubg: np.ndarray) -> NLPSolution:
        """
        Minimise evaluator.objective subject to lbg <= g <= ubg, lbx <= x <= ubx.

        Args:
            evaluator: ProblemEvaluator (callable vars -> (cost, g))
            x0: Initial guess [n_vars]
            lbx, ubx: Variable bounds [n_vars]
            lbg, ubg: Constraint bounds [n_constraints]

        Returns:
            NLPSolution; a non-success status is reported, never raised.
        """


class IpoptSolver(NLPSolver):
    """IPOPT through casadi.nlpsol."""

    def __init__(self, max_cpu_time: float = 0.5, print_level: int = 0,
                 options: Optional[Dict] = None):
        self.max_cpu_time = max_cpu_time
        self.print_level = print_level
        self.extra_options = dict(options or {})

    def build_options(self) -> Dict:
        opts = {
            'ipopt.print_level': self.print_level,
            'ipopt.sb': 'yes',
            'print_time': 0,
            'ipopt.max_cpu_time': self.max_cpu_time,
            # Sparse symmetric factorisation of the KKT system
            'ipopt.linear_solver': 'mumps',
            'error_on_fail': False,
        }
        opts.update(self.extra_options)
        return opts

    def solve(self, evaluator, x0, lbx, ubx, lbg, ubg) -> NLPSolution:
        t_start = time.time()

        vars_sym = ca.SX.sym('vars', evaluator.n_vars)
        cost, g = evaluator(vars_sym)
        nlp = {'x': vars_sym, 'f': cost, 'g': g}

        try:
            solver = ca.nlpsol('mpc', 'ipopt', nlp, self.build_options())
            sol = solver(x0=x0, lbx=lbx, ubx=ubx, lbg=lbg, ubg=ubg)
        except RuntimeError as e:
            logger.warning("IPOPT raised during solve: %s", e)
            return NLPSolution(
                status=SolveStatus.ERROR,
                return_status=str(e),
                solve_time=time.time() - t_start,
            )

        stats = solver.stats()
        return_status = stats.get('return_status', '')
        status = _IPOPT_STATUS.get(return_status, SolveStatus.NUMERICAL_FAILURE)

        solution = NLPSolution(
            status=status,
            cost=float(sol['f']),
            iterations=int(stats.get('iter_count', 0)),
            return_status=return_status,
            solve_time=time.time() - t_start,
        )
        if status is SolveStatus.SUCCESS:
            solution.x = np.array(sol['x'], dtype=np.float64).ravel()

        logger.debug("IPOPT %s after %d iterations (cost=%.6g, %.1f ms)",
                     return_status, solution.iterations, solution.cost,
                     solution.solve_time * 1e3)
        return solution
