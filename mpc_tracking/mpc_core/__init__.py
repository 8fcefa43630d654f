"""
MPC Core - trajectory-control problem formulation.

Formulates one finite-horizon MPC cycle for a kinematic bicycle model
tracking a cubic reference polynomial, solves it with IPOPT (via CasADi)
and extracts the next actuator command.

Key components:
- VariableLayout: flat decision-vector indexing
- KinematicModel: discrete bicycle dynamics + tracking error states
- ObjectiveFunction: weighted tracking / actuator / smoothness cost
- ConstraintBuilder: bounds, initial guess, dynamics residuals
- ProblemEvaluator: (cost, constraints) callable for the NLP solver
- MPCController: one solve cycle -> MPCResult
"""

from .errors import MPCError, InvalidInputError, SolveNonConvergenceError
from .layout import VariableLayout, STATE_FIELDS, ACTUATOR_FIELDS
from .polynomial import ReferencePolynomial
from .dynamics import KinematicModel
from .objective import ObjectiveFunction
from .constraints import ConstraintBuilder
from .evaluator import ProblemEvaluator
from .solver import NLPSolver, IpoptSolver, NLPSolution, SolveStatus
from .controller import MPCController, MPCConfig, MPCResult

__all__ = [
    'MPCError',
    'InvalidInputError',
    'SolveNonConvergenceError',
    'VariableLayout',
    'STATE_FIELDS',
    'ACTUATOR_FIELDS',
    'ReferencePolynomial',
    'KinematicModel',
    'ObjectiveFunction',
    'ConstraintBuilder',
    'ProblemEvaluator',
    'NLPSolver',
    'IpoptSolver',
    'NLPSolution',
    'SolveStatus',
    'MPCController',
    'MPCConfig',
    'MPCResult',
]
