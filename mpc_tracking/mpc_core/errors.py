"""Exception types raised by the MPC core."""


class MPCError(Exception):
    """Base class for all MPC core errors."""


class InvalidInputError(MPCError, ValueError):
    """Caller or configuration bug, rejected before the problem is built."""


class SolveNonConvergenceError(MPCError, RuntimeError):
    """The NLP solver finished without a usable solution.

    The caller decides the fallback (hold the previous command, command a
    stop, ...); nothing is retried here.
    """

    def __init__(self, status, return_status: str = '', solve_time: float = 0.0):
        self.status = status
        self.return_status = return_status
        self.solve_time = solve_time
        super().__init__(
            f"MPC solve failed: {status.name} ({return_status or 'no solver message'})")
