from collections import deque
from typing import Iterable

import numpy as np


class ConvergenceState:
    """ Sliding window over the history of the objective and constraint values

    The optimization is considered stable once the window is full and, for the objective and every constraint, the
    spread of the values within the window relative to the latest value is below the tolerance.

    Args:
        n_constraints: Number of tracked constraint values
        window (optional): Number of iterations in the window
        tol (optional): Relative tolerance
        floor (optional): Lower bound of the reference magnitude, for values that go to zero
    """
    def __init__(self, n_constraints: int, window: int = 2, tol: float = 5e-3, floor: float = 1e-9):
        if window < 2:
            raise ValueError(f"Convergence window must contain at least 2 iterations, got {window}")
        self.n_constraints = n_constraints
        self.window = window
        self.tol = tol
        self.floor = floor
        self.history = deque(maxlen=window)
        self.change = np.inf

    def __len__(self):
        return len(self.history)

    def update(self, objective: float, constraints: Iterable[float] = ()) -> bool:
        """ Add the values of one iteration and check for convergence """
        sample = np.concatenate([[objective], np.ravel(np.asarray(list(constraints), dtype=float))])
        if sample.size != self.n_constraints + 1:
            raise ValueError(f"Expected {self.n_constraints} constraint values, got {sample.size - 1}")
        self.history.append(sample)
        if len(self.history) < self.window:
            return False

        h = np.array(self.history)
        ref = np.maximum(np.abs(h[-1]), self.floor)
        self.change = float(np.max((h.max(axis=0) - h.min(axis=0)) / ref))
        return self.change < self.tol
