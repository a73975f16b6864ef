from typing import Any
import numpy as np


def _parse_to_list(*args: Any):
    if len(args) == 0:
        return []
    elif len(args) == 1:
        var_in = args[0]
    else:
        var_in = args

    if var_in is None:
        return []
    elif isinstance(var_in, list):
        return var_in
    elif isinstance(var_in, tuple) or isinstance(var_in, set):
        return list(var_in)
    else:
        return [var_in]


def _concatenate_to_array(var_list: list):
    """ Stacks a list of scalars and vectors into one array, also returning the cumulative offsets """
    sizes = [np.size(v) for v in var_list]
    if any(v is None for v in var_list):
        raise ValueError("Trying to add None to the array")
    cumulative_inds = np.zeros(len(var_list) + 1, dtype=int)
    np.cumsum(sizes, out=cumulative_inds[1:])
    if len(var_list) == 0:
        return np.array([]), cumulative_inds
    return np.concatenate([np.ravel(v).astype(float) for v in var_list]), cumulative_inds


def colored(r, g, b, text):
    """ Colors a string for output to the terminal using 24-bit ANSI escape sequences """
    return f"\033[38;2;{r};{g};{b}m{text}\033[38;2;255;255;255m"
