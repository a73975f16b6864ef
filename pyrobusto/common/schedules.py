""" Continuation schedules as functions of the (1-based) outer iteration """

SS_SCALE_STEPS = ((200, 1e8), (125, 5e7), (100, 1e7), (75, 1e6), (50, 1e5), (25, 1e4))
DRIP_SCALE_STEPS = ((160, 1e9), (120, 1e8), (80, 1e7), (40, 1e6))


def volume_goal(it: int, start: float, target: float, decrease: float):
    """ Volume goal of iteration ``it``, shrinking geometrically from ``start`` and clamped at ``target``

    The goal of iteration ``it`` is ``max(target, start * (1 - decrease) ** it)``, so the first iteration already uses
    one decrease step.
    """
    return max(target, start * (1 - decrease) ** it)


def _staged(it: int, steps, initial: float):
    for threshold, value in steps:
        if it > threshold:
            return value
    return initial


def ss_scale(it: int):
    """ Scale factor of the self-support constraint """
    return _staged(it, SS_SCALE_STEPS, 1e3)


def drip_scale(it: int):
    """ Scale factor of the drip constraint """
    return _staged(it, DRIP_SCALE_STEPS, 1e5)


def heaviside_beta(it: int, beta0: float = 4.0, cap: float = 8.0, every: int = 20):
    """ Sharpness of the Heaviside projection, doubled after every ``every`` iterations until the cap """
    return min(cap, beta0 * 2 ** ((it - 1) // every))
