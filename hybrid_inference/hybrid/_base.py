class HybridError(Exception):
    pass


class HybridConfigurationError(HybridError):
    """
    A factor that a hybrid graph does not know how to hold.
    """
    pass


class HybridEliminationError(HybridError):
    pass


class KeyInvarianceError(HybridEliminationError):
    """
    Discrete branches disagree about which continuous keys are frontal or
    separator.
    """
    pass


def _assignment_name(assignment):
    if not assignment:
        return "{}"
    return ",".join(f"{k}={v}" for k, v in assignment.items())


def count_assignments(discrete_keys):
    """
    how many leaves a full tree over these keys has
    """
    n = 1
    for dk in discrete_keys:
        n *= dk.cardinality
    return n
