"""Exception types raised by the planning engine."""


class PlannerError(Exception):
    """Base class for planner errors."""
    pass


class BuildCancelled(PlannerError):
    """A recipe tree build was cancelled by the caller."""
    pass


class PlanningCancelled(PlannerError):
    """A procurement run was cancelled by the caller."""
    pass
