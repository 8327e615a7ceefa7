"""
track_evolve/errors.py

Errors surfaced to callers.

Spatial conditions (no path to the finish, positions off the grid) are not
errors here: the oracle answers with a sentinel distance and the map answers
with WALL.
"""


class TrackEvolveError(Exception):
    """Base class for track_evolve errors."""


class ShapeMismatch(TrackEvolveError, ValueError):
    """A parameter set does not fit the policy topology."""


class InvalidConfiguration(TrackEvolveError, ValueError):
    """A map or engine setting is unusable."""
