"""Storage node model."""
from pydantic import Field

from strata.models.meta import Resource


class Node(Resource):
    """A storage node; only its labels matter for pool placement."""

    kind = "Node"

    unschedulable: bool = Field(default=False)
