"""Graph workflow definition."""

from pydantic_graph import Graph

from pullguard.core.config import State
from pullguard.core.log import logger


def create_workflow(state_type=State):
    """Create the pull workflow graph.

    Predict → StartOperation → ResolveAll → ContinueOperation →
        [ResolveAll again when a rebase stops, or End]

    Returns:
        Graph workflow whose run ends with an exit code
    """
    logger.debug("Building workflow graph")

    # Import nodes (lazy to avoid circular imports)
    from pullguard.workflow.nodes.continue_operation import ContinueOperation
    from pullguard.workflow.nodes.predict import Predict
    from pullguard.workflow.nodes.resolve_all import ResolveAll
    from pullguard.workflow.nodes.start_operation import StartOperation

    workflow = Graph(
        nodes=(
            Predict,
            StartOperation,
            ResolveAll,
            ContinueOperation,
        ),
        state_type=state_type,
    )

    return workflow


async def run_workflow(start, state) -> int:
    """Run the graph from ``start`` and return its exit code."""
    workflow = create_workflow(type(state))
    async with workflow.iter(start, state=state) as run:
        async for node in run:
            if hasattr(node, 'data'):
                return node.data

    logger.error("Workflow ended unexpectedly")
    return 1
