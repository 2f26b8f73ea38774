"""Static checks on a flow graph before it runs."""

from typing import List

from constants import CONDITION_HANDLES
from models.flow import ConditionNode, Flow
from .models import ValidationIssue


def validate_flow(flow: Flow) -> List[ValidationIssue]:
    """Validate flow structure.

    Rules:
    - the flow has at least one node
    - the flow has exactly one trigger node
    - every edge leaving a condition node has a ``yes`` or ``no`` handle

    A condition with only a ``yes`` edge (or only a ``no`` edge) is valid;
    the unmatched branch ends silently at runtime.

    Returns:
        Issues found, empty when the flow can run
    """
    issues: List[ValidationIssue] = []

    if not flow.nodes:
        issues.append(ValidationIssue("Flow has no nodes"))
        return issues

    triggers = flow.get_trigger_nodes()
    if not triggers:
        issues.append(ValidationIssue("Flow must have a trigger node"))
    elif len(triggers) > 1:
        issues.append(ValidationIssue(
            f"Flow must not have more than one trigger node (found {len(triggers)})"
        ))

    for node in flow.nodes:
        if not isinstance(node, ConditionNode):
            continue
        edges = flow.outgoing_edges(node.id)

        missing = [e for e in edges if not e.source_handle]
        if missing:
            issues.append(ValidationIssue(
                f"Condition node {node.id} has {len(missing)} edge(s) without sourceHandle. "
                f"Edges leaving a condition node must have sourceHandle 'yes' or 'no'",
                node_id=node.id,
            ))

        for edge in edges:
            if edge.source_handle and edge.source_handle not in CONDITION_HANDLES:
                issues.append(ValidationIssue(
                    f"Condition node {node.id}: edge {edge.id} has invalid sourceHandle "
                    f"'{edge.source_handle}' (expected 'yes' or 'no')",
                    node_id=node.id,
                    edge_id=edge.id,
                ))

    return issues
