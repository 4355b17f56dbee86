from prometheus_client import Counter

WORKFLOW_TRANSITIONS = Counter(
    "workflow_transitions_total",
    "Committed workflow transitions",
    ["variant", "action"],
)
WORKFLOW_CONFLICTS = Counter(
    "workflow_conflicts_total",
    "Transitions lost to a concurrent writer",
    ["variant"],
)
