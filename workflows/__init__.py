"""Workflow subgraphs."""
from .study_plan import study_plan_graph, StudyPlanState, run_study_plan_agent

__all__ = [
    "study_plan_graph",
    "StudyPlanState",
    "run_study_plan_agent",
]
