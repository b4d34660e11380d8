"""
Cross-source joins.

Planning of key-resolution order between sources and execution of
identifier-filtered joins.
"""

from registerdata.joins.executor import (
    JoinExecutor,
    JoinResult,
    apply_filter_plan,
    build_key_lookup,
)
from registerdata.joins.filters import KeyFilter
from registerdata.joins.planner import FilterPlan, JoinSpec, PlanStep, build_filter_plan

__all__ = [
    "FilterPlan",
    "JoinExecutor",
    "JoinResult",
    "JoinSpec",
    "KeyFilter",
    "PlanStep",
    "apply_filter_plan",
    "build_filter_plan",
    "build_key_lookup",
]
