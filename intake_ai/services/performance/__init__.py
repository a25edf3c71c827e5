from intake_ai.services.performance.performance_tracker import (
    PerformanceTracker,
    RunContext,
    determine_outcome,
)

__all__ = ["PerformanceTracker", "RunContext", "determine_outcome"]
