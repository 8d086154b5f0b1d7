"""
Analysis module - Insight derived from canonical race data.

This module contains:
- AnnotationEngine: position-change reasons, pit and settle markers
- Strategy scoring: per-car pace, pit and consistency metrics
- Lap-time rankings: per-lap ranking by lap time
"""

from lapchart.analysis.annotations import AnnotationConfig, AnnotationEngine, generate_annotations
from lapchart.analysis.rankings import compute_class_lap_time_rankings, compute_lap_time_rankings
from lapchart.analysis.strategy import StrategyConfig, StrategyMetrics, compute_strategy_metrics

__all__ = [
    "AnnotationConfig",
    "AnnotationEngine",
    "generate_annotations",
    "compute_lap_time_rankings",
    "compute_class_lap_time_rankings",
    "StrategyConfig",
    "StrategyMetrics",
    "compute_strategy_metrics",
]
