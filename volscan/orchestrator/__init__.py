"""Evaluation cycle orchestration"""

from volscan.orchestrator.cycle import CycleError, CycleReport, EvaluationCycle

__all__ = ["CycleError", "CycleReport", "EvaluationCycle"]
