"""Traffic-light status for a set of findings."""

from typing import Iterable

from biostate.engine.types import InteractionWarning, RatioWarning


STATUS_ORDER = {"green": 0, "yellow": 1, "red": 2}
SEVERITY_STATUS = {"critical": "red", "medium": "yellow", "low": "green"}


def calculate_status(interactions: Iterable[InteractionWarning]) -> str:
    """Red on any critical non-synergy, yellow on any medium, else green."""
    status = "green"
    for interaction in interactions:
        if interaction.is_synergy:
            continue
        if interaction.severity == "critical":
            return "red"
        if interaction.severity == "medium":
            status = "yellow"
    return status


def escalate_status(status: str, ratio_warnings: Iterable[RatioWarning]) -> str:
    """Ratio findings can raise the status but never lower it."""
    for warning in ratio_warnings:
        candidate = SEVERITY_STATUS.get(warning.severity, "green")
        if STATUS_ORDER[candidate] > STATUS_ORDER[status]:
            status = candidate
    return status
