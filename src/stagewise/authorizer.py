# src/stagewise/authorizer.py
"""Transition authorizer: which stages an actor can reach in one hop.

Pure function of the pipeline's transition policy, the current stage and the
actor's role. The validator calls it as the enforcement point; surfaces call
it to present choices.
"""

from __future__ import annotations

from dataclasses import dataclass

from stagewise.errors import ConfigurationError
from stagewise.pipeline import ELEVATED_TIER, ProjectType, Stage


@dataclass(frozen=True)
class Actor:
    """Who is asking. ``role`` selects the allow-list tier."""

    id: str
    role: str = "ordinary"

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            msg = "Actor id must not be empty"
            raise ValueError(msg)


def tier_for(project_type: ProjectType, actor: Actor) -> str:
    return project_type.policy.tier_for(actor.role)


def legal_targets(
    project_type: ProjectType,
    current_stage: str,
    actor: Actor,
    *,
    completed: bool = False,
) -> list[Stage]:
    """Stages reachable from *current_stage* by *actor*, in pipeline order.

    Terminal stages and completed projects have no outgoing edges for anyone.
    Self-loops are never legal.

    Raises:
        ConfigurationError: If *current_stage* is not a stage of the type.
    """
    stages = project_type.stages
    current = next((s for s in stages if s.name == current_stage), None)
    if current is None:
        msg = f"Stage '{current_stage}' does not exist for project type '{project_type.type}'"
        raise ConfigurationError(msg)
    if completed or current.is_final:
        return []

    tier = tier_for(project_type, actor)
    if tier == ELEVATED_TIER:
        return [s for s in stages if s.name != current_stage]
    allowed = set(project_type.policy.allowed_targets(tier, current_stage))
    return [s for s in stages if s.name in allowed and s.name != current_stage]


def is_legal(project_type: ProjectType, current_stage: str, target_stage: str, actor: Actor, *, completed: bool = False) -> bool:
    return any(s.name == target_stage for s in legal_targets(project_type, current_stage, actor, completed=completed))
