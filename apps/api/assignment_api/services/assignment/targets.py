from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.models.enums import AssignmentType
from assignment_api.services.assignment.config import TextRequestConfig

GENERAL_TEAM_ID = -1
GENERAL_TEAM_TITLE = "General"


@dataclass(frozen=True)
class AssignmentTarget:
    priority: float
    team_id: int
    team_title: str
    assignment_type: AssignmentType
    max_request_count: int | None
    campaign_id: int
    campaign_title: str
    enabled: bool
    escalation_tag_ids: frozenset[int] = frozenset()
    count_left: int | None = None


@dataclass(frozen=True)
class TeamCandidate:
    id: int
    title: str
    priority: int
    assignment_type: AssignmentType
    enabled: bool
    max_request_count: int | None
    escalation_tag_ids: frozenset[int] = frozenset()
    campaign_ids: frozenset[int] = frozenset()


@dataclass(frozen=True)
class CampaignCandidate:
    id: int
    title: str
    limit_assignment_to_teams: bool
    has_send_work: bool
    has_reply_work: bool


@dataclass(frozen=True)
class EscalatedWork:
    campaign_id: int
    applied_tag_ids: frozenset[int] = field(default_factory=frozenset)


def rank_targets(
    *,
    config: TextRequestConfig,
    teams: Iterable[TeamCandidate],
    campaigns: Mapping[int, CampaignCandidate],
    escalated: Sequence[EscalatedWork],
    general_priority: float = math.inf,
    only_enabled: bool = True,
) -> list[AssignmentTarget]:
    """Pair each team with the lowest-id campaign it may draw from, plus General.

    `campaigns` holds every assignable campaign of the organization keyed by id,
    whether or not it currently has work.
    """
    org_type = config.assignment_type
    if org_type is None:
        return []

    targets: list[AssignmentTarget] = []
    for team in teams:
        campaign_id = _team_campaign(team=team, campaigns=campaigns, escalated=escalated)
        if campaign_id is None:
            continue
        targets.append(
            AssignmentTarget(
                priority=team.priority,
                team_id=team.id,
                team_title=team.title,
                assignment_type=team.assignment_type,
                max_request_count=team.max_request_count,
                campaign_id=campaign_id,
                campaign_title=campaigns[campaign_id].title,
                enabled=team.enabled,
                escalation_tag_ids=(
                    team.escalation_tag_ids
                    if team.assignment_type == AssignmentType.UNREPLIED
                    else frozenset()
                ),
            )
        )

    general_ids = [
        c.id
        for c in campaigns.values()
        if not c.limit_assignment_to_teams and _has_work(c, org_type)
    ]
    if general_ids:
        campaign_id = min(general_ids)
        targets.append(
            AssignmentTarget(
                priority=general_priority,
                team_id=GENERAL_TEAM_ID,
                team_title=GENERAL_TEAM_TITLE,
                assignment_type=org_type,
                max_request_count=config.max_request_count,
                campaign_id=campaign_id,
                campaign_title=campaigns[campaign_id].title,
                enabled=config.general_enabled,
            )
        )

    if only_enabled:
        targets = [t for t in targets if t.enabled]
    targets.sort(key=lambda t: (t.priority, t.campaign_id))
    return targets


def _has_work(campaign: CampaignCandidate, assignment_type: AssignmentType) -> bool:
    if assignment_type == AssignmentType.UNSENT:
        return campaign.has_send_work
    return campaign.has_reply_work


def _team_campaign(
    *,
    team: TeamCandidate,
    campaigns: Mapping[int, CampaignCandidate],
    escalated: Sequence[EscalatedWork],
) -> int | None:
    linked = [
        cid
        for cid in team.campaign_ids
        if cid in campaigns and _has_work(campaigns[cid], team.assignment_type)
    ]
    if team.assignment_type == AssignmentType.UNREPLIED and team.escalation_tag_ids:
        for work in escalated:
            campaign = campaigns.get(work.campaign_id)
            if campaign is None or not work.applied_tag_ids <= team.escalation_tag_ids:
                continue
            if campaign.limit_assignment_to_teams and campaign.id not in team.campaign_ids:
                continue
            linked.append(campaign.id)
    return min(linked) if linked else None


def load_text_request_config(*, session: Session, organization_id: int) -> TextRequestConfig:
    features = session.execute(
        text("SELECT features FROM organizations WHERE id = :organization_id"),
        {"organization_id": organization_id},
    ).scalar_one_or_none()
    return TextRequestConfig.from_features(features)


def resolve_targets(
    *, session: Session, user_id: int, organization_id: int
) -> list[AssignmentTarget]:
    """Enabled targets for one texter, best first."""
    config = load_text_request_config(session=session, organization_id=organization_id)
    if config.assignment_type is None:
        return []

    teams = _load_teams(
        session=session,
        organization_id=organization_id,
        user_id=user_id,
    )
    return rank_targets(
        config=config,
        teams=teams,
        campaigns=_load_campaigns(session=session, organization_id=organization_id),
        escalated=_load_escalated_work(session=session, organization_id=organization_id),
    )


def resolve_organization_targets(
    *, session: Session, organization_id: int
) -> list[AssignmentTarget]:
    """Every team's current target regardless of membership, with remaining counts.

    General sorts first here so supervisors see it at the top.
    """
    config = load_text_request_config(session=session, organization_id=organization_id)
    if config.assignment_type is None:
        return []

    targets = rank_targets(
        config=config,
        teams=_load_teams(session=session, organization_id=organization_id, user_id=None),
        campaigns=_load_campaigns(session=session, organization_id=organization_id),
        escalated=_load_escalated_work(session=session, organization_id=organization_id),
        general_priority=0,
        only_enabled=False,
    )
    return [replace(t, count_left=_count_left(session=session, target=t)) for t in targets]


def texts_available(*, session: Session, user_id: int, organization_id: int) -> bool:
    return bool(resolve_targets(session=session, user_id=user_id, organization_id=organization_id))


def _load_teams(
    *, session: Session, organization_id: int, user_id: int | None
) -> list[TeamCandidate]:
    if user_id is None:
        rows = session.execute(
            text(
                """
                SELECT id, title, assignment_priority, assignment_type,
                       is_assignment_enabled, max_request_count
                FROM teams
                WHERE organization_id = :organization_id
                """
            ),
            {"organization_id": organization_id},
        ).mappings()
    else:
        rows = session.execute(
            text(
                """
                SELECT t.id, t.title, t.assignment_priority, t.assignment_type,
                       t.is_assignment_enabled, t.max_request_count
                FROM teams AS t
                JOIN user_teams AS ut ON ut.team_id = t.id
                WHERE t.organization_id = :organization_id
                  AND t.is_assignment_enabled = true
                  AND ut.user_id = :user_id
                """
            ),
            {"organization_id": organization_id, "user_id": user_id},
        ).mappings()
    team_rows = list(rows)
    if not team_rows:
        return []

    team_ids = [int(r["id"]) for r in team_rows]
    tags: dict[int, set[int]] = {tid: set() for tid in team_ids}
    for row in session.execute(
        text("SELECT team_id, tag_id FROM team_escalation_tags WHERE team_id = ANY(:team_ids)"),
        {"team_ids": team_ids},
    ).mappings():
        tags[int(row["team_id"])].add(int(row["tag_id"]))

    links: dict[int, set[int]] = {tid: set() for tid in team_ids}
    for row in session.execute(
        text("SELECT team_id, campaign_id FROM campaign_teams WHERE team_id = ANY(:team_ids)"),
        {"team_ids": team_ids},
    ).mappings():
        links[int(row["team_id"])].add(int(row["campaign_id"]))

    return [
        TeamCandidate(
            id=int(r["id"]),
            title=str(r["title"]),
            priority=int(r["assignment_priority"]),
            assignment_type=AssignmentType(str(r["assignment_type"])),
            enabled=bool(r["is_assignment_enabled"]),
            max_request_count=(
                int(r["max_request_count"]) if r["max_request_count"] is not None else None
            ),
            escalation_tag_ids=frozenset(tags[int(r["id"])]),
            campaign_ids=frozenset(links[int(r["id"])]),
        )
        for r in team_rows
    ]


def _load_campaigns(*, session: Session, organization_id: int) -> dict[int, CampaignCandidate]:
    rows = session.execute(
        text(
            """
            SELECT
              c.id,
              c.title,
              c.limit_assignment_to_teams,
              EXISTS (
                SELECT 1 FROM assignable_needs_message AS n WHERE n.campaign_id = c.id
              ) AS has_send_work,
              EXISTS (
                SELECT 1 FROM assignable_needs_reply AS r WHERE r.campaign_id = c.id
              ) AS has_reply_work
            FROM assignable_campaigns AS c
            WHERE c.organization_id = :organization_id
            """
        ),
        {"organization_id": organization_id},
    ).mappings()
    return {
        int(r["id"]): CampaignCandidate(
            id=int(r["id"]),
            title=str(r["title"]),
            limit_assignment_to_teams=bool(r["limit_assignment_to_teams"]),
            has_send_work=bool(r["has_send_work"]),
            has_reply_work=bool(r["has_reply_work"]),
        )
        for r in rows
    }


def _load_escalated_work(*, session: Session, organization_id: int) -> list[EscalatedWork]:
    rows = session.execute(
        text(
            """
            SELECT DISTINCT campaign_id, applied_escalation_tags
            FROM assignable_needs_reply_with_escalation_tags
            WHERE organization_id = :organization_id
            """
        ),
        {"organization_id": organization_id},
    ).mappings()
    return [
        EscalatedWork(
            campaign_id=int(r["campaign_id"]),
            applied_tag_ids=frozenset(int(t) for t in (r["applied_escalation_tags"] or [])),
        )
        for r in rows
    ]


def _count_left(*, session: Session, target: AssignmentTarget) -> int:
    if target.assignment_type == AssignmentType.UNSENT:
        sql = "SELECT count(*) FROM assignable_needs_message WHERE campaign_id = :campaign_id"
        params: dict = {"campaign_id": target.campaign_id}
    else:
        sql = """
            SELECT count(*) FROM (
              SELECT id FROM assignable_needs_reply WHERE campaign_id = :campaign_id
              UNION
              SELECT id
              FROM assignable_needs_reply_with_escalation_tags
              WHERE campaign_id = :campaign_id
                AND applied_escalation_tags <@ CAST(:tag_ids AS integer[])
            ) AS claimable
        """
        params = {"campaign_id": target.campaign_id, "tag_ids": sorted(target.escalation_tag_ids)}
    return int(session.execute(text(sql), params).scalar_one())
