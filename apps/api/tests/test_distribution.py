from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.services.assignment.distribution import give_user_more_texts
from assignment_api.services.assignment.errors import NoEligibleWorkError
from assignment_api.services.assignment.targets import (
    GENERAL_TEAM_ID,
    resolve_organization_targets,
    resolve_targets,
)


def _pool_check_jobs(session: Session, org_id: int) -> list[dict]:
    rows = session.execute(
        text(
            """
            SELECT payload, run_at
            FROM bg_jobs
            WHERE type = 'assignment_pool_check' AND organization_id = :org_id
            ORDER BY id
            """
        ),
        {"org_id": org_id},
    ).mappings()
    return [dict(r) for r in rows]


def test_request_smaller_than_pool_is_fulfilled(seed, db_session: Session, assigned_counts) -> None:
    org_id = seed.organization(features=seed.features())
    campaign_id = seed.campaign(organization_id=org_id)
    seed.contacts(campaign_id=campaign_id, count=10)
    user_id = seed.texter(organization_id=org_id)
    seed.commit()

    result = give_user_more_texts(
        session=db_session, user_id=user_id, organization_id=org_id, count=5
    )
    db_session.commit()

    assert result.total_claimed == 5
    assert result.teams_assigned_to == {GENERAL_TEAM_ID: "General"}
    assert assigned_counts(campaign_id) == {campaign_id: 5}


def test_partial_fill_drains_pool_and_schedules_pool_check(
    seed, db_session: Session, assigned_counts
) -> None:
    org_id = seed.organization(features=seed.features())
    campaign_id = seed.campaign(organization_id=org_id)
    seed.contacts(campaign_id=campaign_id, count=3)
    user_id = seed.texter(organization_id=org_id)
    seed.commit()

    before = datetime.now(UTC)
    result = give_user_more_texts(
        session=db_session, user_id=user_id, organization_id=org_id, count=5
    )
    db_session.commit()

    assert result.total_claimed == 3
    assert assigned_counts(campaign_id) == {campaign_id: 3}

    jobs = _pool_check_jobs(db_session, org_id)
    assert len(jobs) == 1
    assert jobs[0]["payload"] == {"organization_id": org_id, "teams": [[-1, "General"]]}
    assert jobs[0]["run_at"] > before


def test_team_priority_decides_campaign_order(seed, db_session: Session, assigned_counts) -> None:
    org_id = seed.organization(features=seed.features(general_enabled=False))
    low = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    high = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    seed.contacts(campaign_id=low, count=4)
    seed.contacts(campaign_id=high, count=4)
    user_id = seed.texter(organization_id=org_id)
    seed.team(organization_id=org_id, priority=1, members=[user_id], campaigns=[high])
    seed.team(organization_id=org_id, priority=2, members=[user_id], campaigns=[low])
    seed.commit()

    result = give_user_more_texts(
        session=db_session, user_id=user_id, organization_id=org_id, count=6
    )
    db_session.commit()

    assert result.total_claimed == 6
    assert assigned_counts(high, low) == {high: 4, low: 2}
    assert len(result.teams_assigned_to) == 2


def test_preferred_team_is_drawn_first(seed, db_session: Session, assigned_counts) -> None:
    org_id = seed.organization(features=seed.features(general_enabled=False))
    first = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    second = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    seed.contacts(campaign_id=first, count=5)
    seed.contacts(campaign_id=second, count=5)
    user_id = seed.texter(organization_id=org_id)
    seed.team(organization_id=org_id, priority=1, members=[user_id], campaigns=[first])
    preferred = seed.team(organization_id=org_id, priority=9, members=[user_id], campaigns=[second])
    seed.commit()

    give_user_more_texts(
        session=db_session,
        user_id=user_id,
        organization_id=org_id,
        count=3,
        preferred_team_id=preferred,
    )
    db_session.commit()

    assert assigned_counts(first, second) == {first: 0, second: 3}


def test_team_cap_limits_one_session(seed, db_session: Session, assigned_counts) -> None:
    org_id = seed.organization(features=seed.features(general_enabled=False))
    campaign_id = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    seed.contacts(campaign_id=campaign_id, count=20)
    user_id = seed.texter(organization_id=org_id)
    seed.team(
        organization_id=org_id,
        max_request_count=5,
        members=[user_id],
        campaigns=[campaign_id],
    )
    seed.commit()

    result = give_user_more_texts(
        session=db_session, user_id=user_id, organization_id=org_id, count=100
    )
    db_session.commit()

    assert result.total_claimed == 5
    assert assigned_counts(campaign_id) == {campaign_id: 5}


def test_capped_team_spills_over_to_capped_general(
    seed, db_session: Session, assigned_counts
) -> None:
    org_id = seed.organization(features=seed.features(max_count=2))
    teamed = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    general = seed.campaign(organization_id=org_id)
    seed.contacts(campaign_id=teamed, count=20)
    seed.contacts(campaign_id=general, count=20)
    user_id = seed.texter(organization_id=org_id)
    team_id = seed.team(
        organization_id=org_id,
        priority=1,
        max_request_count=3,
        members=[user_id],
        campaigns=[teamed],
    )
    seed.commit()

    result = give_user_more_texts(
        session=db_session, user_id=user_id, organization_id=org_id, count=100
    )
    db_session.commit()

    assert result.total_claimed == 5
    assert assigned_counts(teamed, general) == {teamed: 3, general: 2}
    assert set(result.teams_assigned_to) == {team_id, GENERAL_TEAM_ID}


def test_no_work_raises(seed, db_session: Session) -> None:
    org_id = seed.organization(features=seed.features())
    seed.campaign(organization_id=org_id)
    user_id = seed.texter(organization_id=org_id)
    seed.commit()

    with pytest.raises(NoEligibleWorkError):
        give_user_more_texts(session=db_session, user_id=user_id, organization_id=org_id, count=5)
    db_session.rollback()

    assert _pool_check_jobs(db_session, org_id) == []


def test_disabled_org_has_no_targets(seed, db_session: Session) -> None:
    org_id = seed.organization(features=seed.features("DISABLED"))
    campaign_id = seed.campaign(organization_id=org_id)
    seed.contacts(campaign_id=campaign_id, count=5)
    user_id = seed.texter(organization_id=org_id)
    seed.commit()

    assert resolve_targets(session=db_session, user_id=user_id, organization_id=org_id) == []
    with pytest.raises(NoEligibleWorkError):
        give_user_more_texts(session=db_session, user_id=user_id, organization_id=org_id, count=1)


def test_unstarted_and_past_due_campaigns_are_not_assignable(seed, db_session: Session) -> None:
    org_id = seed.organization(features=seed.features())
    unstarted = seed.campaign(organization_id=org_id, is_started=False)
    past_due = seed.campaign(
        organization_id=org_id, due_by=datetime.now(UTC) - timedelta(hours=30)
    )
    grace = seed.campaign(organization_id=org_id, due_by=datetime.now(UTC) - timedelta(hours=2))
    for campaign_id in (unstarted, past_due, grace):
        seed.contacts(campaign_id=campaign_id, count=2)
    user_id = seed.texter(organization_id=org_id)
    seed.commit()

    targets = resolve_targets(session=db_session, user_id=user_id, organization_id=org_id)

    assert [t.campaign_id for t in targets] == [grace]


def test_escalated_contacts_need_a_covering_team(seed, db_session: Session, assigned_counts) -> None:
    org_id = seed.organization(features=seed.features("UNREPLIED", general_enabled=False))
    campaign_id = seed.campaign(organization_id=org_id)
    tag_a = seed.tag(organization_id=org_id, title="A")
    tag_b = seed.tag(organization_id=org_id, title="B")
    tag_c = seed.tag(organization_id=org_id, title="C")
    contact_ids = seed.contacts(campaign_id=campaign_id, count=2, message_status="needsResponse")
    for contact_id in contact_ids:
        seed.tag_contact(contact_id=contact_id, tag_ids=[tag_a, tag_b])

    narrow_user = seed.texter(organization_id=org_id)
    wide_user = seed.texter(organization_id=org_id)
    seed.team(
        organization_id=org_id,
        title="Narrow",
        assignment_type="UNREPLIED",
        members=[narrow_user],
        escalation_tags=[tag_a],
    )
    seed.team(
        organization_id=org_id,
        title="Wide",
        assignment_type="UNREPLIED",
        members=[wide_user],
        escalation_tags=[tag_a, tag_b, tag_c],
    )
    seed.commit()

    with pytest.raises(NoEligibleWorkError):
        give_user_more_texts(
            session=db_session, user_id=narrow_user, organization_id=org_id, count=5
        )
    db_session.rollback()

    result = give_user_more_texts(
        session=db_session, user_id=wide_user, organization_id=org_id, count=5
    )
    db_session.commit()

    assert result.total_claimed == 2
    assert assigned_counts(campaign_id) == {campaign_id: 2}


def test_organization_targets_report_remaining_counts(seed, db_session: Session) -> None:
    org_id = seed.organization(features=seed.features(general_enabled=False))
    general_campaign = seed.campaign(organization_id=org_id)
    team_campaign = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    seed.contacts(campaign_id=general_campaign, count=3)
    seed.contacts(campaign_id=team_campaign, count=7)
    team_id = seed.team(
        organization_id=org_id, priority=3, enabled=False, campaigns=[team_campaign]
    )
    seed.commit()

    targets = resolve_organization_targets(session=db_session, organization_id=org_id)

    assert [(t.team_id, t.enabled, t.count_left) for t in targets] == [
        (GENERAL_TEAM_ID, False, 3),
        (team_id, False, 7),
    ]
