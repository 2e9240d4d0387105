from __future__ import annotations

import json

import httpx
from sqlalchemy.orm import Session

from assignment_api.core.config import Settings
from assignment_api.services.assignment.notifier import find_emptied_teams, notify_if_all_assigned
from assignment_api.services.assignment.targets import GENERAL_TEAM_ID

NOTIFY_URL = "https://hooks.example.test/assignments-complete"


def _recording_client(status_code: int = 200) -> tuple[httpx.Client, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code, json={})

    return httpx.Client(transport=httpx.MockTransport(handler)), seen


def test_find_emptied_teams_keeps_teams_without_a_target() -> None:
    emptied = find_emptied_teams(
        teams_assigned_to={1: "Blue", 2: "Green", GENERAL_TEAM_ID: "General"},
        remaining_team_ids={2},
        notification_team_ids=set(),
    )
    assert emptied == [(1, "Blue"), (GENERAL_TEAM_ID, "General")]


def test_find_emptied_teams_honors_notification_filter() -> None:
    emptied = find_emptied_teams(
        teams_assigned_to={1: "Blue", 3: "Red"},
        remaining_team_ids=set(),
        notification_team_ids={3},
    )
    assert emptied == [(3, "Red")]


def test_unset_url_skips_everything(db_session: Session) -> None:
    client, seen = _recording_client()
    notified = notify_if_all_assigned(
        session=db_session,
        organization_id=0,
        teams_assigned_to={1: "Blue"},
        http_client=client,
        settings=Settings(ASSIGNMENT_COMPLETE_NOTIFICATION_URL=""),
    )
    assert notified == []
    assert seen == []


def test_posts_once_per_drained_team(seed, db_session: Session) -> None:
    org_id = seed.organization(features=seed.features(general_enabled=False))
    drained = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    busy = seed.campaign(organization_id=org_id, limit_assignment_to_teams=True)
    seed.contacts(campaign_id=busy, count=3)
    drained_team = seed.team(organization_id=org_id, title="Drained", campaigns=[drained])
    busy_team = seed.team(organization_id=org_id, title="Busy", campaigns=[busy])
    seed.commit()

    client, seen = _recording_client()
    notified = notify_if_all_assigned(
        session=db_session,
        organization_id=org_id,
        teams_assigned_to={drained_team: "Drained", busy_team: "Busy"},
        http_client=client,
        settings=Settings(ASSIGNMENT_COMPLETE_NOTIFICATION_URL=NOTIFY_URL),
    )

    assert notified == ["Drained"]
    assert [json.loads(r.content) for r in seen] == [{"team": "Drained"}]
    assert str(seen[0].url) == NOTIFY_URL


def test_failed_delivery_is_swallowed(seed, db_session: Session) -> None:
    org_id = seed.organization(features=seed.features())
    seed.commit()

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    notified = notify_if_all_assigned(
        session=db_session,
        organization_id=org_id,
        teams_assigned_to={GENERAL_TEAM_ID: "General", 99: "Gone"},
        http_client=client,
        settings=Settings(ASSIGNMENT_COMPLETE_NOTIFICATION_URL=NOTIFY_URL),
    )

    assert notified == []


def test_error_status_counts_as_failure(seed, db_session: Session) -> None:
    org_id = seed.organization(features=seed.features())
    seed.commit()

    client, seen = _recording_client(status_code=503)
    notified = notify_if_all_assigned(
        session=db_session,
        organization_id=org_id,
        teams_assigned_to={GENERAL_TEAM_ID: "General"},
        http_client=client,
        settings=Settings(ASSIGNMENT_COMPLETE_NOTIFICATION_URL=NOTIFY_URL),
    )

    assert len(seen) == 1
    assert notified == []
