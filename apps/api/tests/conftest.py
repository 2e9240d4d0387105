from __future__ import annotations

import json
import os
import uuid
from collections.abc import Iterable, Iterator
from contextlib import suppress
from datetime import datetime
from pathlib import Path

import pytest
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from alembic import command

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("ALLOW_DEV_LOGIN", "true")
os.environ.setdefault("COOKIE_SECURE", "false")
# Tests hammer the API from one client address.
os.environ.setdefault("RATE_LIMIT_REQUESTS_PER_MINUTE", "0")


def _make_admin_url(url: URL) -> URL:
    # "postgres" is present in the official image and works for admin tasks.
    return url.set(database="postgres")


def _make_test_db_name() -> str:
    return f"texting_assignment_test_{uuid.uuid4().hex}"


@pytest.fixture(scope="session")
def _test_database() -> Iterator[None]:
    # Default points at the dev DB, but we always create an isolated database for tests.
    if "DATABASE_URL" in os.environ:
        base_url = os.environ["DATABASE_URL"]
    else:
        # Load repo-root `.env` (via Settings) so local dev can move Postgres off :5432.
        from assignment_api.core.config import get_settings

        base_url = get_settings().DATABASE_URL
    url = make_url(base_url)

    if url.host not in {"localhost", "127.0.0.1", None}:
        raise RuntimeError(
            "Refusing to run tests against a non-local DATABASE_URL host. "
            "Set DATABASE_URL to a local/dev Postgres instance."
        )

    db_name = _make_test_db_name()
    admin_engine = create_engine(
        _make_admin_url(url), isolation_level="AUTOCOMMIT", pool_pre_ping=True
    )

    try:
        with admin_engine.connect() as conn:
            conn.execute(text(f'CREATE DATABASE "{db_name}"'))
    except OperationalError as e:
        admin_engine.dispose()
        pytest.skip(f"Postgres is not reachable for database tests: {e.orig}")

    previous_url = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = url.set(database=db_name).render_as_string(hide_password=False)

    # Clear cached settings/engines so imports inside the test session use the test DB.
    from assignment_api.core.config import get_settings
    from assignment_api.db.session import get_engine, get_sessionmaker

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()

    alembic_ini = Path(__file__).resolve().parents[1] / "alembic.ini"
    command.upgrade(Config(str(alembic_ini)), "head")

    yield

    # Ensure connection pools to the test DB are closed before dropping.
    with suppress(Exception):
        get_engine().dispose()
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()
    get_settings.cache_clear()
    if previous_url is None:
        os.environ.pop("DATABASE_URL", None)
    else:
        os.environ["DATABASE_URL"] = previous_url

    with admin_engine.connect() as conn:
        conn.execute(
            text(
                """
                SELECT pg_terminate_backend(pid)
                FROM pg_stat_activity
                WHERE datname = :db_name AND pid <> pg_backend_pid();
                """
            ),
            {"db_name": db_name},
        )
        conn.execute(text(f'DROP DATABASE IF EXISTS "{db_name}"'))

    admin_engine.dispose()


@pytest.fixture()
def db_session(_test_database: None) -> Iterator[Session]:
    from assignment_api.db.session import get_sessionmaker

    session = get_sessionmaker()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def settings_env(monkeypatch: pytest.MonkeyPatch):
    """Set env vars for one test and make get_settings() pick them up."""
    from assignment_api.core.config import get_settings

    def _apply(**values: str) -> None:
        for key, value in values.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()

    yield _apply
    get_settings.cache_clear()


class Seeder:
    """Inserts organizations, teams, campaigns and contacts for engine tests."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def features(
        request_type: str = "UNSENT", *, general_enabled: bool = True, max_count: int = 0
    ) -> dict:
        return {
            "textRequestType": request_type,
            "textRequestFormEnabled": general_enabled,
            "textRequestMaxCount": max_count,
        }

    def _insert(self, sql: str, params: dict) -> int:
        return int(self.session.execute(text(sql), params).scalar_one())

    def organization(self, *, features: dict | None = None, name: str | None = None) -> int:
        return self._insert(
            "INSERT INTO organizations (name, features) VALUES (:name, CAST(:features AS jsonb)) RETURNING id",
            {
                "name": name or f"Org {uuid.uuid4().hex[:8]}",
                "features": json.dumps(features or {}),
            },
        )

    def user(self, *, email: str | None = None, external_id: str | None = None) -> int:
        return self._insert(
            "INSERT INTO users (email, external_id) VALUES (:email, :external_id) RETURNING id",
            {"email": email or f"texter-{uuid.uuid4().hex[:10]}@example.com", "external_id": external_id},
        )

    def membership(self, *, organization_id: int, user_id: int, role: str = "texter") -> int:
        return self._insert(
            """
            INSERT INTO memberships (organization_id, user_id, role)
            VALUES (:organization_id, :user_id, CAST(:role AS organization_role))
            RETURNING id
            """,
            {"organization_id": organization_id, "user_id": user_id, "role": role},
        )

    def texter(self, *, organization_id: int, role: str = "texter", external_id: str | None = None) -> int:
        user_id = self.user(external_id=external_id)
        self.membership(organization_id=organization_id, user_id=user_id, role=role)
        return user_id

    def campaign(
        self,
        *,
        organization_id: int,
        title: str | None = None,
        is_started: bool = True,
        is_autoassign_enabled: bool = True,
        limit_assignment_to_teams: bool = False,
        use_dynamic_assignment: bool = False,
        due_by: datetime | None = None,
    ) -> int:
        return self._insert(
            """
            INSERT INTO campaigns (
              organization_id, title, is_started, is_autoassign_enabled,
              limit_assignment_to_teams, use_dynamic_assignment, due_by
            )
            VALUES (
              :organization_id, :title, :is_started, :is_autoassign_enabled,
              :limit_assignment_to_teams, :use_dynamic_assignment, :due_by
            )
            RETURNING id
            """,
            {
                "organization_id": organization_id,
                "title": title or f"Campaign {uuid.uuid4().hex[:6]}",
                "is_started": is_started,
                "is_autoassign_enabled": is_autoassign_enabled,
                "limit_assignment_to_teams": limit_assignment_to_teams,
                "use_dynamic_assignment": use_dynamic_assignment,
                "due_by": due_by,
            },
        )

    def contacts(
        self,
        *,
        campaign_id: int,
        count: int,
        message_status: str = "needsMessage",
        assignment_id: int | None = None,
    ) -> list[int]:
        rows = self.session.execute(
            text(
                """
                INSERT INTO campaign_contacts (campaign_id, cell, message_status, assignment_id)
                SELECT :campaign_id, '+1555' || lpad(g::text, 7, '0'), :message_status,
                       CAST(:assignment_id AS integer)
                FROM generate_series(1, :count) AS g
                RETURNING id
                """
            ),
            {
                "campaign_id": campaign_id,
                "count": count,
                "message_status": message_status,
                "assignment_id": assignment_id,
            },
        ).fetchall()
        return [int(r[0]) for r in rows]

    def tag(self, *, organization_id: int, title: str | None = None, is_assignable: bool = False) -> int:
        return self._insert(
            """
            INSERT INTO tags (organization_id, title, is_assignable)
            VALUES (:organization_id, :title, :is_assignable)
            RETURNING id
            """,
            {
                "organization_id": organization_id,
                "title": title or f"Tag {uuid.uuid4().hex[:6]}",
                "is_assignable": is_assignable,
            },
        )

    def tag_contact(self, *, contact_id: int, tag_ids: Iterable[int]) -> None:
        for tag_id in tag_ids:
            self.session.execute(
                text(
                    "INSERT INTO campaign_contact_tags (campaign_contact_id, tag_id) VALUES (:c, :t)"
                ),
                {"c": contact_id, "t": tag_id},
            )

    def team(
        self,
        *,
        organization_id: int,
        title: str | None = None,
        priority: int = 500,
        assignment_type: str = "UNSENT",
        enabled: bool = True,
        max_request_count: int | None = None,
        members: Iterable[int] = (),
        campaigns: Iterable[int] = (),
        escalation_tags: Iterable[int] = (),
    ) -> int:
        team_id = self._insert(
            """
            INSERT INTO teams (
              organization_id, title, assignment_priority, assignment_type,
              is_assignment_enabled, max_request_count
            )
            VALUES (
              :organization_id, :title, :priority, CAST(:assignment_type AS assignment_type),
              :enabled, :max_request_count
            )
            RETURNING id
            """,
            {
                "organization_id": organization_id,
                "title": title or f"Team {uuid.uuid4().hex[:6]}",
                "priority": priority,
                "assignment_type": assignment_type,
                "enabled": enabled,
                "max_request_count": max_request_count,
            },
        )
        for user_id in members:
            self.session.execute(
                text("INSERT INTO user_teams (user_id, team_id) VALUES (:u, :t)"),
                {"u": user_id, "t": team_id},
            )
        for campaign_id in campaigns:
            self.session.execute(
                text("INSERT INTO campaign_teams (campaign_id, team_id) VALUES (:c, :t)"),
                {"c": campaign_id, "t": team_id},
            )
        for tag_id in escalation_tags:
            self.session.execute(
                text("INSERT INTO team_escalation_tags (team_id, tag_id) VALUES (:t, :g)"),
                {"t": team_id, "g": tag_id},
            )
        return team_id

    def commit(self) -> None:
        self.session.commit()


@pytest.fixture()
def seed(db_session: Session) -> Seeder:
    return Seeder(db_session)


@pytest.fixture()
def assigned_counts(db_session: Session):
    def _counts(*campaign_ids: int) -> dict[int, int]:
        rows = db_session.execute(
            text(
                """
                SELECT campaign_id, count(*) AS n
                FROM campaign_contacts
                WHERE campaign_id = ANY(:ids) AND assignment_id IS NOT NULL
                GROUP BY campaign_id
                """
            ),
            {"ids": list(campaign_ids)},
        ).mappings()
        counts = {cid: 0 for cid in campaign_ids}
        counts.update({int(r["campaign_id"]): int(r["n"]) for r in rows})
        return counts

    return _counts
