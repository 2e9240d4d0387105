"""Initial schema (orgs, teams, campaigns, contacts, assignments, requests, jobs)

Revision ID: 20261019_1200
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op

revision = "20261019_1200"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS citext;")

    for type_name, values in (
        ("organization_role", "'texter','supervolunteer','admin','owner'"),
        ("assignment_type", "'UNSENT','UNREPLIED'"),
        ("assignment_request_status", "'pending','approved','rejected'"),
        ("job_status", "'queued','running','succeeded','failed','cancelled'"),
        ("job_type", "'assignment_created','assignment_pool_check'"),
    ):
        op.execute(
            f"""
DO $$ BEGIN
  CREATE TYPE {type_name} AS ENUM ({values});
EXCEPTION WHEN duplicate_object THEN NULL; END $$;
"""
        )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS organizations (
  id serial PRIMARY KEY,
  name text NOT NULL,
  features jsonb NOT NULL DEFAULT '{}'::jsonb,
  texting_hours_start int NOT NULL DEFAULT 9,
  texting_hours_end int NOT NULL DEFAULT 21,
  default_timezone text NOT NULL DEFAULT 'US/Eastern',
  created_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS users (
  id serial PRIMARY KEY,
  email citext NOT NULL,
  first_name text,
  last_name text,
  external_id text,
  is_disabled boolean NOT NULL DEFAULT false,
  created_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS users_email_uq ON users (email);")
    op.execute(
        """
CREATE UNIQUE INDEX IF NOT EXISTS users_external_id_uq
  ON users (external_id)
  WHERE external_id IS NOT NULL;
"""
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS memberships (
  id serial PRIMARY KEY,
  organization_id int NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
  user_id int NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  role organization_role NOT NULL,
  created_at timestamptz NOT NULL DEFAULT now(),
  UNIQUE (organization_id, user_id)
);
"""
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS auth_sessions (
  id serial PRIMARY KEY,
  user_id int NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  active_organization_id int NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
  token_hash bytea NOT NULL,
  created_at timestamptz NOT NULL DEFAULT now(),
  expires_at timestamptz NOT NULL,
  revoked_at timestamptz,
  revoked_reason text,
  UNIQUE (token_hash)
);
"""
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS audit_events (
  id serial PRIMARY KEY,
  organization_id int NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
  actor_user_id int REFERENCES users(id) ON DELETE SET NULL,
  event_type text NOT NULL,
  event_data jsonb NOT NULL DEFAULT '{}'::jsonb,
  created_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS audit_events_org_created_idx ON audit_events (organization_id, created_at DESC);"
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS tags (
  id serial PRIMARY KEY,
  organization_id int NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
  title text NOT NULL,
  is_assignable boolean NOT NULL DEFAULT true,
  is_system boolean NOT NULL DEFAULT false,
  created_at timestamptz NOT NULL DEFAULT now(),
  UNIQUE (organization_id, title)
);
"""
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS teams (
  id serial PRIMARY KEY,
  organization_id int NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
  title text NOT NULL,
  description text NOT NULL DEFAULT '',
  assignment_priority int NOT NULL DEFAULT 500,
  assignment_type assignment_type NOT NULL DEFAULT 'UNSENT',
  is_assignment_enabled boolean NOT NULL DEFAULT false,
  max_request_count int,
  created_at timestamptz NOT NULL DEFAULT now(),
  UNIQUE (organization_id, title)
);
"""
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS user_teams (
  user_id int NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  team_id int NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
  PRIMARY KEY (user_id, team_id)
);
"""
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS team_escalation_tags (
  team_id int NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
  tag_id int NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
  PRIMARY KEY (team_id, tag_id)
);
"""
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS campaigns (
  id serial PRIMARY KEY,
  organization_id int NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
  title text NOT NULL,
  is_started boolean NOT NULL DEFAULT false,
  is_archived boolean NOT NULL DEFAULT false,
  is_autoassign_enabled boolean NOT NULL DEFAULT false,
  use_dynamic_assignment boolean NOT NULL DEFAULT false,
  limit_assignment_to_teams boolean NOT NULL DEFAULT false,
  due_by timestamptz,
  created_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS campaigns_org_idx ON campaigns (organization_id, id);"
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS campaign_teams (
  campaign_id int NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
  team_id int NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
  PRIMARY KEY (campaign_id, team_id)
);
"""
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS campaign_teams_team_idx ON campaign_teams (team_id, campaign_id);"
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS assignments (
  id serial PRIMARY KEY,
  user_id int NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  campaign_id int NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
  max_contacts int,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now(),
  UNIQUE (user_id, campaign_id)
);
"""
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS campaign_contacts (
  id serial PRIMARY KEY,
  campaign_id int NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
  assignment_id int REFERENCES assignments(id) ON DELETE SET NULL,
  cell text NOT NULL,
  timezone text,
  message_status text NOT NULL DEFAULT 'needsMessage',
  is_opted_out boolean NOT NULL DEFAULT false,
  archived boolean NOT NULL DEFAULT false,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    # Partial index backing the pool views: unassigned, live contacts per campaign.
    op.execute(
        """
CREATE INDEX IF NOT EXISTS campaign_contacts_pool_idx
  ON campaign_contacts (campaign_id, message_status)
  WHERE assignment_id IS NULL AND archived = false AND is_opted_out = false;
"""
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS campaign_contacts_assignment_idx ON campaign_contacts (assignment_id);"
    )
    op.execute(
        """
CREATE TABLE IF NOT EXISTS campaign_contact_tags (
  campaign_contact_id int NOT NULL REFERENCES campaign_contacts(id) ON DELETE CASCADE,
  tag_id int NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
  tagger_id int REFERENCES users(id) ON DELETE SET NULL,
  created_at timestamptz NOT NULL DEFAULT now(),
  PRIMARY KEY (campaign_contact_id, tag_id)
);
"""
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS assignment_requests (
  id serial PRIMARY KEY,
  organization_id int NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
  user_id int NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  amount int NOT NULL CHECK (amount > 0),
  preferred_team_id int,
  status assignment_request_status NOT NULL DEFAULT 'pending',
  approved_by_user_id int REFERENCES users(id) ON DELETE SET NULL,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute(
        """
CREATE INDEX IF NOT EXISTS assignment_requests_pending_idx
  ON assignment_requests (user_id, organization_id)
  WHERE status = 'pending';
"""
    )

    op.execute(
        """
CREATE TABLE IF NOT EXISTS bg_jobs (
  id serial PRIMARY KEY,
  organization_id int REFERENCES organizations(id) ON DELETE CASCADE,
  type job_type NOT NULL,
  status job_status NOT NULL DEFAULT 'queued',
  run_at timestamptz NOT NULL DEFAULT now(),
  attempts int NOT NULL DEFAULT 0,
  max_attempts int NOT NULL DEFAULT 25,
  locked_at timestamptz,
  locked_by text,
  last_error text,
  dedupe_key text,
  payload jsonb NOT NULL DEFAULT '{}'::jsonb,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute("CREATE INDEX IF NOT EXISTS bg_jobs_runner_idx ON bg_jobs (status, run_at);")
    op.execute(
        """
CREATE UNIQUE INDEX IF NOT EXISTS bg_jobs_dedupe_uq
  ON bg_jobs (organization_id, type, dedupe_key)
  WHERE dedupe_key IS NOT NULL AND status IN ('queued','running');
"""
    )

    _create_pool_views()
    _create_updated_at_triggers()


def _create_pool_views() -> None:
    op.execute(
        """
CREATE OR REPLACE VIEW assignable_campaigns AS
  SELECT id, organization_id, title, limit_assignment_to_teams, due_by
  FROM campaigns
  WHERE is_started = true
    AND is_archived = false
    AND is_autoassign_enabled = true;
"""
    )
    # Past-due campaigns keep a 24 hour grace period for initial sends.
    op.execute(
        """
CREATE OR REPLACE VIEW assignable_needs_message AS
  SELECT cc.id, cc.campaign_id, c.organization_id
  FROM campaign_contacts AS cc
  JOIN assignable_campaigns AS c ON c.id = cc.campaign_id
  WHERE cc.assignment_id IS NULL
    AND cc.message_status = 'needsMessage'
    AND cc.is_opted_out = false
    AND cc.archived = false
    AND (c.due_by IS NULL OR c.due_by + interval '24 hours' > now());
"""
    )
    op.execute(
        """
CREATE OR REPLACE VIEW assignable_needs_reply AS
  SELECT cc.id, cc.campaign_id, c.organization_id
  FROM campaign_contacts AS cc
  JOIN assignable_campaigns AS c ON c.id = cc.campaign_id
  WHERE cc.assignment_id IS NULL
    AND cc.message_status = 'needsResponse'
    AND cc.is_opted_out = false
    AND cc.archived = false
    AND NOT EXISTS (
      SELECT 1
      FROM campaign_contact_tags AS cct
      JOIN tags AS t ON t.id = cct.tag_id
      WHERE cct.campaign_contact_id = cc.id
        AND t.is_assignable = false
    );
"""
    )
    op.execute(
        """
CREATE OR REPLACE VIEW assignable_needs_reply_with_escalation_tags AS
  SELECT
    cc.id,
    cc.campaign_id,
    c.organization_id,
    escalation.applied_escalation_tags
  FROM campaign_contacts AS cc
  JOIN assignable_campaigns AS c ON c.id = cc.campaign_id
  JOIN LATERAL (
    SELECT array_agg(cct.tag_id ORDER BY cct.tag_id) AS applied_escalation_tags
    FROM campaign_contact_tags AS cct
    JOIN tags AS t ON t.id = cct.tag_id
    WHERE cct.campaign_contact_id = cc.id
      AND t.is_assignable = false
  ) AS escalation ON escalation.applied_escalation_tags IS NOT NULL
  WHERE cc.assignment_id IS NULL
    AND cc.message_status = 'needsResponse'
    AND cc.is_opted_out = false
    AND cc.archived = false;
"""
    )
    op.execute(
        """
CREATE OR REPLACE VIEW assignable_campaigns_with_needs_message AS
  SELECT c.*
  FROM assignable_campaigns AS c
  WHERE EXISTS (SELECT 1 FROM assignable_needs_message AS n WHERE n.campaign_id = c.id);
"""
    )
    op.execute(
        """
CREATE OR REPLACE VIEW assignable_campaigns_with_needs_reply AS
  SELECT c.*
  FROM assignable_campaigns AS c
  WHERE EXISTS (SELECT 1 FROM assignable_needs_reply AS n WHERE n.campaign_id = c.id);
"""
    )


def _create_updated_at_triggers() -> None:
    # Keep updated_at consistent even for raw SQL updates (claims, worker code, etc.).
    op.execute(
        """
CREATE OR REPLACE FUNCTION set_updated_at() RETURNS trigger AS $$
BEGIN
  NEW.updated_at = now();
  RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""
    )
    for table in ("assignments", "assignment_requests", "bg_jobs"):
        op.execute(
            f"""
DO $$
BEGIN
  IF NOT EXISTS (
    SELECT 1 FROM pg_trigger WHERE tgname = 'set_updated_at_{table}'
  ) THEN
    CREATE TRIGGER set_updated_at_{table}
    BEFORE UPDATE ON {table}
    FOR EACH ROW
    EXECUTE FUNCTION set_updated_at();
  END IF;
END $$;
"""
        )


def downgrade() -> None:
    for view in (
        "assignable_campaigns_with_needs_reply",
        "assignable_campaigns_with_needs_message",
        "assignable_needs_reply_with_escalation_tags",
        "assignable_needs_reply",
        "assignable_needs_message",
        "assignable_campaigns",
    ):
        op.execute(f"DROP VIEW IF EXISTS {view};")

    for table in (
        "bg_jobs",
        "assignment_requests",
        "campaign_contact_tags",
        "campaign_contacts",
        "assignments",
        "campaign_teams",
        "campaigns",
        "team_escalation_tags",
        "user_teams",
        "teams",
        "tags",
        "audit_events",
        "auth_sessions",
        "memberships",
        "users",
        "organizations",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")

    for type_name in (
        "job_type",
        "job_status",
        "assignment_request_status",
        "assignment_type",
        "organization_role",
    ):
        op.execute(f"DROP TYPE IF EXISTS {type_name};")
