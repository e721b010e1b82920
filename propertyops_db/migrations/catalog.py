"""
Schema changes for the property operations platform.

These replace the one-off "check then maybe alter" scripts that used to be run
by hand. The DDL targets PostgreSQL but sticks to forms SQLite also accepts
(CURRENT_TIMESTAMP defaults, TIMESTAMPTZ), so the development database can
be built from the same plan. Tables that other services create
through the ORM (users, units, cleaning_tasks, host_ai_tasks, projects, ...)
are declared here too so a fresh database can be brought up from this plan
alone; on an existing database those steps are simply skipped.
"""

from .plan import AtomicGroup, MigrationPlan
from .steps import AddColumn, CreateTable, SeedRow

# Default admin account created by the auth setup
ADMIN_USER_ID = 1

CORE_TABLES = [
    CreateTable(
        name="create_users",
        table="users",
        columns=[
            "id SERIAL PRIMARY KEY",
            "name TEXT NOT NULL",
            "username TEXT NOT NULL UNIQUE",
            "password TEXT NOT NULL",
            "email TEXT NOT NULL UNIQUE",
            "role TEXT NOT NULL DEFAULT 'va'",
            "phone TEXT",
            "active BOOLEAN NOT NULL DEFAULT TRUE",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
    CreateTable(
        name="create_units",
        table="units",
        columns=[
            "id SERIAL PRIMARY KEY",
            "name TEXT NOT NULL",
            "address TEXT NOT NULL",
            "lease_url TEXT",
            "wifi_info TEXT",
            "notes TEXT",
            "tags TEXT[]",
            "active BOOLEAN NOT NULL DEFAULT TRUE",
        ],
    ),
    CreateTable(
        name="create_properties",
        table="properties",
        columns=[
            "id SERIAL PRIMARY KEY",
            "name TEXT NOT NULL",
            "address TEXT NOT NULL",
            "bedrooms INTEGER DEFAULT 1",
            "bathrooms INTEGER DEFAULT 1",
            "description TEXT",
            "notes TEXT",
            "amenities TEXT[]",
            "ical_url TEXT",
            "active BOOLEAN NOT NULL DEFAULT TRUE",
            "created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP",
            "updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
    CreateTable(
        name="create_guesty_properties",
        table="guesty_properties",
        columns=[
            "id SERIAL PRIMARY KEY",
            "property_id TEXT NOT NULL UNIQUE",
            "name TEXT NOT NULL",
            "address TEXT NOT NULL",
            "bedrooms INTEGER",
            "bathrooms REAL",
            "amenities TEXT[]",
            "listing_url TEXT",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
            "updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
]

CALENDAR_COLUMNS = [
    AddColumn(name="add_units_ical_url", table="units", column="ical_url", type="TEXT",
              depends_on={"create_units"}),
    AddColumn(name="add_guesty_properties_ical_url", table="guesty_properties", column="ical_url", type="TEXT",
              depends_on={"create_guesty_properties"}),
]

CLEANING_TABLES = [
    CreateTable(
        name="create_cleaning_tasks",
        table="cleaning_tasks",
        columns=[
            "id SERIAL PRIMARY KEY",
            "unit_id INTEGER NOT NULL",
            "status TEXT NOT NULL DEFAULT 'scheduled'",
            "scheduled_for TIMESTAMP NOT NULL",
            "assigned_to INTEGER",
            "assigned_by INTEGER",
            "completed_at TIMESTAMP",
            "verified_at TIMESTAMP",
            "verified_by INTEGER",
            "cleaning_type TEXT NOT NULL DEFAULT 'turnover'",
            "estimated_duration INTEGER",
            "actual_duration INTEGER",
            "notes TEXT",
            "photos TEXT[]",
            "checklist_template_id INTEGER",
            "score INTEGER",
            "is_inspection BOOLEAN DEFAULT FALSE",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
    CreateTable(
        name="create_cleaning_flags",
        table="cleaning_flags",
        columns=[
            "id SERIAL PRIMARY KEY",
            "cleaning_task_id INTEGER NOT NULL",
            "reported_by INTEGER NOT NULL",
            "flag_type TEXT NOT NULL",
            "description TEXT NOT NULL",
            "status TEXT NOT NULL DEFAULT 'open'",
            "priority TEXT NOT NULL DEFAULT 'normal'",
            "photos TEXT[]",
            "escalated_to TEXT",
            "assigned_to INTEGER",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
            "resolved_at TIMESTAMP",
        ],
    ),
    CreateTable(
        name="create_cleaner_performance",
        table="cleaner_performance",
        columns=[
            "id SERIAL PRIMARY KEY",
            "cleaner_id INTEGER NOT NULL REFERENCES users(id)",
            "period_start TIMESTAMP NOT NULL",
            "period_end TIMESTAMP NOT NULL",
            "tasks_completed INTEGER NOT NULL DEFAULT 0",
            "avg_score INTEGER",
            "avg_duration INTEGER",
            "flags_received INTEGER DEFAULT 0",
            "on_time_percentage INTEGER",
            "photo_quality_score INTEGER",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
]

CLEANING_COLUMNS = [
    AddColumn(name="add_cleaning_tasks_priority", table="cleaning_tasks", column="priority", type="TEXT",
              default="'normal'", depends_on={"create_cleaning_tasks"}),
    AddColumn(name="add_cleaning_tasks_route_order", table="cleaning_tasks", column="route_order", type="INTEGER",
              depends_on={"create_cleaning_tasks"}),
    AddColumn(name="add_cleaning_tasks_check_in_date", table="cleaning_tasks", column="check_in_date",
              type="TIMESTAMP", depends_on={"create_cleaning_tasks"}),
    AddColumn(name="add_cleaning_tasks_check_out_date", table="cleaning_tasks", column="check_out_date",
              type="TIMESTAMP", depends_on={"create_cleaning_tasks"}),
    AddColumn(name="add_cleaning_tasks_has_flagged_issues", table="cleaning_tasks", column="has_flagged_issues",
              type="BOOLEAN", default="FALSE", depends_on={"create_cleaning_tasks"}),
    AddColumn(name="add_cleaning_flags_resolved_by", table="cleaning_flags", column="resolved_by", type="INTEGER",
              depends_on={"create_cleaning_flags"}),
    AddColumn(name="add_cleaning_flags_resolution", table="cleaning_flags", column="resolution", type="TEXT",
              depends_on={"create_cleaning_flags"}),
    AddColumn(name="add_cleaner_performance_notes", table="cleaner_performance", column="notes", type="TEXT",
              depends_on={"create_cleaner_performance"}),
    # Only older tables lack created_at; SQLite refuses CURRENT_TIMESTAMP defaults on ADD COLUMN
    AddColumn(name="add_cleaner_performance_created_at", table="cleaner_performance", column="created_at",
              type="TIMESTAMP", default="CURRENT_TIMESTAMP", depends_on={"create_cleaner_performance"}),
    AddColumn(name="add_cleaner_performance_checklists_completed", table="cleaner_performance",
              column="checklists_completed", type="INTEGER", default="0",
              depends_on={"create_cleaner_performance"}),
    AddColumn(name="add_cleaner_performance_trend_data", table="cleaner_performance", column="trend_data",
              type="JSONB", depends_on={"create_cleaner_performance"}),
    AddColumn(name="add_cleaner_performance_comparative_score", table="cleaner_performance",
              column="comparative_score", type="INTEGER", depends_on={"create_cleaner_performance"}),
    AddColumn(name="add_cleaner_performance_workload_distribution", table="cleaner_performance",
              column="workload_distribution", type="JSONB", depends_on={"create_cleaner_performance"}),
]

HOST_AI_TABLES = [
    CreateTable(
        name="create_host_ai_tasks",
        table="host_ai_tasks",
        columns=[
            "id SERIAL PRIMARY KEY",
            "host_ai_action TEXT",
            "description TEXT NOT NULL",
            "host_ai_assignee_first_name TEXT",
            "host_ai_assignee_last_name TEXT",
            "source_type TEXT",
            "source_link TEXT",
            "attachments_json JSONB",
            "guest_name TEXT",
            "guest_email TEXT",
            "guest_phone TEXT",
            "listing_name TEXT",
            "listing_id TEXT",
            "status TEXT NOT NULL DEFAULT 'new'",
            "assigned_to_user_id INTEGER",
            "host_ai_created_at TIMESTAMP",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
            "updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
    # user_id is UNIQUE so the seed below has a conflict target
    CreateTable(
        name="create_host_ai_autopilot_settings",
        table="host_ai_autopilot_settings",
        columns=[
            "id SERIAL PRIMARY KEY",
            "user_id INTEGER NOT NULL UNIQUE REFERENCES users(id)",
            "enabled BOOLEAN NOT NULL DEFAULT FALSE",
            "confidence_threshold REAL NOT NULL DEFAULT 0.85",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
            "updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
    SeedRow(
        name="seed_admin_autopilot_settings",
        table="host_ai_autopilot_settings",
        values={"user_id": ADMIN_USER_ID, "enabled": False, "confidence_threshold": 0.85},
        key=["user_id"],
        depends_on={"create_host_ai_autopilot_settings"},
    ),
    CreateTable(
        name="create_host_ai_autopilot_log",
        table="host_ai_autopilot_log",
        columns=[
            "id SERIAL PRIMARY KEY",
            "task_id INTEGER NOT NULL REFERENCES host_ai_tasks(id)",
            "decision TEXT NOT NULL",
            "urgency TEXT",
            "team TEXT",
            "confidence REAL NOT NULL",
            "scheduled_for TIMESTAMP",
            "notes TEXT",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
]

PLANNER_TABLES = [
    CreateTable(
        name="create_projects",
        table="projects",
        columns=[
            "id SERIAL PRIMARY KEY",
            "title TEXT NOT NULL",
            "description TEXT",
            "unit_id INTEGER",
            "start_date TIMESTAMP",
            "due_date TIMESTAMP",
            "budget_estimate REAL",
            "actual_spend REAL DEFAULT 0",
            "category TEXT",
            "status TEXT NOT NULL DEFAULT 'planning'",
            "notes TEXT",
            "created_by INTEGER",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
            "updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ],
    ),
    CreateTable(
        name="create_project_tasks",
        table="project_tasks",
        columns=[
            "id SERIAL PRIMARY KEY",
            "project_id INTEGER REFERENCES projects(id) ON DELETE SET NULL",
            "unit_id INTEGER REFERENCES units(id) ON DELETE SET NULL",
            "task_type TEXT NOT NULL",
            "description TEXT NOT NULL",
            "assigned_to INTEGER REFERENCES users(id) ON DELETE SET NULL",
            "due_date TIMESTAMP",
            "status TEXT NOT NULL DEFAULT 'open'",
            "priority TEXT DEFAULT 'normal'",
            "notes TEXT",
            "images TEXT[]",
            "created_by INTEGER NOT NULL",
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
            "completed_at TIMESTAMP",
        ],
    ),
    CreateTable(
        name="create_ai_planner_interactions",
        table="ai_planner_interactions",
        columns=[
            "id SERIAL PRIMARY KEY",
            "user_id INTEGER NOT NULL REFERENCES users(id)",
            "prompt TEXT NOT NULL",
            "raw_ai_response JSONB",
            "generated_plan JSONB",
            "edited_plan JSONB",
            "final_plan JSONB",
            "status TEXT NOT NULL DEFAULT 'draft'",
            "converted_to_project_id INTEGER REFERENCES projects(id)",
            "converted_to_task_id INTEGER REFERENCES project_tasks(id)",
            "created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP",
            "updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP",
            "feedback TEXT",
            "context JSONB",
        ],
    ),
]

PLATFORM_GROUPS = [
    # The settings table is only useful with the admin's default row in it
    AtomicGroup(name="host_ai_autopilot_settings",
                steps=["create_host_ai_autopilot_settings", "seed_admin_autopilot_settings"]),
]


def platform_plan() -> MigrationPlan:
    """The full plan for the operations platform schema."""
    plan = MigrationPlan(
        steps=CORE_TABLES + CALENDAR_COLUMNS + CLEANING_TABLES + CLEANING_COLUMNS + HOST_AI_TABLES + PLANNER_TABLES,
        groups=PLATFORM_GROUPS,
    )
    plan.check()
    return plan
