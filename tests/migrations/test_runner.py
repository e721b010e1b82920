import pytest

from propertyops_db.migrations import (
    AddColumn,
    AtomicGroup,
    CreateTable,
    DependencyCycle,
    MigrationError,
    MigrationRunner,
    Outcome,
    SeedRow,
    build_plan,
    run_plan,
)

PROPERTIES = CreateTable(
    name="create_properties",
    table="properties",
    columns=["id INTEGER PRIMARY KEY", "name TEXT NOT NULL", "ical_url TEXT"],
)

AUTOPILOT_SETTINGS = CreateTable(
    name="create_host_ai_autopilot_settings",
    table="host_ai_autopilot_settings",
    columns=[
        "id INTEGER PRIMARY KEY",
        "user_id INTEGER NOT NULL UNIQUE REFERENCES users(id)",
        "enabled BOOLEAN DEFAULT 0",
        "confidence_threshold REAL DEFAULT 0.85",
    ],
)

SEED_ADMIN_SETTINGS = SeedRow(
    name="seed_admin_autopilot_settings",
    table="host_ai_autopilot_settings",
    values={"user_id": 1, "enabled": False, "confidence_threshold": 0.85},
    key=["user_id"],
    depends_on=frozenset({"create_host_ai_autopilot_settings"}),
)


def outcomes(report):
    return [(r.step_name, r.outcome) for r in report]


def test_fresh_database_creates_table(runner, table_names):
    report = runner.run(build_plan([PROPERTIES]))

    assert outcomes(report) == [("create_properties", Outcome.APPLIED)]
    assert "properties" in table_names()
    assert runner.snapshot().has_column("properties", "ical_url")


def test_second_run_skips_everything(runner):
    plan = build_plan([PROPERTIES, AddColumn(name="add_properties_notes", table="properties",
                                             column="notes", type="TEXT")])
    first = runner.run(plan)
    second = runner.run(plan)

    assert [r.outcome for r in first] == [Outcome.APPLIED, Outcome.APPLIED]
    assert [r.outcome for r in second] == [Outcome.SKIPPED, Outcome.SKIPPED]
    assert second.summary() == {"Applied": 0, "Skipped": 2, "Failed": 0}


def test_existing_table_gains_missing_column(runner, execute, fetch):
    execute(
        "CREATE TABLE properties (id INTEGER PRIMARY KEY, name TEXT NOT NULL)",
        "INSERT INTO properties (id, name) VALUES (1, 'Beach House')",
    )
    plan = build_plan([
        PROPERTIES,
        AddColumn(name="add_properties_ical_url", table="properties", column="ical_url", type="TEXT",
                  depends_on=frozenset({"create_properties"})),
    ])

    report = runner.run(plan)

    assert outcomes(report) == [
        ("create_properties", Outcome.SKIPPED),
        ("add_properties_ical_url", Outcome.APPLIED),
    ]
    assert fetch("SELECT id, name, ical_url FROM properties") == [(1, "Beach House", None)]


def test_seed_declared_before_its_table(runner, users_table, fetch):
    """Explicit dependencies override declaration order."""
    report = runner.run(build_plan([SEED_ADMIN_SETTINGS, AUTOPILOT_SETTINGS]))

    assert outcomes(report) == [
        ("create_host_ai_autopilot_settings", Outcome.APPLIED),
        ("seed_admin_autopilot_settings", Outcome.APPLIED),
    ]
    assert fetch("SELECT user_id, enabled, confidence_threshold FROM host_ai_autopilot_settings") == [(1, 0, 0.85)]

    again = runner.run(build_plan([SEED_ADMIN_SETTINGS, AUTOPILOT_SETTINGS]))
    assert [r.outcome for r in again] == [Outcome.SKIPPED, Outcome.SKIPPED]
    assert fetch("SELECT COUNT(*) FROM host_ai_autopilot_settings") == [(1,)]


def test_add_column_to_missing_table_fails(runner, table_names):
    report = runner.run(build_plan([
        AddColumn(name="add_units_ical_url", table="units", column="ical_url", type="TEXT"),
    ]))

    [result] = report.results
    assert result.outcome == Outcome.FAILED
    assert result.error_kind == "MissingPrerequisite"
    assert "units" in result.detail
    assert "units" not in table_names()


def test_failure_does_not_stop_independent_steps(runner, table_names):
    report = runner.run(build_plan([
        AddColumn(name="add_units_ical_url", table="units", column="ical_url", type="TEXT"),
        PROPERTIES,
    ]))

    assert outcomes(report) == [
        ("add_units_ical_url", Outcome.FAILED),
        ("create_properties", Outcome.APPLIED),
    ]
    assert report.failed_steps() == ["add_units_ical_url"]
    assert not report.succeeded
    assert "properties" in table_names()


def test_failed_dependency_cascades(runner, table_names):
    broken = CreateTable(name="create_cleaning_tasks", table="cleaning_tasks",
                         columns=["id INTEGER PRIMARY KEY", "status TEXT,,"])
    report = runner.run(build_plan([
        broken,
        AddColumn(name="add_cleaning_tasks_priority", table="cleaning_tasks", column="priority",
                  type="TEXT", depends_on=frozenset({"create_cleaning_tasks"})),
        CreateTable(name="create_cleaning_flags", table="cleaning_flags",
                    columns=["id INTEGER PRIMARY KEY", "task_id INTEGER REFERENCES cleaning_tasks(id)"]),
    ]))

    results = {r.step_name: r for r in report}
    assert results["create_cleaning_tasks"].error_kind == "ApplyFailure"
    assert results["add_cleaning_tasks_priority"].outcome == Outcome.FAILED
    assert results["add_cleaning_tasks_priority"].error_kind == "MissingPrerequisite"
    assert results["add_cleaning_tasks_priority"].detail == "dependency 'create_cleaning_tasks' failed"
    assert results["create_cleaning_flags"].detail == "dependency 'create_cleaning_tasks' failed"
    assert table_names() == set()


def test_cycle_aborts_before_touching_the_database(runner, table_names):
    plan = build_plan([
        CreateTable(name="create_a", table="a", columns=["id INTEGER"], depends_on=frozenset({"create_b"})),
        CreateTable(name="create_b", table="b", columns=["id INTEGER"], depends_on=frozenset({"create_a"})),
        CreateTable(name="create_c", table="c", columns=["id INTEGER"]),
    ])

    with pytest.raises(DependencyCycle) as exc_info:
        runner.run(plan)

    assert exc_info.value.steps == ["create_a", "create_b"]
    assert table_names() == set()


def test_group_rolls_back_as_a_whole(runner, users_table, table_names):
    bad_seed = SeedRow(
        name="seed_admin_autopilot_settings",
        table="host_ai_autopilot_settings",
        values={"user_id": 1, "enabled": False, "no_such_column": 1},
        key=["user_id"],
    )
    groups = [AtomicGroup(name="autopilot", steps=["create_host_ai_autopilot_settings",
                                                    "seed_admin_autopilot_settings"])]

    report = runner.run(build_plan([AUTOPILOT_SETTINGS, bad_seed], groups))

    results = {r.step_name: r for r in report}
    assert results["create_host_ai_autopilot_settings"].outcome == Outcome.FAILED
    assert results["create_host_ai_autopilot_settings"].detail == "rolled back with group autopilot"
    assert results["seed_admin_autopilot_settings"].outcome == Outcome.FAILED
    assert results["seed_admin_autopilot_settings"].error_kind == "ApplyFailure"
    assert "host_ai_autopilot_settings" not in table_names()

    fixed = runner.run(build_plan([AUTOPILOT_SETTINGS, SEED_ADMIN_SETTINGS], groups))
    assert [r.outcome for r in fixed] == [Outcome.APPLIED, Outcome.APPLIED]
    assert "host_ai_autopilot_settings" in table_names()


def test_group_members_after_the_failure_are_not_attempted(runner, table_names):
    plan = build_plan(
        [
            AddColumn(name="add_units_ical_url", table="units", column="ical_url", type="TEXT"),
            PROPERTIES,
        ],
        [AtomicGroup(name="calendar", steps=["add_units_ical_url", "create_properties"])],
    )

    report = runner.run(plan)

    assert outcomes(report) == [
        ("add_units_ical_url", Outcome.FAILED),
        ("create_properties", Outcome.FAILED),
    ]
    assert report.results[1].detail == "not attempted: group calendar rolled back"
    assert "properties" not in table_names()


def test_skipped_group_member_stays_skipped(runner, execute, table_names):
    execute("CREATE TABLE properties (id INTEGER PRIMARY KEY, name TEXT NOT NULL, ical_url TEXT)")
    plan = build_plan(
        [
            PROPERTIES,
            AddColumn(name="add_units_ical_url", table="units", column="ical_url", type="TEXT"),
        ],
        [AtomicGroup(name="calendar", steps=["create_properties", "add_units_ical_url"])],
    )

    report = runner.run(plan)

    assert outcomes(report) == [
        ("create_properties", Outcome.SKIPPED),
        ("add_units_ical_url", Outcome.FAILED),
    ]
    assert "properties" in table_names()


def test_report_is_closed_after_the_run(runner):
    report = runner.run(build_plan([PROPERTIES]))

    assert report.closed
    with pytest.raises(MigrationError):
        report.record("late_step", Outcome.APPLIED, "too late")
    assert len(report) == 1


def test_status_is_a_dry_run(runner, users_table, table_names):
    plan = build_plan([
        PROPERTIES,
        AddColumn(name="add_properties_notes", table="properties", column="notes", type="TEXT",
                  depends_on=frozenset({"create_properties"})),
        AUTOPILOT_SETTINGS,
        SEED_ADMIN_SETTINGS,
        AddColumn(name="add_units_ical_url", table="units", column="ical_url", type="TEXT"),
    ])

    before = {s.step_name: s.state for s in runner.status(plan)}
    assert before == {
        "create_properties": "pending",
        "add_properties_notes": "pending",
        "create_host_ai_autopilot_settings": "pending",
        "seed_admin_autopilot_settings": "pending",
        "add_units_ical_url": "blocked",
    }
    assert table_names() == {"users"}

    runner.run(plan)
    after = {s.step_name: s.state for s in runner.status(plan)}
    assert after["create_properties"] == "present"
    assert after["add_properties_notes"] == "present"
    assert after["seed_admin_autopilot_settings"] == "present"
    assert after["add_units_ical_url"] == "blocked"


def test_runner_owns_engine_built_from_url(database_url, table_names):
    report = run_plan(build_plan([PROPERTIES]), database_url=database_url)

    assert report.succeeded
    assert "properties" in table_names()


def test_runner_rejects_url_and_engine_together(engine, database_url):
    with pytest.raises(ValueError):
        MigrationRunner(database_url=database_url, engine=engine)
