from tablero.db import operations
from tablero.db.models import AuthUser, Member, Task, TaskAssignee
from tablero.db.seed import seed_demo_data


def test_initialize_and_inspect(tmp_path):
    db_file = tmp_path / "ops.db"
    uri = operations.initialize(str(db_file))
    assert uri == f"sqlite:///{db_file}"

    assert operations.check_status(str(db_file))

    tables = operations.show_tables(str(db_file))
    assert {"members", "projects", "tasks", "task_assignees", "auth_user", "auth_session"} <= set(tables)
    task_columns = {column["name"] for column in tables["tasks"]}
    assert {"id", "title", "status", "project_id", "deadline", "created_at"} <= task_columns

    counts = operations.row_counts(str(db_file))
    assert counts["tasks"] == 0


def test_seed_demo_data(db_session):
    db_session.add(AuthUser(email="ana@municipio.gob", password_hash="x", password_salt="y"))
    db_session.flush()

    counts = seed_demo_data(
        db_session,
        members=3,
        projects=2,
        tasks_per_project=4,
        seed=1,
        extra_member_emails=["ana@municipio.gob"],
    )

    assert counts["members"] == 4
    assert counts["tasks"] == 8
    assert db_session.query(Task).count() == 8
    assert db_session.query(TaskAssignee).count() == counts["task_assignees"]
    assert db_session.query(Member).filter(Member.email == "ana@municipio.gob").count() == 1
