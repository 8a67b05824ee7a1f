from datetime import datetime, timedelta

import pytest

from tablero.db.models import Member, Project, Task, TaskAssignee, TaskStatus


@pytest.fixture
def board(db_session):
    """Two projects, three members and a handful of tasks."""

    base = datetime(2024, 5, 1, 12, 0, 0)
    ana = Member(full_name="Ana Pérez", email="ana@municipio.gob")
    bruno = Member(full_name="Bruno Díaz", email="bruno@municipio.gob")
    carla = Member(full_name="Carla Gómez", email=None)
    prensa = Project(title="Campaña de prensa", status="Activo", created_at=base)
    redes = Project(title="Redes sociales", status="Activo", created_at=base + timedelta(days=1))
    db_session.add_all([ana, bruno, carla, prensa, redes])
    db_session.flush()

    def task(title, status, project, minutes, *assignees):
        row = Task(title=title, status=status, project=project, created_at=base + timedelta(minutes=minutes))
        for offset, (member, name) in enumerate(assignees):
            row.assignees.append(
                TaskAssignee(member=member, assignee_name=name, created_at=base + timedelta(seconds=offset))
            )
        db_session.add(row)
        return row

    tasks = {
        "gacetilla": task("Gacetilla", TaskStatus.NOT_STARTED, prensa, 1, (ana, "Ana Pérez")),
        "conferencia": task("Conferencia", TaskStatus.PENDING, prensa, 2, (ana, "Ana Pérez"), (bruno, "Bruno Díaz")),
        "video": task("Video institucional", TaskStatus.IN_PROGRESS, redes, 3, (bruno, "Bruno Díaz")),
        "posteo": task("Posteo semanal", TaskStatus.DONE, redes, 4, (None, "Lucía")),
        "afiche": task("Afiche", TaskStatus.NOT_STARTED, None, 5),
    }
    db_session.commit()
    return {
        "members": {"ana": ana, "bruno": bruno, "carla": carla},
        "projects": {"prensa": prensa, "redes": redes},
        "tasks": tasks,
    }
