"""Demo data for local development (``tablero db seed``)."""

from __future__ import annotations

import random
from datetime import timedelta

from faker import Faker
from sqlalchemy.orm import Session

from tablero.db.models import Member, Project, Task, TaskAssignee, TaskStatus, utcnow
from tablero.logging import get_logger

logger = get_logger(__file__)

_STATUSES = (
    TaskStatus.NOT_STARTED,
    TaskStatus.PENDING,
    TaskStatus.IN_PROGRESS,
    TaskStatus.DONE,
)
_AREAS = ("Prensa", "Redes", "Diseño", "Audiovisual", "Eventos")
_PRIORITIES = ("Alta", "Media", "Baja")


def seed_demo_data(
    db: Session,
    *,
    members: int = 6,
    projects: int = 4,
    tasks_per_project: int = 5,
    seed: int | None = None,
    extra_member_emails: list[str] | None = None,
) -> dict[str, int]:
    """Insert a small, plausible dashboard dataset and return row counts.

    ``extra_member_emails`` adds members whose email matches existing login
    accounts so that "my tasks" has something to find.
    """

    fake = Faker("es_ES")
    rng = random.Random(seed)
    if seed is not None:
        fake.seed_instance(seed)

    people = [Member(full_name=fake.name(), email=fake.unique.email()) for _ in range(members)]
    for email in extra_member_emails or []:
        people.append(Member(full_name=fake.name(), email=email))
    db.add_all(people)

    now = utcnow()
    created: list[Task] = []
    assignee_rows = 0
    for p in range(projects):
        project = Project(
            title=fake.catch_phrase(),
            status=rng.choice(("Activo", "En pausa", "Terminado")),
            notes=fake.sentence(),
            created_at=now - timedelta(days=30 * (projects - p)),
        )
        db.add(project)
        for t in range(tasks_per_project):
            task = Task(
                title=fake.sentence(nb_words=5).rstrip("."),
                status=rng.choice(_STATUSES),
                project=project,
                area=rng.choice(_AREAS),
                priority=rng.choice(_PRIORITIES),
                deadline=(now + timedelta(days=rng.randint(1, 60))).date(),
                created_at=now - timedelta(days=30 * (projects - p), hours=t),
            )
            for member in rng.sample(people, k=rng.randint(0, 2)):
                task.assignees.append(TaskAssignee(member=member, assignee_name=member.full_name))
                assignee_rows += 1
            if rng.random() < 0.2:
                # Name-only assignment: someone outside the members table.
                task.assignees.append(TaskAssignee(assignee_name=fake.first_name()))
                assignee_rows += 1
            db.add(task)
            created.append(task)

    db.flush()
    counts = {
        "members": len(people),
        "projects": projects,
        "tasks": len(created),
        "task_assignees": assignee_rows,
    }
    logger.info("seeded demo data: %s", counts)
    return counts
