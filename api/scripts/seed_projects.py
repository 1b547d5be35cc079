import os

from sqlmodel import SQLModel, Session

from angelmarket import models  # noqa: F401  registers the tables
from angelmarket.config import LOG_LEVEL
from angelmarket.db import engine, seed_categories
from angelmarket.logs import configure_logging
from angelmarket.seed import seed_projects

DEVELOPER_EMAIL = os.getenv("SEED_DEVELOPER_EMAIL")

configure_logging(LOG_LEVEL)
SQLModel.metadata.create_all(engine)

with Session(engine) as session:
    seed_categories(session)
    created = seed_projects(session, developer_email=DEVELOPER_EMAIL)
    print(f"Seeded {created} sample projects")
