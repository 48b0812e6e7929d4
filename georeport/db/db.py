from sqlmodel import Session, SQLModel, create_engine

from georeport import config

connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(config.DATABASE_URL, echo=config.DB_ECHO, connect_args=connect_args)


def init_db(bind=None):
    # Import models so their tables are registered on the metadata
    from georeport.models import audit, category, estado, notification, profile, reporte, role  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


def get_session():
    with Session(engine) as session:
        yield session
