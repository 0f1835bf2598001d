from sqlalchemy import create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rbac_admin.core.config import settings

engine_kwargs: dict = {"pool_pre_ping": True}
connect_args: dict = {}

_url = make_url(settings.DATABASE_URL)

if _url.get_backend_name() == "sqlite":
    # the audit worker writes from its own thread
    connect_args["check_same_thread"] = False
    if _url.database in (None, "", ":memory:"):
        engine_kwargs["poolclass"] = StaticPool
elif _url.get_backend_name() in {"postgresql", "postgres"}:
    connect_args.setdefault("options", "-c client_encoding=UTF8")

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
