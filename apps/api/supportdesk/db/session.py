from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from supportdesk.core.config import settings

_url = make_url(settings.DATABASE_URL)
_backend = _url.get_backend_name()

connect_args = {}
engine_kwargs = {"pool_pre_ping": True}
if _backend.startswith("postgresql"):
    connect_args["options"] = "-c timezone=utc"
elif _backend == "sqlite":
    # Sessions cross the threadpool boundary in sync endpoints
    connect_args["check_same_thread"] = False
    if _url.database in (None, "", ":memory:"):
        engine_kwargs["poolclass"] = StaticPool

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
