from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from .config import settings
from .base import Base

def make_engine(dsn: str, lock_timeout_ms: int | None = None) -> AsyncEngine:
    if dsn.startswith("sqlite"):
        # busy timeout doubles as the bounded wait on the schedule lock
        wait_ms = settings.SCHEDULE_LOCK_TIMEOUT_MS if lock_timeout_ms is None else lock_timeout_ms
        timeout = max(wait_ms / 1000, 0.1)
        return create_async_engine(dsn, connect_args={"timeout": timeout})
    return create_async_engine(dsn, pool_pre_ping=True)

engine = make_engine(settings.DATABASE_DSN)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session():
    async with SessionLocal() as session:
        yield session

async def init_models(bind: AsyncEngine | None = None):
    ## In dev-only "create_all" mode, keep old behavior; otherwise, migrations own the schema.
    if settings.DB_MANAGE.lower() != "create_all":
        return
    # model modules must be imported so their tables are registered on Base.metadata
    from emr_scheduling.modules.directory import models as _directory  # noqa: F401
    from emr_scheduling.modules.availability import models as _availability  # noqa: F401
    from emr_scheduling.modules.appointments import models as _appointments  # noqa: F401
    from emr_scheduling.modules.visits import models as _visits  # noqa: F401
    from emr_scheduling.modules.events import outbox as _outbox  # noqa: F401
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
