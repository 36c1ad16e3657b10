from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from workorders import config  # импортируем настройки

Base = declarative_base()


def _engine_options(url: str) -> dict:
    # SQLite (локальный запуск, тесты): без пула, но из разных потоков
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "echo": config.DB_ECHO}
    return {
        "pool_pre_ping": True,
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "echo": config.DB_ECHO,
    }


# Создаём engine
engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

# Фабрика сессий
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Создаёт все таблицы. Модели импортируются заранее, чтобы попасть в metadata."""
    import workorders.models  # noqa: F401
    from sqlalchemy.orm import configure_mappers

    configure_mappers()
    Base.metadata.create_all(bind=bind or engine)


# Dependency для FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
