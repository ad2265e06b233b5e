from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from urllib.parse import quote_plus
from lending.config import settings


def build_database_url() -> str:
    """Return the configured URL, or build the PostgreSQL one from its parts."""
    if settings.database_url:
        return settings.database_url

    db_user = quote_plus(settings.db_user)
    db_password = quote_plus(settings.db_password)
    return f"postgresql://{db_user}:{db_password}@{settings.db_host}:{settings.db_port}/{settings.db_name}"


DATABASE_URL = build_database_url()

if DATABASE_URL.startswith("sqlite"):
    # Single shared connection so an in-memory database survives across sessions
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
else:
    # SSL connection arguments
    connect_args = {}
    if settings.db_ssl_mode != "disable":
        connect_args["sslmode"] = settings.db_ssl_mode
        if settings.db_ssl_cert:
            connect_args["sslcert"] = settings.db_ssl_cert
        if settings.db_ssl_key:
            connect_args["sslkey"] = settings.db_ssl_key
        if settings.db_ssl_root_cert:
            connect_args["sslrootcert"] = settings.db_ssl_root_cert

    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=10,
        max_overflow=20,
        echo=False,
        connect_args=connect_args
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
