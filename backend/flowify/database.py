import enum
import logging
from typing import Iterator

from sqlalchemy import create_engine, Column, Integer, String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import sessionmaker, declarative_base, relationship, Session
from sqlalchemy.pool import StaticPool


logger = logging.getLogger(__name__)

Base = declarative_base()


class AssetStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(Text, nullable=False) # Stored as supplied, not hashed
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    assets = relationship("CreativeAsset", back_populates="owner")


class CreativeAsset(Base):
    __tablename__ = "creative_assets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    original_filename = Column(String(255), nullable=False)
    uploaded_path = Column(String(512), unique=True, nullable=False)
    modified_path = Column(String(512))
    prompt = Column(Text)
    status = Column(String(20), nullable=False, default=AssetStatus.UPLOADED.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="assets")


class Database:
    """
    Owns the engine and session factory for one application instance.
    Created at startup and disposed at shutdown.
    """

    def __init__(self, database_url: str):
        engine_kwargs = {"pool_pre_ping": True}
        # For SQLite, need check_same_thread; in-memory databases must share one connection
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool

        self.url = database_url
        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self):
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables checked/created.")

    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self):
        self.engine.dispose()


if __name__ == "__main__":
    from .config import get_settings

    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    print("Attempting to create database tables (if they don't exist)...")
    database = Database(settings.database_url)
    try:
        database.create_tables()
        print("Successfully connected and checked/created tables.")
        print(f"Connected to: {settings.database_url.split('@')[-1]}")
    except Exception as e:
        print(f"Error connecting to database or creating tables: {e}")
        print(f"Please ensure your PostgreSQL server is running and accessible at: {settings.database_url}")
    finally:
        database.dispose()
