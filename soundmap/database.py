from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import logging

from .models import Base

logger = logging.getLogger(__name__)

def create_supabase_connection_string(database_url: str):
    """Create optimized connection string for Supabase"""
    if "supabase.co" in database_url:
        base_url = database_url.split("?")[0]

        optimized_url = f"{base_url}?sslmode=require&connect_timeout=30"
        logger.info("🔧 Using Supabase-optimized connection string")
        return optimized_url

    return database_url

def create_database_engine(database_url: str):
    """Create database engine, serverless-tuned for Postgres, shared for SQLite"""
    try:
        connection_string = create_supabase_connection_string(database_url)

        if connection_string.startswith("sqlite"):
            engine = create_engine(
                connection_string,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(
                connection_string,
                pool_size=0,
                max_overflow=0,
                pool_pre_ping=False,
                pool_recycle=-1,
                echo=False,
                connect_args={
                    "connect_timeout": 30,
                    "application_name": "soundmap-api",
                    "options": "-c statement_timeout=30s"
                }
            )

        logger.info("✅ Database engine created")
        return engine

    except Exception as e:
        logger.error(f"❌ Failed to create database engine: {e}")
        raise

def create_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

def create_tables(engine):
    Base.metadata.create_all(bind=engine)
