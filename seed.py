"""Utility script to bootstrap the database with an admin UI user.

The BFF resolves the signed-in user's company through the phone number stored
on their account, so the seeded user needs ``SEED_USER_PHONE`` to match a
company ``unique_identifier`` known to the flow-manager service.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass

from dotenv import load_dotenv
from sqlalchemy import Engine, select, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, OperationalError

from app.models import User
from app.models.session import create_schema, get_engine, get_sessionmaker, session_scope
from app.security import hash_password, verify_password

logger = logging.getLogger("seed")

DEFAULT_PASSWORD = "ChangeMe123!"


@dataclass(slots=True)
class SeedConfig:
    """Configuration derived from the environment for the seed process."""

    db_url: str
    email: str
    password: str
    name: str | None
    phone_number: str | None


def _safe_url(db_url: str) -> str:
    """Return a version of ``db_url`` with any password redacted."""

    try:
        parsed = make_url(db_url)
    except ArgumentError:
        return db_url
    if parsed.password is None:
        return db_url
    return parsed.render_as_string(hide_password=True)


def _build_database_url() -> str:
    """Compute the database URL from ``DATABASE_URL`` or ``PG*`` variables."""

    direct = os.getenv("DATABASE_URL")
    if direct:
        return direct

    missing = [name for name in ("PGHOST", "PGDATABASE", "PGUSER") if not os.getenv(name)]
    if missing:
        raise RuntimeError(
            f"DATABASE_URL is not configured and {', '.join(missing)} are missing."
        )
    url = URL.create(
        "postgresql",
        username=os.getenv("PGUSER"),
        password=os.getenv("PGPASSWORD") or None,
        host=os.getenv("PGHOST"),
        port=int(os.getenv("PGPORT", "5432")),
        database=os.getenv("PGDATABASE"),
    )
    return url.render_as_string(hide_password=False)


def _load_config() -> SeedConfig:
    """Load seed configuration from environment variables."""

    name = (os.getenv("SEED_USER_NAME") or "").strip() or None
    phone = (os.getenv("SEED_USER_PHONE") or "").strip() or None
    return SeedConfig(
        db_url=_build_database_url(),
        email=os.getenv("SEED_USER_EMAIL", "admin@inbox.local").strip().lower(),
        password=os.getenv("SEED_USER_PASSWORD", DEFAULT_PASSWORD),
        name=name,
        phone_number=phone,
    )


def wait_for_database(engine: Engine, max_attempts: int = 10, delay: float = 3.0) -> None:
    """Attempt to establish a database connection, retrying if necessary."""

    safe_url = _safe_url(engine.url.render_as_string(hide_password=False))
    for attempt in range(1, max_attempts + 1):
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except OperationalError as exc:
            logger.info(
                "Database not ready (attempt %d/%d): %s; retrying in %.1fs",
                attempt,
                max_attempts,
                exc,
                delay,
            )
            if attempt >= max_attempts:
                raise RuntimeError("Database did not become ready in time") from exc
            time.sleep(delay)
            continue

        logger.info("Database connection established after %d attempt(s): %s", attempt, safe_url)
        return


def provision_user(engine: Engine, config: SeedConfig) -> User:
    """Create the seed user, or refresh the profile of an existing one."""

    factory = get_sessionmaker(engine)
    with session_scope(factory) as session:
        user = session.execute(select(User).where(User.email == config.email)).scalar_one_or_none()
        if user is None:
            user = User(
                email=config.email,
                name=config.name,
                password_hash=hash_password(config.password),
                phone_number=config.phone_number,
            )
            session.add(user)
            session.flush()
            logger.info("Created user %s", user.email)
        else:
            if config.phone_number and user.phone_number != config.phone_number:
                user.phone_number = config.phone_number
                logger.info("Updated phone number for %s", user.email)
            if config.name and user.name != config.name:
                user.name = config.name
            if not verify_password(config.password, user.password_hash):
                user.password_hash = hash_password(config.password)
                logger.info("Reset password for %s", user.email)
            else:
                logger.info("User %s already exists; reusing.", user.email)

    if config.password == DEFAULT_PASSWORD:
        logger.warning("Default seed password is in use; change it for production deployments.")
    if not user.phone_number:
        logger.warning(
            "User %s has no phone number; company-scoped routes will answer 400.", user.email
        )
    return user


def main() -> None:
    """Entrypoint for the seeding workflow."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    config = _load_config()
    logger.info("Starting seed process using %s", _safe_url(config.db_url))

    engine = get_engine(config.db_url)
    try:
        wait_for_database(engine)
        create_schema(engine)
        user = provision_user(engine, config)
    finally:
        engine.dispose()

    logger.info("Seed process completed. User: %s", user.email)


if __name__ == "__main__":
    main()
