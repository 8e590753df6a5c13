"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.config import Settings, get_settings
from challengehub.database import init_db
from challengehub.models import User
from challengehub.processor import (
    PaymentProcessor,
    build_processor,
    processor_config_from_settings,
)
from challengehub.services.errors import AuthenticationRequiredError
from challengehub.services.payment_store import PaymentStore


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


@lru_cache(maxsize=1)
def get_processor() -> PaymentProcessor:
    """Process-wide processor adapter built from settings."""
    return build_processor(processor_config_from_settings(get_settings()))


def _parse_flag(value: str | None) -> bool | None:
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes")


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    x_user_id: Annotated[str | None, Header()] = None,
    x_username: Annotated[str | None, Header()] = None,
    x_user_is_creator: Annotated[str | None, Header()] = None,
) -> User:
    """Resolve the caller from identity headers set by the upstream proxy."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequiredError("Authentication required")

    store = PaymentStore(db)
    async with store.transaction():
        user = await store.upsert_user(
            x_user_id.strip(),
            username=x_username,
            is_creator=_parse_flag(x_user_is_creator),
        )
    return user


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Processor = Annotated[PaymentProcessor, Depends(get_processor)]
CurrentUser = Annotated[User, Depends(get_current_user)]
