"""
Account directory - candidate and employer signups.

Accounts are identity anchors only. Registering one creates the profile
row plus the role row and announces the signup on the event bus.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hiretrack.config import get_settings
from hiretrack.models import Candidate, Employer, Profile, UserType
from hiretrack.services.events import EventBus, ProfileCreated
from hiretrack.services.lifecycle import LifecycleError, run_bounded

logger = logging.getLogger(__name__)


class EmailAlreadyRegistered(LifecycleError):
    pass


class Directory:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        bus: EventBus,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.bus = bus
        self.timeout = timeout if timeout is not None else get_settings().transition_timeout_seconds

    async def register_candidate(
        self,
        email: str,
        display_name: Optional[str] = None,
        headline: Optional[str] = None,
    ) -> Tuple[Profile, Candidate]:
        return await self._register(
            "register_candidate", UserType.CANDIDATE, email, display_name, Candidate(headline=headline)
        )

    async def register_employer(
        self,
        email: str,
        company_name: str,
        display_name: Optional[str] = None,
    ) -> Tuple[Profile, Employer]:
        return await self._register(
            "register_employer", UserType.EMPLOYER, email, display_name, Employer(company_name=company_name)
        )

    async def _register(
        self, operation: str, user_type: UserType, email: str, display_name: Optional[str], account
    ):
        async with self.session_factory() as session:
            profile = await run_bounded(
                operation,
                self._insert_profile(session, user_type, email, display_name, account),
                self.timeout,
            )

        self.bus.publish(
            ProfileCreated(
                profile_id=profile.id,
                user_type=user_type.value,
                account_id=account.id,
                occurred_at=profile.created_at,
            )
        )
        logger.info(f"Registered {user_type.value} {account.id}")
        return profile, account

    async def _insert_profile(
        self,
        session: AsyncSession,
        user_type: UserType,
        email: str,
        display_name: Optional[str],
        account,
    ) -> Profile:
        try:
            async with session.begin():
                profile = Profile(user_type=user_type.value, email=email, display_name=display_name)
                session.add(profile)
                await session.flush()
                account.profile_id = profile.id
                session.add(account)
                await session.flush()
        except IntegrityError:
            raise EmailAlreadyRegistered(f"Email already registered: {email}")
        return profile
