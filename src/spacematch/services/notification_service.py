"""Match notifications — new-match emails behind a fire-and-forget boundary.

``MatchNotificationService`` is the delivery sink: it checks the user's
notification preferences and sends the "new matches" email.
``NotificationDispatcher`` hands work to a sink as a background task so
the matching path is never blocked or failed by delivery.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spacematch.domain.enums import NotificationType
from spacematch.domain.models import NotificationPreference, User
from spacematch.domain.schemas import NewMatchSummary
from spacematch.services import email_service

logger = logging.getLogger(__name__)


class NewMatchNotifier(Protocol):
    async def notify_new_matches(self, user_id: str, matches: list[NewMatchSummary]) -> None:
        ...


def should_send_email(pref: Optional[NotificationPreference], kind: NotificationType) -> bool:
    """Whether an email of *kind* may be sent given the user's preferences.

    A user without a preferences row gets every notification.
    """
    if pref is None:
        return True
    if pref.unsubscribed_all:
        return False
    if kind == NotificationType.NEW_MATCH:
        return bool(pref.email_new_matches)
    if kind == NotificationType.NEW_MESSAGE:
        return bool(pref.email_new_messages)
    return True


def _display_name(user: User) -> str:
    """Profile name, else the email local part, else "User"."""
    if user.name:
        return user.name
    local_part = (user.email or "").split("@")[0]
    return local_part or "User"


class MatchNotificationService:
    """Sends the "new property matches" email for a tenant."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        # Own session: runs after the request that found the matches has ended
        self.session_factory = session_factory

    async def notify_new_matches(self, user_id: str, matches: list[NewMatchSummary]) -> None:
        if not matches:
            return

        try:
            async with self.session_factory() as db:
                pref = (
                    await db.execute(
                        select(NotificationPreference).where(
                            NotificationPreference.user_id == user_id
                        )
                    )
                ).scalar_one_or_none()

                if not should_send_email(pref, NotificationType.NEW_MATCH):
                    logger.info("User %s has disabled match notifications", user_id)
                    return

                user = await db.get(User, user_id)

            if user is None or not user.email:
                logger.error("No email found for user %s", user_id)
                return

            top = matches[0]
            location = f"{top.property_city or ''}, {top.property_state or ''}".strip(", ")
            await email_service.send_new_match_email(
                user.email,
                _display_name(user),
                len(matches),
                top.property_title or "Property",
                int(round(top.score)),
                location,
            )
        except Exception:
            logger.exception("Failed to send new matches notification to user %s", user_id)


class NotificationDispatcher:
    """Fire-and-forget delivery of new-match notifications.

    ``dispatch`` schedules the sink call as a task and returns immediately.
    Task failures are logged from a done-callback and never reach the caller.
    """

    def __init__(self, sink: NewMatchNotifier):
        self.sink = sink
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, user_id: str, matches: list[NewMatchSummary]) -> None:
        task = asyncio.create_task(
            self.sink.notify_new_matches(user_id, list(matches)),
            name=f"notify-new-matches-{user_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Notification task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Notification task %s failed: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every outstanding notification task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher backed by the application session factory."""
    from spacematch.infra.database import async_session

    return NotificationDispatcher(MatchNotificationService(async_session))
