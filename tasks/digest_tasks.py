"""
tasks/digest_tasks.py
Email digests of new community guidance on the topics a user follows.

Beat runs send_digests once per frequency (see tasks/celery_app.py). Each run
picks the users on that frequency, collects situations created inside the
window whose tags overlap the user's topics, and sends one email per user.
A failed send or topic lookup is logged and counted; the rest of the batch
still goes out. Only a failure before the first send retries the task.
"""

import html
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from celery import Task
from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from shared.models.models import DigestFrequency, FollowedTopic, Situation, User
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

DIGEST_WINDOWS = {
    DigestFrequency.DAILY: timedelta(days=1),
    DigestFrequency.WEEKLY: timedelta(days=7),
    DigestFrequency.MONTHLY: timedelta(days=30),
}

EXCERPT_LENGTH = 240


# ── Base Task with DB session ──────────────────────────────────────────────────

def sync_database_url(url: str) -> str:
    """Map the async driver in DATABASE_URL to its blocking counterpart."""
    return url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


class DatabaseTask(Task):
    """Base class that provides a synchronous DB session for tasks."""
    abstract = True
    _sessionmaker = None

    def get_session(self):
        """Celery workers run sync, so tasks get a plain SQLAlchemy session."""
        if DatabaseTask._sessionmaker is None:
            engine = create_engine(sync_database_url(settings.DATABASE_URL), pool_pre_ping=True)
            DatabaseTask._sessionmaker = sessionmaker(bind=engine)
        return DatabaseTask._sessionmaker()


# ── Selection & Rendering ──────────────────────────────────────────────────────

def digest_window(frequency: str, now: Optional[datetime] = None) -> datetime:
    """Start of the lookback window for a digest frequency."""
    now = now or datetime.now(timezone.utc)
    return now - DIGEST_WINDOWS[DigestFrequency(frequency)]


def select_digest_items(
    situations: Iterable[Situation],
    topics: Iterable[str],
    limit: int,
) -> list[Situation]:
    """
    Situations whose tags intersect the followed topics, in the order given
    (callers pass newest first), capped at limit.
    """
    wanted = {t.lower() for t in topics}
    if not wanted:
        return []
    picked = []
    for situation in situations:
        if wanted.intersection(tag.lower() for tag in situation.tags or []):
            picked.append(situation)
            if len(picked) >= limit:
                break
    return picked


def _excerpt(text: str, length: int = EXCERPT_LENGTH) -> str:
    if len(text) <= length:
        return text
    return text[:length].rsplit(" ", 1)[0] + "…"


def render_digest_html(name: Optional[str], frequency: str, items: list[Situation]) -> str:
    """Plain inline-styled HTML. All user-derived text is escaped."""
    greeting = html.escape(name) if name else "friend"
    blocks = []
    for s in items:
        link = f"{settings.FRONTEND_URL}/situation/{s.id}"
        tags = ", ".join(html.escape(t) for t in s.tags or [])
        blocks.append(
            "<div style=\"margin-bottom:24px\">"
            f"<h3 style=\"margin:0 0 4px\"><a href=\"{html.escape(link)}\">{html.escape(_excerpt(s.situation, 120))}</a></h3>"
            f"<p style=\"margin:0 0 4px\">{html.escape(_excerpt(s.response))}</p>"
            f"<small>{tags}</small>"
            "</div>"
        )
    manage = html.escape(f"{settings.FRONTEND_URL}/settings")
    return (
        f"<p>Hi {greeting},</p>"
        f"<p>Here is your {html.escape(frequency)} guidance on the topics you follow.</p>"
        + "".join(blocks)
        + f"<p><a href=\"{manage}\">Manage your email preferences</a></p>"
    )


def _send_email(to_email: str, subject: str, html_body: str) -> bool:
    """Send transactional email via Resend. Returns True on success."""
    import resend

    resend.api_key = settings.RESEND_API_KEY
    try:
        resend.Emails.send({
            "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
            "to": to_email,
            "subject": subject,
            "html": html_body,
        })
        return True
    except Exception as e:
        logger.warning("Email send to %s failed: %s", to_email, e)
        return False


# ── Task ───────────────────────────────────────────────────────────────────────

@celery_app.task(bind=True, base=DatabaseTask, max_retries=3)
def send_digests(self, frequency: str) -> dict:
    """Send the digest for one frequency. Returns counts for the task result."""
    freq = DigestFrequency(frequency)
    since = digest_window(freq.value)
    sent = skipped = failed = 0

    db = self.get_session()
    try:
        # Nothing has been sent yet, so the whole run can be retried.
        try:
            recent = db.execute(
                select(Situation)
                .where(Situation.created_at >= since)
                .order_by(Situation.created_at.desc(), Situation.id.desc())
            ).scalars().all()

            users = db.execute(
                select(User).where(User.email_digest.is_(True), User.digest_frequency == freq)
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.exception("send_digests(%s) failed to load batch: %s", freq.value, e)
            raise self.retry(exc=e, countdown=300)

        # Past this point a retry would re-send, so per-user errors are counted.
        for user in users:
            try:
                topics = db.execute(
                    select(FollowedTopic.topic).where(FollowedTopic.user_id == user.id)
                ).scalars().all()
            except SQLAlchemyError as e:
                logger.warning("Digest topics lookup for user %s failed: %s", user.id, e)
                db.rollback()
                failed += 1
                continue

            items = select_digest_items(recent, topics, settings.DIGEST_MAX_ITEMS)
            if not items:
                skipped += 1
                continue

            ok = _send_email(
                user.email,
                f"Your {freq.value} guidance digest",
                render_digest_html(user.name, freq.value, items),
            )
            if ok:
                sent += 1
            else:
                failed += 1
    finally:
        db.close()

    logger.info(
        "Digest run frequency=%s sent=%d skipped=%d failed=%d",
        freq.value, sent, skipped, failed,
    )
    return {"sent": sent, "skipped": skipped, "failed": failed}
