"""
Table definitions and the shared database handle.

Column length limits are exported so the stores can reject over-long input
before it reaches PostgreSQL, which enforces VARCHAR lengths (SQLite does not).
"""

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from databases import Database

from config import DATABASE_URL

ID_LENGTH = 32
EMAIL_MAX_LENGTH = 320
NAME_MAX_LENGTH = 255
CHAPTER_TIME_MAX_LENGTH = 16

# Create database instance - works with PostgreSQL or SQLite
# PostgreSQL is the default and recommended database
database = Database(DATABASE_URL)
metadata = sa.MetaData()


def new_id() -> str:
    """Generate an opaque record id."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


users = sa.Table(
    "users",
    metadata,
    sa.Column("id", sa.String(ID_LENGTH), primary_key=True),
    sa.Column("email", sa.String(EMAIL_MAX_LENGTH), unique=True, nullable=False),
    sa.Column("name", sa.String(NAME_MAX_LENGTH), nullable=False),
    sa.Column("password_hash", sa.String(255), nullable=False),  # argon2id, salt embedded
    sa.Column("logo", sa.Text, nullable=False, default=""),
    sa.Column("created_at", sa.DateTime(timezone=True), default=utcnow),
)

# Notification inbox, one row per message, appended by moderation actions
notifications = sa.Table(
    "notifications",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),  # also the append order
    sa.Column("user_id", sa.String(ID_LENGTH), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("message", sa.Text, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), default=utcnow),
    sa.Column("read", sa.Boolean, nullable=False, default=False),
    sa.Index("ix_notifications_user_id", "user_id"),
)

videos = sa.Table(
    "videos",
    metadata,
    sa.Column("id", sa.String(ID_LENGTH), primary_key=True),
    sa.Column("title", sa.String(255), nullable=False),
    sa.Column("media_url", sa.Text, nullable=False),
    sa.Column("banner_url", sa.Text, nullable=True),
    # Never updated after insert
    sa.Column("creator_id", sa.String(ID_LENGTH), nullable=False),
    # Snapshot of the creator at creation time, not kept in sync
    sa.Column("creator_name", sa.String(NAME_MAX_LENGTH), nullable=False, default=""),
    sa.Column("creator_logo", sa.Text, nullable=False, default=""),
    sa.Column("description", sa.Text, nullable=False, default=""),
    sa.Column(
        "category",
        sa.String(20),
        sa.CheckConstraint(
            "category IN ('music', 'gaming', 'comedy', 'movies', 'tech', 'travel', 'other')",
            name="ck_videos_category",
        ),
        nullable=False,
        default="other",
    ),
    # Settings
    sa.Column("is_muted", sa.Boolean, nullable=False, default=False),  # creator-set
    sa.Column("is_approved", sa.Boolean, nullable=False, default=True),  # admin-set
    sa.Column("admin_mute_override", sa.Boolean, nullable=False, default=False),  # admin-set
    sa.Column(
        "visibility",
        sa.String(10),
        sa.CheckConstraint(
            "visibility IN ('public', 'private', 'unlisted')",
            name="ck_videos_visibility",
        ),
        nullable=False,
        default="public",
    ),
    # Stats
    sa.Column("views", sa.Integer, nullable=False, default=0),
    sa.Column("created_at", sa.DateTime(timezone=True), default=utcnow),
    sa.Index("ix_videos_creator_id", "creator_id"),
    sa.Index("ix_videos_category", "category"),
    sa.Index("ix_videos_created_at", "created_at"),
    sa.Index("ix_videos_is_approved", "is_approved"),
)

# Chapter markers, ordered by position within a video
video_chapters = sa.Table(
    "video_chapters",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("video_id", sa.String(ID_LENGTH), sa.ForeignKey("videos.id", ondelete="CASCADE"), nullable=False),
    sa.Column("position", sa.Integer, nullable=False),
    sa.Column("time", sa.String(CHAPTER_TIME_MAX_LENGTH), nullable=False),
    sa.Column("label", sa.Text, nullable=False),
    sa.Index("ix_video_chapters_video_id", "video_id"),
)


def create_tables():
    """
    Create database tables directly using SQLAlchemy metadata.
    This creates all tables if they don't exist.
    """
    engine = sa.create_engine(DATABASE_URL)
    metadata.create_all(engine)
    engine.dispose()


if __name__ == "__main__":
    create_tables()
    print("Database tables created successfully!")
