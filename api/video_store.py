"""
Video store: creator-facing video records and the public listing.

Creators own their videos: only the creator may update or delete one. Admin
transitions live in api.moderation and share the row helpers defined here.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import sqlalchemy as sa

from api.chapters import ChapterMarker, parse_chapters
from api.common import ensure_utc
from api.database import ID_LENGTH, database, new_id, users, utcnow, video_chapters, videos
from api.db_retry import fetch_all_with_retry, fetch_one_with_retry, with_db_retry
from api.enums import Visibility, category_filter, normalize_category, parse_category, parse_visibility
from api.errors import ForbiddenError, NotFoundError, UnauthorizedError
from api.identity import get_user
from api.schemas import Chapter, VideoCreate, VideoResponse, VideoSettings, VideoStats
from api.uploads import UploadStorage
from config import MAX_DESCRIPTION_LENGTH, MAX_TITLE_LENGTH

logger = logging.getLogger(__name__)


# ============================================================================
# Row helpers
# ============================================================================


async def _load_chapters(video_ids: Iterable[str]) -> Dict[str, List[Chapter]]:
    """Fetch chapters for several videos in one query, keyed by video id."""
    ids = list(video_ids)
    result: Dict[str, List[Chapter]] = {video_id: [] for video_id in ids}
    if not ids:
        return result

    rows = await fetch_all_with_retry(
        video_chapters.select()
        .where(video_chapters.c.video_id.in_(ids))
        .order_by(video_chapters.c.video_id, video_chapters.c.position)
    )
    for row in rows:
        result[row["video_id"]].append(Chapter(time=row["time"], label=row["label"]))
    return result


def _to_response(row, chapters: List[Chapter]) -> VideoResponse:
    return VideoResponse(
        id=row["id"],
        title=row["title"],
        media_url=row["media_url"],
        banner_url=row["banner_url"],
        creator_id=row["creator_id"],
        creator_name=row["creator_name"],
        creator_logo=row["creator_logo"],
        description=row["description"],
        category=row["category"],
        chapters=chapters,
        settings=VideoSettings(
            is_muted=bool(row["is_muted"]),
            is_approved=bool(row["is_approved"]),
            admin_mute_override=bool(row["admin_mute_override"]),
            visibility=row["visibility"],
        ),
        stats=VideoStats(views=row["views"] or 0),
        created_at=ensure_utc(row["created_at"]),
    )


async def rows_to_responses(rows) -> List[VideoResponse]:
    chapters = await _load_chapters(row["id"] for row in rows)
    return [_to_response(row, chapters[row["id"]]) for row in rows]


async def get_row(video_id: str):
    """Fetch a video row or raise NotFoundError."""
    row = await fetch_one_with_retry(videos.select().where(videos.c.id == video_id))
    if row is None:
        raise NotFoundError("Video not found")
    return row


async def get(video_id: str) -> VideoResponse:
    row = await get_row(video_id)
    chapters = await _load_chapters([video_id])
    return _to_response(row, chapters[video_id])


def _chapter_rows(video_id: str, chapters: List[ChapterMarker]) -> List[dict]:
    return [
        {"video_id": video_id, "position": position, "time": chapter.time, "label": chapter.label}
        for position, chapter in enumerate(chapters)
    ]


@with_db_retry()
async def apply_changes(
    video_id: str,
    values: Dict[str, Any],
    chapters: Optional[List[ChapterMarker]] = None,
) -> None:
    """
    Write column changes and, when chapters is not None, replace the chapter list.

    Both happen in one transaction so readers never see half an update.
    """
    async with database.transaction():
        if values:
            await database.execute(videos.update().where(videos.c.id == video_id).values(**values))
        if chapters is not None:
            await database.execute(video_chapters.delete().where(video_chapters.c.video_id == video_id))
            rows = _chapter_rows(video_id, chapters)
            if rows:
                await database.execute_many(video_chapters.insert(), rows)


@with_db_retry()
async def _delete_video_records(video_id: str) -> None:
    # Chapters first: SQLite does not reliably cascade through the async driver
    async with database.transaction():
        await database.execute(video_chapters.delete().where(video_chapters.c.video_id == video_id))
        await database.execute(videos.delete().where(videos.c.id == video_id))


async def _shared_file_names(video_id: str, names: Set[str], storage: UploadStorage) -> Set[str]:
    """Return the upload filenames among names that another video or a user logo still points at."""
    if not names:
        return set()

    url_columns = (videos.c.media_url, videos.c.banner_url, videos.c.creator_logo)
    video_rows = await fetch_all_with_retry(
        sa.select(*url_columns).where(
            videos.c.id != video_id,
            sa.or_(*(column.endswith(name, autoescape=True) for column in url_columns for name in names)),
        )
    )
    logo_rows = await fetch_all_with_retry(
        sa.select(users.c.logo).where(sa.or_(*(users.c.logo.endswith(name, autoescape=True) for name in names)))
    )

    urls = [row[column.name] for row in video_rows for column in url_columns]
    urls += [row["logo"] for row in logo_rows]
    shared = set()
    for url in urls:
        path = storage.local_path_for_url(url)
        if path is not None and path.name in names:
            shared.add(path.name)
    return shared


async def remove_video(row, storage: UploadStorage) -> None:
    """
    Remove a video's media and thumbnail files, then its records.

    A file another video or a user logo still refers to is left in place.
    """
    urls = [row["media_url"], row["banner_url"]]
    names = {path.name for path in map(storage.local_path_for_url, urls) if path is not None}
    shared = await _shared_file_names(row["id"], names, storage)
    if shared:
        logger.info(f"Keeping files still referenced elsewhere: {sorted(shared)}")
    storage.remove_files(urls, keep=shared)
    await _delete_video_records(row["id"])
    logger.info(f"Deleted video {row['id']}")


# ============================================================================
# Creator operations
# ============================================================================


async def create(creator_id: Optional[str], data: VideoCreate) -> VideoResponse:
    """
    Create a video owned by the caller.

    Unknown categories become "other" and an unrecognised visibility falls
    back to public. The creator's current name and logo are copied onto the
    record. A caller id longer than any issued id is rejected as Unauthorized.
    """
    if not creator_id:
        raise UnauthorizedError()
    if len(creator_id) > ID_LENGTH:
        raise UnauthorizedError("Invalid user id")

    user = await get_user(creator_id)
    chapter_source = data.chapters if data.chapters is not None else data.timestamps
    chapters = parse_chapters(chapter_source) or []

    video_id = new_id()
    values = {
        "id": video_id,
        "title": data.title,
        "media_url": data.media_url,
        "banner_url": data.banner_url or None,
        "creator_id": creator_id,
        "creator_name": user["name"] if user else "",
        "creator_logo": (user["logo"] or "") if user else "",
        "description": data.description if isinstance(data.description, str) else "",
        "category": normalize_category(data.category).value,
        "is_muted": bool(data.is_muted),
        "is_approved": True,
        "admin_mute_override": False,
        "visibility": (parse_visibility(data.visibility) or Visibility.PUBLIC).value,
        "views": 0,
        "created_at": utcnow(),
    }
    await _insert_video(values, chapters)

    logger.info(f"Created video {video_id} for creator {creator_id}")
    return await get(video_id)


@with_db_retry()
async def _insert_video(values: Dict[str, Any], chapters: List[ChapterMarker]) -> None:
    async with database.transaction():
        await database.execute(videos.insert().values(**values))
        rows = _chapter_rows(values["id"], chapters)
        if rows:
            await database.execute_many(video_chapters.insert(), rows)


def build_creator_updates(patch: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[List[ChapterMarker]]]:
    """
    Turn a creator's PATCH body into column values and an optional chapter list.

    Fields with the wrong type or an unknown enum value are dropped, as are
    fields a creator may not set (approval, admin override, views, owner).
    """
    values: Dict[str, Any] = {}

    if isinstance(patch.get("isMuted"), bool):
        values["is_muted"] = patch["isMuted"]

    visibility = parse_visibility(patch.get("visibility"))
    if visibility is not None:
        values["visibility"] = visibility.value

    if isinstance(patch.get("bannerUrl"), str):
        values["banner_url"] = patch["bannerUrl"]

    title = patch.get("title")
    if isinstance(title, str) and 0 < len(title.strip()) <= MAX_TITLE_LENGTH:
        values["title"] = title.strip()

    description = patch.get("description")
    if isinstance(description, str) and len(description) <= MAX_DESCRIPTION_LENGTH:
        values["description"] = description

    category = parse_category(patch.get("category"))
    if category is not None:
        values["category"] = category.value

    chapter_source = patch["chapters"] if "chapters" in patch else patch.get("timestamps")
    chapters = parse_chapters(chapter_source)

    return values, chapters


async def _owned_row(video_id: str, caller_id: Optional[str]):
    if not caller_id:
        raise UnauthorizedError()
    row = await get_row(video_id)
    if row["creator_id"] != caller_id:
        raise ForbiddenError("Only the creator can modify this video")
    return row


async def update(video_id: str, caller_id: Optional[str], patch: Dict[str, Any]) -> VideoResponse:
    """Apply a creator's partial update. Raises Unauthorized, NotFound or Forbidden."""
    await _owned_row(video_id, caller_id)
    values, chapters = build_creator_updates(patch)
    if values or chapters is not None:
        await apply_changes(video_id, values, chapters)
    return await get(video_id)


async def delete(video_id: str, caller_id: Optional[str], storage: UploadStorage) -> None:
    """Delete the caller's own video and its files."""
    row = await _owned_row(video_id, caller_id)
    await remove_video(row, storage)


# ============================================================================
# Listings and views
# ============================================================================


async def _list(*conditions, category: Optional[str] = None) -> List[VideoResponse]:
    query = videos.select()
    wanted = category_filter(category)
    if wanted is not None:
        conditions = conditions + (videos.c.category == wanted,)
    if conditions:
        query = query.where(*conditions)
    rows = await fetch_all_with_retry(query.order_by(sa.desc(videos.c.created_at), sa.desc(videos.c.id)))
    return await rows_to_responses(rows)


async def list_public(category: Optional[str] = None) -> List[VideoResponse]:
    """Approved videos, newest first."""
    return await _list(videos.c.is_approved.is_(True), category=category)


async def list_mine(creator_id: Optional[str], category: Optional[str] = None) -> List[VideoResponse]:
    if not creator_id:
        raise UnauthorizedError()
    return await _list(videos.c.creator_id == creator_id, category=category)


async def list_all_for_admin(category: Optional[str] = None) -> List[VideoResponse]:
    return await _list(category=category)


@with_db_retry()
async def record_view(video_id: str) -> int:
    """
    Increment the view counter and return the new count.

    The increment is a single UPDATE evaluated by the database, so concurrent
    calls never lose counts.
    """
    async with database.transaction():
        await database.execute(
            videos.update().where(videos.c.id == video_id).values(views=videos.c.views + 1)
        )
        views = await database.fetch_val(sa.select(videos.c.views).where(videos.c.id == video_id))
    if views is None:
        raise NotFoundError("Video not found")
    return views
