"""
Admin moderation transitions.

Every function here assumes the caller already holds the admin capability
and never checks ownership. Hiding a video (visibility set to private) drops
a notification into the creator's inbox; the other transitions are silent.
"""

import logging
from typing import Any

from api import video_store
from api.enums import Visibility, parse_visibility
from api.errors import BadRequestError
from api.identity import append_notification
from api.schemas import VideoResponse
from api.uploads import UploadStorage

logger = logging.getLogger(__name__)


def hidden_by_admin_message(title: str) -> str:
    return f'Your video "{title}" has been hidden by an admin.'


async def set_mute_override(video_id: str, value: Any) -> VideoResponse:
    """Force the video muted (True) or defer to the creator's setting (False)."""
    await video_store.get_row(video_id)
    await video_store.apply_changes(video_id, {"admin_mute_override": bool(value)})
    logger.info(f"Admin set mute override on video {video_id} to {bool(value)}")
    return await video_store.get(video_id)


async def set_approval(video_id: str, value: Any) -> VideoResponse:
    """Approve a video or pull it from the public listing."""
    await video_store.get_row(video_id)
    await video_store.apply_changes(video_id, {"is_approved": bool(value)})
    logger.info(f"Admin set approval on video {video_id} to {bool(value)}")
    return await video_store.get(video_id)


async def set_visibility(video_id: str, value: Any) -> VideoResponse:
    """
    Set a video's visibility.

    Raises:
        NotFoundError: the video does not exist
        BadRequestError: value is not public, private or unlisted

    Setting private appends one notification to the creator. The update
    stands even if the notification cannot be delivered.
    """
    row = await video_store.get_row(video_id)
    visibility = parse_visibility(value)
    if visibility is None:
        raise BadRequestError("visibility must be one of: public, private, unlisted")

    await video_store.apply_changes(video_id, {"visibility": visibility.value})
    logger.info(f"Admin set visibility on video {video_id} to {visibility.value}")

    if visibility == Visibility.PRIVATE:
        await append_notification(row["creator_id"], hidden_by_admin_message(row["title"]))

    return await video_store.get(video_id)


async def admin_delete(video_id: str, storage: UploadStorage) -> None:
    """Delete any video and its files."""
    row = await video_store.get_row(video_id)
    await video_store.remove_video(row, storage)
