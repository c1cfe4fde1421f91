"""Folder and channel persistence, always scoped to one user."""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from . import db
from .models import DEFAULT_FOLDER_COLOR, Channel, Folder
from .monetization import MonetizationVerdict
from .youtube_api import ChannelMetadata


class FolderExistsError(ValueError):
    """Raised when a user already has a folder with the requested name."""


class ChannelExistsError(ValueError):
    """Raised when a user already tracks the channel."""


def list_folders(user_id: str) -> List[Dict[str, Any]]:
    with db.get_session() as session:
        rows = session.scalars(
            select(Folder).where(Folder.user_id == user_id).order_by(Folder.created_at.asc())
        ).all()
        return [row.to_dict() for row in rows]


def _folder_name_taken(session, user_id: str, name: str, *, exclude_id: Optional[str] = None) -> bool:
    stmt = select(Folder.id).where(Folder.user_id == user_id, Folder.name == name)
    if exclude_id:
        stmt = stmt.where(Folder.id != exclude_id)
    return session.scalars(stmt).first() is not None


def create_folder(user_id: str, name: str, color: Optional[str] = None) -> Dict[str, Any]:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("Folder name is required")
    try:
        with db.get_session() as session:
            if _folder_name_taken(session, user_id, cleaned):
                raise FolderExistsError(cleaned)
            folder = Folder(user_id=user_id, name=cleaned, color=color or DEFAULT_FOLDER_COLOR)
            session.add(folder)
            session.flush()
            return folder.to_dict()
    except IntegrityError as exc:
        raise FolderExistsError(cleaned) from exc


def update_folder(
    user_id: str,
    folder_id: str,
    *,
    name: Optional[str] = None,
    color: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    with db.get_session() as session:
        folder = session.scalars(
            select(Folder).where(Folder.id == folder_id, Folder.user_id == user_id)
        ).first()
        if folder is None:
            return None
        cleaned = (name or "").strip()
        if cleaned:
            if _folder_name_taken(session, user_id, cleaned, exclude_id=folder_id):
                raise FolderExistsError(cleaned)
            folder.name = cleaned
        if color:
            folder.color = color
        session.flush()
        return folder.to_dict()


def delete_folder(user_id: str, folder_id: str) -> bool:
    with db.get_session() as session:
        folder = session.scalars(
            select(Folder).where(Folder.id == folder_id, Folder.user_id == user_id)
        ).first()
        if folder is None:
            return False
        channels = session.scalars(
            select(Channel).where(Channel.user_id == user_id, Channel.folder_id == folder_id)
        ).all()
        for channel in channels:
            channel.folder_id = None
        session.delete(folder)
        return True


def list_channels(user_id: str, *, folder_id: Optional[str] = None) -> List[Dict[str, Any]]:
    with db.get_session() as session:
        stmt = select(Channel).where(Channel.user_id == user_id)
        if folder_id:
            stmt = stmt.where(Channel.folder_id == folder_id)
        rows = session.scalars(stmt.order_by(Channel.created_at.desc())).all()
        return [row.to_dict() for row in rows]


def get_channel(user_id: str, channel_id: str) -> Optional[Dict[str, Any]]:
    with db.get_session() as session:
        row = session.scalars(
            select(Channel).where(Channel.user_id == user_id, Channel.channel_id == channel_id)
        ).first()
        return row.to_dict() if row else None


def channel_exists(user_id: str, channel_id: str) -> bool:
    return get_channel(user_id, channel_id) is not None


def _apply_verdict(channel: Channel, verdict: Optional[MonetizationVerdict]) -> None:
    if verdict is None:
        return
    channel.is_monetized = verdict.is_monetized
    channel.monetization_checked_at = verdict.checked_at
    channel.monetization_confidence = verdict.confidence.value
    channel.monetization_reason = verdict.reason


def insert_channel(
    user_id: str,
    metadata: ChannelMetadata,
    verdict: Optional[MonetizationVerdict] = None,
) -> Dict[str, Any]:
    try:
        with db.get_session() as session:
            existing = session.scalars(
                select(Channel.id).where(
                    Channel.user_id == user_id, Channel.channel_id == metadata.channel_id
                )
            ).first()
            if existing is not None:
                raise ChannelExistsError(metadata.channel_id)
            channel = Channel(user_id=user_id, **metadata.to_dict())
            _apply_verdict(channel, verdict)
            session.add(channel)
            session.flush()
            return channel.to_dict()
    except IntegrityError as exc:
        raise ChannelExistsError(metadata.channel_id) from exc


def delete_channel(user_id: str, row_id: str) -> bool:
    with db.get_session() as session:
        channel = session.scalars(
            select(Channel).where(Channel.id == row_id, Channel.user_id == user_id)
        ).first()
        if channel is None:
            return False
        session.delete(channel)
        return True


def move_channel(user_id: str, row_id: str, folder_id: Optional[str]) -> Optional[Dict[str, Any]]:
    """Put a channel into ``folder_id``, or take it out of any folder for ``None``.

    Returns ``None`` when the channel or the target folder does not belong to
    the user.
    """

    with db.get_session() as session:
        channel = session.scalars(
            select(Channel).where(Channel.id == row_id, Channel.user_id == user_id)
        ).first()
        if channel is None:
            return None
        if folder_id:
            folder = session.scalars(
                select(Folder.id).where(Folder.id == folder_id, Folder.user_id == user_id)
            ).first()
            if folder is None:
                return None
        channel.folder_id = folder_id or None
        session.flush()
        return channel.to_dict()


def record_monetization(user_id: str, channel_id: str, verdict: MonetizationVerdict) -> bool:
    with db.get_session() as session:
        channel = session.scalars(
            select(Channel).where(Channel.user_id == user_id, Channel.channel_id == channel_id)
        ).first()
        if channel is None:
            return False
        _apply_verdict(channel, verdict)
        return True


def get_channels_for_recheck(
    user_id: str,
    limit: Optional[int] = None,
    *,
    stale_after: Optional[dt.timedelta] = None,
) -> List[Dict[str, Any]]:
    """Channels without a verdict first, then those checked before the cutoff.

    A failed check leaves ``is_monetized`` unset, so such channels stay due.
    """

    with db.get_session() as session:
        stmt = select(Channel).where(Channel.user_id == user_id)
        if stale_after is not None:
            cutoff = (dt.datetime.now(dt.timezone.utc) - stale_after).replace(microsecond=0)
            stmt = stmt.where(
                or_(
                    Channel.monetization_checked_at.is_(None),
                    Channel.is_monetized.is_(None),
                    Channel.monetization_checked_at < cutoff.isoformat(),
                )
            )
        stmt = stmt.order_by(
            Channel.is_monetized.is_(None).desc(),
            Channel.monetization_checked_at.is_(None).desc(),
            Channel.monetization_checked_at.asc(),
        )
        if limit is not None and limit > 0:
            stmt = stmt.limit(limit)
        return [row.to_dict() for row in session.scalars(stmt).all()]


def get_channel_totals(user_id: str) -> Dict[str, int]:
    with db.get_session() as session:
        rows = session.execute(
            select(Channel.is_monetized, func.count())
            .where(Channel.user_id == user_id)
            .group_by(Channel.is_monetized)
        ).all()
    totals = {"total": 0, "monetized": 0, "notMonetized": 0, "unchecked": 0}
    for is_monetized, count in rows:
        totals["total"] += count
        if is_monetized is True:
            totals["monetized"] += count
        elif is_monetized is False:
            totals["notMonetized"] += count
        else:
            totals["unchecked"] += count
    return totals
