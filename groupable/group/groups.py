from typing import Callable, Dict, List, Optional, Union
import logging
import time

from PIL import Image
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from groupable.group import identifiers, membership
from groupable.group.attachments import AttachmentPointer
from groupable.group.directory import Directory, DirectoryMirror
from groupable.group.errors import ConcurrentRosterUpdate
from groupable.group.images import decode_image, to_bytes
from groupable.group.metadata import Metadata, GroupRow as GroupModel

LOGGER = logging.getLogger(__name__)

MAX_ROSTER_ATTEMPTS = 100


class GroupRecord(BaseModel):
    """Snapshot of one row of the groups table."""
    group_id: str
    title: Optional[str] = None
    members: List[str] = []
    avatar: Optional[bytes] = None
    avatar_id: Optional[int] = None
    avatar_key: Optional[bytes] = None
    avatar_content_type: Optional[str] = None
    relay: Optional[str] = None
    timestamp: Optional[int] = None
    active: bool = True

    class Config:
        frozen = True

    @classmethod
    def from_model(cls, group: GroupModel) -> 'GroupRecord':
        """Create a GroupRecord from a GroupModel while in session context."""
        return cls(
            group_id=group.group_id,
            title=group.title,
            members=membership.split_members(group.members),
            avatar=group.avatar,
            avatar_id=group.avatar_id,
            avatar_key=group.avatar_key,
            avatar_content_type=group.avatar_content_type,
            relay=group.avatar_relay,
            timestamp=group.timestamp,
            active=bool(group.active)
        )

    def get_id(self) -> bytes:
        # stored ids are written by encode(); a failure here means the row is corrupt
        return identifiers.decode(self.group_id)


class Groups:

    def __init__(self, metadata: Metadata, directory: Directory,
                 local_number: Optional[Union[str, Callable[[], str]]] = None,
                 random_source: Optional[Callable[[int], bytes]] = None):
        self.metadata = metadata
        self.mirror = DirectoryMirror(directory)
        self._local_number = local_number
        self._random_source = random_source

    def _get_local_number(self) -> str:
        if callable(self._local_number):
            return self._local_number()
        if self._local_number is not None:
            return self._local_number
        from groupable.group.config import Config
        return Config.config().get_local_number()

    def _update_columns(self, group_id: bytes, values: Dict) -> int:
        encoded_id = identifiers.encode(group_id)
        with self.metadata.get_db_session() as db_session:
            try:
                updated = db_session.query(GroupModel).filter(
                    GroupModel.group_id == encoded_id
                ).update(values)
                db_session.commit()
                LOGGER.debug(f"Updated {sorted(values)} for group '{encoded_id}' ({updated} row)")
                return updated
            except Exception as e:
                db_session.rollback()
                LOGGER.error(f"Error updating group '{encoded_id}': {e}")
                raise e

    def allocate_group_id(self) -> bytes:
        return identifiers.allocate(self._random_source)

    def get_group(self, group_id: bytes) -> Optional[GroupRecord]:
        encoded_id = identifiers.encode(group_id)
        with self.metadata.get_db_session() as db_session:
            group = db_session.query(GroupModel).filter(GroupModel.group_id == encoded_id).first()
            return GroupRecord.from_model(group) if group else None

    def get_group_members(self, group_id: bytes) -> List[str]:
        """Get the current roster, or an empty list for an unknown group."""
        encoded_id = identifiers.encode(group_id)
        with self.metadata.get_db_session() as db_session:
            members = db_session.query(GroupModel.members).filter(
                GroupModel.group_id == encoded_id
            ).scalar()
            return membership.split_members(members)

    def create(self, group_id: bytes, owner: str, title: Optional[str], members: List[str],
               avatar: Optional[AttachmentPointer] = None, relay: Optional[str] = None) -> bool:
        """
        Create a new group row.

        Args:
            group_id: 16-byte group identifier, normally from allocate_group_id()
            owner: Member identifier of the group's creator
            title: Display title, may be None
            members: Candidate members; the local identifier is filtered out
            avatar: Reference to the uploaded avatar, if any
            relay: Routing hint recorded with the group

        Returns:
            True if the row was created, False if the identifier already exists
        """
        encoded_id = identifiers.encode(group_id)
        roster = membership.filter_on_create(owner, members, self._get_local_number())

        values = dict(
            group_id=encoded_id,
            title=title,
            members=membership.join_members(roster),
            avatar_relay=relay,
            timestamp=int(time.time() * 1000),
            active=True
        )
        if avatar is not None:
            values.update(avatar.to_columns())

        with self.metadata.get_db_session() as db_session:
            try:
                db_session.add(GroupModel(**values))
                db_session.commit()
                LOGGER.info(f"Created group '{encoded_id}' with {len(roster)} members")
                return True
            except IntegrityError as e:
                db_session.rollback()
                LOGGER.warning(f"Group '{encoded_id}' already exists, not created: {e}")
                return False
            except Exception as e:
                db_session.rollback()
                LOGGER.error(f"Error creating group '{encoded_id}': {e}")
                raise e

    def update(self, group_id: bytes, title: Optional[str] = None,
               avatar: Optional[AttachmentPointer] = None) -> None:
        """Update the title and/or avatar reference, leaving omitted fields untouched."""
        values = {}
        if title is not None:
            values["title"] = title
        if avatar is not None:
            values.update(avatar.to_columns())

        if values:
            self._update_columns(group_id, values)

        if title is not None:
            self.mirror.mirror_title(group_id, title)

    def update_title(self, group_id: bytes, title: Optional[str]) -> None:
        self._update_columns(group_id, {"title": title})
        if title is not None:
            self.mirror.mirror_title(group_id, title)

    def update_avatar(self, group_id: bytes, avatar: Optional[Union[bytes, Image.Image]]) -> None:
        """
        Replace the stored avatar and mirror it into the directory.

        Raw bytes are stored as given and decoded for the directory. An image
        is stored as PNG. None or empty bytes clears both.
        """
        if isinstance(avatar, Image.Image):
            image = avatar
            data = to_bytes(avatar)
        else:
            data = avatar or None
            image = decode_image(data)

        self._update_columns(group_id, {"avatar": data})
        self.mirror.mirror_avatar(group_id, image)

    def _edit_roster(self, encoded_id: str, edit: Callable[[List[str]], Optional[List[str]]],
                     reactivate: bool = False) -> bool:
        """
        Apply edit to the persisted roster with a compare-and-swap write.

        The UPDATE only matches while the members column still holds the
        value that was read, so a concurrent writer forces a re-read rather
        than being overwritten. edit returns None to leave the row alone.

        Returns:
            True if a new roster was written, False if the group is unknown
            or edit declined the change

        Raises:
            ConcurrentRosterUpdate: If every attempt lost to another writer
        """
        with self.metadata.get_db_session() as db_session:
            for attempt in range(MAX_ROSTER_ATTEMPTS):
                try:
                    row = db_session.query(GroupModel.members).filter(
                        GroupModel.group_id == encoded_id
                    ).first()
                    if row is None:
                        db_session.rollback()
                        return False

                    roster = edit(membership.split_members(row.members))
                    if roster is None:
                        db_session.rollback()
                        return False

                    values = {"members": membership.join_members(roster)}
                    if reactivate:
                        values["active"] = True

                    updated = db_session.query(GroupModel).filter(
                        GroupModel.group_id == encoded_id,
                        GroupModel.members.is_not_distinct_from(row.members)
                    ).update(values, synchronize_session=False)
                    if updated:
                        db_session.commit()
                        return True

                    db_session.rollback()
                    LOGGER.debug(f"Roster of group '{encoded_id}' changed underneath attempt {attempt + 1}, retrying")
                except Exception as e:
                    db_session.rollback()
                    LOGGER.error(f"Error updating roster of group '{encoded_id}': {e}")
                    raise e

        LOGGER.error(f"Gave up updating roster of group '{encoded_id}' after {MAX_ROSTER_ATTEMPTS} attempts")
        raise ConcurrentRosterUpdate(f"Roster of group '{encoded_id}' kept changing during update")

    def add(self, group_id: bytes, source: str, members: List[str]) -> None:
        """Add members on behalf of source, which must already be in the roster."""
        encoded_id = identifiers.encode(group_id)

        def append_from_member(current: List[str]) -> Optional[List[str]]:
            if source not in current:
                return None
            return membership.append(current, members, source)

        if self._edit_roster(encoded_id, append_from_member, reactivate=True):
            LOGGER.info(f"Added {len(members)} members to group '{encoded_id}' from '{source}'")
        else:
            LOGGER.info(f"Ignoring add to group '{encoded_id}' from non-member '{source}'")

    def remove(self, group_id: bytes, source: str) -> None:
        encoded_id = identifiers.encode(group_id)
        if self._edit_roster(encoded_id, lambda current: membership.remove(current, source)):
            LOGGER.info(f"Removed '{source}' from group '{encoded_id}'")
        else:
            LOGGER.debug(f"Ignoring remove from unknown group '{encoded_id}'")

    def is_active(self, group_id: bytes) -> bool:
        record = self.get_group(group_id)
        return record is not None and record.active

    def set_active(self, group_id: bytes, active: bool) -> None:
        self._update_columns(group_id, {"active": bool(active)})
