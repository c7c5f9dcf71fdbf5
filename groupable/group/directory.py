"""
Contact directory collaborator and the mirror that pushes group display
fields into it.

A group's title and avatar are shown through the contact directory entry
keyed by the group's encoded identifier. The store never owns those entries;
it resolves them by key on every notification and pushes the new value.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
import logging

from PIL import Image
from sqlalchemy.exc import SQLAlchemyError

from groupable.group import identifiers
from groupable.group.errors import DirectoryResolutionFailure
from groupable.group.images import to_bytes, decode_image
from groupable.group.metadata import Metadata, RecipientRow

LOGGER = logging.getLogger(__name__)


class DirectoryEntry(ABC):

    @abstractmethod
    def set_title(self, title: Optional[str]) -> None:
        pass

    @abstractmethod
    def set_avatar(self, image: Optional[Image.Image]) -> None:
        pass


class Directory(ABC):

    @abstractmethod
    def resolve_or_create(self, key: str) -> DirectoryEntry:
        """
        Return the entry for key, creating a minimal one if none exists.
        Implementations raise DirectoryResolutionFailure when they cannot.
        """
        pass


class MetadataDirectoryEntry(DirectoryEntry):

    def __init__(self, directory: 'MetadataDirectory', key: str):
        self.directory = directory
        self.key = key

    def set_title(self, title: Optional[str]) -> None:
        self.directory._update(self.key, name=title)

    def set_avatar(self, image: Optional[Image.Image]) -> None:
        self.directory._update(self.key, avatar=to_bytes(image))


class MetadataDirectory(Directory):
    """Directory stored in the recipients table of the metadata database."""

    def __init__(self, metadata: Metadata):
        self.metadata = metadata

    def resolve_or_create(self, key: str) -> DirectoryEntry:
        if not key:
            raise DirectoryResolutionFailure("Directory key is empty")

        with self.metadata.get_db_session() as db_session:
            try:
                existing = db_session.query(RecipientRow).filter(RecipientRow.recipient_key == key).first()
                if existing is None:
                    db_session.add(RecipientRow(recipient_key=key))
                    db_session.commit()
                    LOGGER.debug(f"Created directory entry for '{key}'")
            except SQLAlchemyError as e:
                db_session.rollback()
                LOGGER.error(f"Error resolving directory entry '{key}': {e}")
                raise DirectoryResolutionFailure(f"Could not resolve directory entry '{key}': {e}") from e

        return MetadataDirectoryEntry(self, key)

    def get_entry(self, key: str) -> Optional[Dict[str, Any]]:
        with self.metadata.get_db_session() as db_session:
            row = db_session.query(RecipientRow).filter(RecipientRow.recipient_key == key).first()
            if row is None:
                return None
            return {
                "key": row.recipient_key,
                "name": row.name,
                "avatar": decode_image(row.avatar),
                "is_group": identifiers.is_encoded(row.recipient_key),
                "updated_at": row.updated_at,
            }

    def _update(self, key: str, **values) -> None:
        with self.metadata.get_db_session() as db_session:
            try:
                updated = db_session.query(RecipientRow).filter(
                    RecipientRow.recipient_key == key
                ).update(values)
                db_session.commit()
            except SQLAlchemyError as e:
                db_session.rollback()
                LOGGER.error(f"Error updating directory entry '{key}': {e}")
                raise DirectoryResolutionFailure(f"Could not update directory entry '{key}': {e}") from e

        if not updated:
            raise DirectoryResolutionFailure(f"Directory entry '{key}' disappeared before update")


class DirectoryMirror:
    """Best-effort propagation of group title and avatar into the directory."""

    def __init__(self, directory: Directory):
        self.directory = directory

    def _resolve(self, group_id: bytes) -> Optional[DirectoryEntry]:
        key = identifiers.encode(group_id)
        try:
            return self.directory.resolve_or_create(key)
        except DirectoryResolutionFailure as e:
            LOGGER.warning(f"Couldn't resolve directory entry for group '{key}': {e}")
        except Exception as e:
            LOGGER.error(f"Unexpected error resolving directory entry for group '{key}': {e}")
        return None

    def mirror_title(self, group_id: bytes, title: Optional[str]) -> None:
        entry = self._resolve(group_id)
        if entry is None:
            LOGGER.warning("Couldn't update group title because recipient couldn't be found.")
            return

        try:
            entry.set_title(title)
            LOGGER.debug(f"Mirrored title for group '{identifiers.encode(group_id)}'")
        except Exception as e:
            LOGGER.warning(f"Couldn't update group title in directory: {e}")

    def mirror_avatar(self, group_id: bytes, image: Optional[Image.Image]) -> None:
        entry = self._resolve(group_id)
        if entry is None:
            LOGGER.warning("Couldn't update group avatar because recipient couldn't be found.")
            return

        try:
            entry.set_avatar(image)
            LOGGER.debug(f"Mirrored avatar for group '{identifiers.encode(group_id)}'")
        except Exception as e:
            LOGGER.warning(f"Couldn't update group avatar in directory: {e}")
