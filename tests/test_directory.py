"""
Tests for the contact directory and the mirror that pushes group display
fields into it.
"""

import os
import tempfile
import pytest
from unittest.mock import MagicMock

from PIL import Image
from sqlalchemy.exc import OperationalError

from groupable.group.metadata import Metadata, RecipientRow
from groupable.group.directory import (
    Directory,
    DirectoryEntry,
    DirectoryMirror,
    MetadataDirectory
)
from groupable.group.groups import Groups
from groupable.group.identifiers import encode
from groupable.group.errors import DirectoryResolutionFailure


@pytest.fixture
def metadata():
    db_file = tempfile.NamedTemporaryFile(suffix='_directory.db', delete=False)
    db_file.close()
    metadata = Metadata(f"sqlite:///{db_file.name}")
    yield metadata
    metadata.close()
    try:
        os.remove(db_file.name)
    except Exception:
        pass


@pytest.fixture
def directory(metadata):
    return MetadataDirectory(metadata)


class TestMetadataDirectory:

    def test_resolve_creates_minimal_entry(self, directory, metadata):
        key = encode(os.urandom(16))
        entry = directory.resolve_or_create(key)

        assert isinstance(entry, DirectoryEntry)
        with metadata.get_db_session() as session:
            assert session.query(RecipientRow).filter(RecipientRow.recipient_key == key).count() == 1

        snapshot = directory.get_entry(key)
        assert snapshot["name"] is None
        assert snapshot["avatar"] is None
        assert snapshot["is_group"] is True

    def test_resolve_twice_reuses_entry(self, directory, metadata):
        key = encode(os.urandom(16))
        directory.resolve_or_create(key)
        directory.resolve_or_create(key)

        with metadata.get_db_session() as session:
            assert session.query(RecipientRow).filter(RecipientRow.recipient_key == key).count() == 1

    def test_set_title_and_avatar(self, directory):
        key = encode(os.urandom(16))
        entry = directory.resolve_or_create(key)
        entry.set_title("Book club")
        entry.set_avatar(Image.new("RGB", (3, 3), (1, 2, 3)))

        snapshot = directory.get_entry(key)
        assert snapshot["name"] == "Book club"
        assert snapshot["avatar"].size == (3, 3)

    def test_clear_avatar(self, directory):
        key = encode(os.urandom(16))
        entry = directory.resolve_or_create(key)
        entry.set_avatar(Image.new("RGB", (3, 3)))
        entry.set_avatar(None)
        assert directory.get_entry(key)["avatar"] is None

    def test_unknown_entry(self, directory):
        assert directory.get_entry("missing") is None

    def test_empty_key_fails(self, directory):
        with pytest.raises(DirectoryResolutionFailure):
            directory.resolve_or_create("")

    def test_storage_error_becomes_resolution_failure(self, directory, metadata):
        session = MagicMock()
        session.__enter__.return_value = session
        session.query.side_effect = OperationalError("SELECT", {}, Exception("locked"))
        metadata.get_db_session = MagicMock(return_value=session)

        with pytest.raises(DirectoryResolutionFailure):
            directory.resolve_or_create("key")
        session.rollback.assert_called_once()


class TestDirectoryMirror:

    def test_mirror_title(self):
        entry = MagicMock(spec=DirectoryEntry)
        directory = MagicMock(spec=Directory)
        directory.resolve_or_create.return_value = entry
        group_id = os.urandom(16)

        DirectoryMirror(directory).mirror_title(group_id, "Title")

        directory.resolve_or_create.assert_called_once_with(encode(group_id))
        entry.set_title.assert_called_once_with("Title")

    def test_mirror_avatar(self):
        entry = MagicMock(spec=DirectoryEntry)
        directory = MagicMock(spec=Directory)
        directory.resolve_or_create.return_value = entry
        image = Image.new("RGB", (1, 1))

        DirectoryMirror(directory).mirror_avatar(os.urandom(16), image)

        entry.set_avatar.assert_called_once_with(image)

    def test_resolution_failure_is_swallowed(self):
        directory = MagicMock(spec=Directory)
        directory.resolve_or_create.side_effect = DirectoryResolutionFailure("no entry")

        mirror = DirectoryMirror(directory)
        mirror.mirror_title(os.urandom(16), "Title")
        mirror.mirror_avatar(os.urandom(16), None)

        assert directory.resolve_or_create.call_count == 2

    def test_unexpected_failure_is_swallowed(self):
        directory = MagicMock(spec=Directory)
        directory.resolve_or_create.side_effect = RuntimeError("boom")
        DirectoryMirror(directory).mirror_title(os.urandom(16), "Title")

    def test_no_retry(self):
        entry = MagicMock(spec=DirectoryEntry)
        entry.set_title.side_effect = DirectoryResolutionFailure("gone")
        directory = MagicMock(spec=Directory)
        directory.resolve_or_create.return_value = entry

        DirectoryMirror(directory).mirror_title(os.urandom(16), "Title")

        assert entry.set_title.call_count == 1


class TestStoreWithMetadataDirectory:

    def test_title_and_avatar_reach_directory(self, metadata, directory):
        groups = Groups(metadata, directory, local_number="+15555550100")
        group_id = groups.allocate_group_id()
        groups.create(group_id, "A", "Initial", ["B"])

        groups.update_title(group_id, "Hikers")
        groups.update_avatar(group_id, Image.new("RGB", (5, 5), (9, 9, 9)))

        snapshot = directory.get_entry(encode(group_id))
        assert snapshot["name"] == "Hikers"
        assert snapshot["avatar"].size == (5, 5)

        groups.update_avatar(group_id, None)
        assert directory.get_entry(encode(group_id))["avatar"] is None
