from pydantic import BaseModel


class AttachmentPointer(BaseModel):
    """Reference to an uploaded avatar: its attachment id, key and content type."""
    id: int
    key: bytes
    content_type: str

    def to_columns(self) -> dict:
        # the three avatar reference columns are always written together
        return {
            "avatar_id": self.id,
            "avatar_key": self.key,
            "avatar_content_type": self.content_type,
        }
