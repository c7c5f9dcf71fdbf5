from pydantic import BaseModel
from typing import List, Optional, Set
import logging
import uuid

LOGGER = logging.getLogger(__name__)


class SendGroupMessageResponse(BaseModel):
    """Server reply to a group send, listing recipients that were not found."""
    uuids404: Optional[List[str]] = None

    def get_unsent_targets(self) -> Set[uuid.UUID]:
        targets = set()
        for raw in self.uuids404 or []:
            try:
                targets.add(uuid.UUID(raw))
            except ValueError:
                LOGGER.warning(f"Failed to parse recipient id {raw!r}")
        return targets
