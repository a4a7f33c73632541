# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""FileAttachmentRow ORM model – one file bound to a vault item."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, LargeBinary, String, Text
from sqlalchemy.orm import relationship

from database import Base


class FileAttachmentRow(Base):
    __tablename__ = "file_attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(
        Integer,
        ForeignKey("vault_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Order within the item's attachment list
    position = Column(Integer, nullable=False, default=0)

    name = Column(String(255), nullable=False)
    mime_type = Column(String(255), nullable=False, default="application/octet-stream")
    size = Column(Integer, nullable=False, default=0)
    # NULL for the server-only tier: those bytes are fetched on demand
    data = Column(LargeBinary, nullable=True)

    server_id = Column(String(64), nullable=True)
    storage_type = Column(String(16), nullable=False, default="local")
    server_url = Column(Text, nullable=True)
    last_synced = Column(DateTime, nullable=True)

    item = relationship("VaultItemRow", back_populates="attachments")
