# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""VaultItemRow ORM model – one locally stored vault item."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base


class VaultItemRow(Base):
    __tablename__ = "vault_items"

    # Monotonic and never reused (AUTOINCREMENT keeps SQLite from recycling
    # the id of a deleted last row).
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    category = Column(String(32), nullable=False, index=True)

    # Sensitive fields hold a ``salt:iv:ciphertext`` envelope whenever a
    # master password was active at write time.
    description = Column(Text, nullable=True)
    username = Column(Text, nullable=True)
    password = Column(Text, nullable=True)
    url = Column(Text, nullable=True)
    link_url = Column(Text, nullable=True)

    platform = Column(String(255), nullable=True)
    filepath = Column(Text, nullable=True)
    links = Column(Text, nullable=True)  # newline-separated link list

    is_favorite = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=True)
    use_server_storage = Column(Boolean, nullable=False, default=False)
    server_file_ids = Column(JSON, nullable=False, default=list)
    sync_status = Column(String(16), nullable=True)

    # Stored as naive UTC (SQLite has no timezone support)
    created_at = Column(DateTime, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=False)

    # Cascade delete: removing an item removes its attachments atomically.
    attachments = relationship(
        "FileAttachmentRow",
        back_populates="item",
        order_by="FileAttachmentRow.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = {"sqlite_autoincrement": True}
