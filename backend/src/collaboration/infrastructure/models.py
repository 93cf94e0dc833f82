import uuid
from datetime import datetime

from sqlalchemy import Index, Integer, LargeBinary, func
from sqlalchemy.orm import Mapped, mapped_column

from shared.infrastructure.local_database import LocalBase


class CrdtSnapshotModel(LocalBase):
    __tablename__ = "document_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    note_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    snapshot: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    state_vector: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    update_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class CrdtUpdateModel(LocalBase):
    __tablename__ = "document_updates"
    __table_args__ = (Index("ix_document_updates_note_seq", "note_id", "update_seq"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    note_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    update_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    update_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class OfflineUpdateModel(LocalBase):
    __tablename__ = "offline_document_updates"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    note_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    update_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
