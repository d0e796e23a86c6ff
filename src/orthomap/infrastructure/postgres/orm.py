from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Float, ForeignKey, String, Text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from src.orthomap.domain.models.input_kind import InputKind
from src.orthomap.domain.models.task_status import TaskStatus


class Base(DeclarativeBase):
    pass


class TaskRow(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(256))
    description: Mapped[str | None] = mapped_column(Text)
    input_kind: Mapped[InputKind] = mapped_column(
        Enum(InputKind, name="input_kind"), nullable=False
    )
    options: Mapped[list | None] = mapped_column(JSON)

    task_metadata: Mapped["TaskMetadataRow"] = relationship(
        back_populates="task", uselist=False, cascade="all, delete-orphan"
    )
    status: Mapped["TaskStatusRow"] = relationship(
        back_populates="task", uselist=False, cascade="all, delete-orphan"
    )
    result: Mapped["TaskResultRow"] = relationship(
        back_populates="task", uselist=False, cascade="all, delete-orphan"
    )


class TaskMetadataRow(Base):
    __tablename__ = "task_metadata"

    task_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    task: Mapped[TaskRow] = relationship(back_populates="task_metadata")


class TaskStatusRow(Base):
    __tablename__ = "task_statuses"

    task_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True
    )
    state: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus, name="task_status"), nullable=False
    )
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    external_job_id: Mapped[str | None] = mapped_column(String(64))
    error: Mapped[str | None] = mapped_column(Text)

    task: Mapped[TaskRow] = relationship(back_populates="status")


class TaskResultRow(Base):
    __tablename__ = "task_results"

    task_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True
    )
    source_raster_path: Mapped[str | None] = mapped_column(Text)
    result_raster_path: Mapped[str | None] = mapped_column(Text)
    spectral_images: Mapped[list | None] = mapped_column(JSON)
    bounding_box: Mapped[list | None] = mapped_column(JSON)

    task: Mapped[TaskRow] = relationship(back_populates="result")


class PostgresOrm:
    """
    SQLAlchemy async ORM holder. Create once and inject where needed.
    """

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self._engine: AsyncEngine = create_async_engine(database_url, echo=echo)
        self._session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def create_schema(self) -> None:
        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()
