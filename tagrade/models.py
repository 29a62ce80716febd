from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    pass


class Student(Base):
    __tablename__ = "student"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")


class CompileResultRow(Base):
    __tablename__ = "compile_result"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    java_source: Mapped[str] = mapped_column(Text, nullable=False)
    student_base: Mapped[str] = mapped_column(Text, nullable=False)
    student_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    base: Mapped[str] = mapped_column(Text, nullable=False)
    dst_directory: Mapped[str] = mapped_column(Text, nullable=False)
    # "Success" | "Failure" | "Error"
    compile_status: Mapped[str] = mapped_column(String(16), nullable=False)
    compile_command: Mapped[str] = mapped_column(Text, nullable=False, default="")
    encoding: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    package_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    class_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    error_message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    prev_compile_command: Mapped[str | None] = mapped_column(Text, nullable=True)
    utf8_error_command: Mapped[str] = mapped_column(Text, nullable=False, default="")
    utf8_error: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sjis_error_command: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sjis_error: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    judge_units: Mapped[list["JudgeUnitRow"]] = relationship(back_populates="compile_result", cascade="all, delete-orphan")


class JudgeUnitRow(Base):
    __tablename__ = "test_info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    compile_result_id: Mapped[int] = mapped_column(Integer, ForeignKey("compile_result.id"), nullable=False)
    task_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    compile_result: Mapped[CompileResultRow] = relationship(back_populates="judge_units")
