"""Database models for the exam-prep study planner."""
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Time, Float, JSON, ForeignKey, Text, Enum as SQLEnum
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class ScheduleStatus(str, Enum):
    """Study plan lifecycle."""
    ACTIVE = "active"
    PARTIAL = "partial"        # Some sessions could not be scheduled
    ARCHIVED = "archived"


class EventStatus(str, Enum):
    """Study session completion status."""
    PLANNED = "planned"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class User(Base):
    """Student account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=True)
    timezone = Column(String, default="UTC")
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    schedules = relationship("StudyPlanSchedule", back_populates="user", cascade="all, delete-orphan")


class Subject(Base):
    """Exam subject (e.g. Mathematics 0580)."""
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    code = Column(String, nullable=True)


class GradeLevel(Base):
    """Grade / qualification level (e.g. IGCSE, O-Level)."""
    __tablename__ = "grade_levels"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)


class SyllabusChapter(Base):
    """Syllabus chapter extracted upstream for one subject and grade.

    Ordered by chapter_number; subtopics seed the topics of planned sessions.
    """
    __tablename__ = "syllabus_chapters"

    id = Column(Integer, primary_key=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    grade_id = Column(Integer, ForeignKey("grade_levels.id"), nullable=False)
    chapter_number = Column(Integer, nullable=False)
    chapter_title = Column(String, nullable=False)
    chapter_description = Column(Text, nullable=True)
    subtopics = Column(JSON, default=list)

    subject = relationship("Subject")
    grade = relationship("GradeLevel")


class StudyPlanSchedule(Base):
    """One generated study plan for a user, subject and grade."""
    __tablename__ = "study_plan_schedules"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    grade_id = Column(Integer, ForeignKey("grade_levels.id"), nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    preferences = Column(JSON, default=dict)  # selected_days, preferred window, session duration
    status = Column(SQLEnum(ScheduleStatus), default=ScheduleStatus.ACTIVE)

    # Model metadata
    ai_provider = Column(String, nullable=True)
    ai_model = Column(String, nullable=True)
    input_tokens = Column(Integer, default=0)
    output_tokens = Column(Integer, default=0)
    cost_usd = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="schedules")
    subject = relationship("Subject")
    grade = relationship("GradeLevel")
    events = relationship("StudyPlanEvent", back_populates="schedule", cascade="all, delete-orphan")


class StudyPlanEvent(Base):
    """A scheduled calendar event belonging to a study plan.

    Subject and grade are those of the owning schedule. start_time/end_time are
    local wall-clock times on event_date.
    """
    __tablename__ = "study_plan_events"

    id = Column(Integer, primary_key=True)
    schedule_id = Column(Integer, ForeignKey("study_plan_schedules.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # Timing
    event_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Syllabus linkage
    chapter_number = Column(Integer, nullable=True)
    topics = Column(JSON, default=list)

    status = Column(SQLEnum(EventStatus), default=EventStatus.PLANNED)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    schedule = relationship("StudyPlanSchedule", back_populates="events")
