from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Float, Boolean, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import ExamAttemptStatusEnum
from app.models.exam import JSONType

class ExamAttempt(Base):
    __tablename__ = "exam_attempts"
    __table_args__ = (
        UniqueConstraint("exam_id", "user_id", name="uq_exam_attempts_exam_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    status = Column(Enum(ExamAttemptStatusEnum), nullable=False, default=ExamAttemptStatusEnum.IN_PROGRESS)
    current_section = Column(Integer, nullable=False, default=1)
    answers_json = Column(JSONType, nullable=False, default=dict)
    audio_play_json = Column(JSONType, nullable=False, default=dict)
    section_finished_json = Column(JSONType, nullable=False, default=dict)
    section_times_json = Column(JSONType, nullable=False, default=dict)
    flagged_questions_json = Column(JSONType, nullable=False, default=list)
    revision = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    submission_trigger = Column(String, nullable=True)
    score_section_json = Column(JSONType, nullable=True)
    score_category_json = Column(JSONType, nullable=True)
    total_score_250 = Column(Float, nullable=True)
    passed = Column(Boolean, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    exam = relationship("Exam", back_populates="attempts")
