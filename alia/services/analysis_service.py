"""Persistence of completed exam analyses."""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from alia import db
from alia.domain import ExamAnalysis
from alia.errors import PersistenceError
from alia.models import AnalysisRecord


def save_analysis(user_id: int, analysis: ExamAnalysis, image_url: str) -> AnalysisRecord:
    """Insert one analyses row. There is no update or delete path."""
    record = AnalysisRecord(
        id=analysis.id,
        user_id=user_id,
        patient_name=analysis.patient.name,
        patient_age=analysis.patient.age,
        patient_symptoms=analysis.patient.symptoms,
        image_url=image_url,
        analysis_text=analysis.analysis,
        recommendations_text=analysis.recommendations,
        created_at=analysis.created_at,
    )
    try:
        db.session.add(record)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Error saving analysis %s: %s", analysis.id, e)
        raise PersistenceError() from e
    return record
