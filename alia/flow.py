"""
Exam submission flow.

States: form -> analyzing -> result | error, plus upgrade-required for
profiles without the premium plan. The collaborators (model call, image
upload, record persistence) are injected so the flow knows nothing about
Flask, S3 or the database.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Union

from alia.domain import AnalysisStatus, ExamAnalysis, ExamImage, Patient, ProfileSnapshot
from alia.errors import AliaError
from alia.text_formatter import SectionSplit

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024
MIN_AGE = 1
MAX_AGE = 150

GENERIC_ERROR = "Erro desconhecido"

AnalyzeFn = Callable[[ExamImage, Patient], SectionSplit]
UploadFn = Callable[[int, ExamImage], str]
SaveFn = Callable[[int, ExamAnalysis, str], object]


@dataclass(frozen=True)
class PatientForm:
    """Raw form input; age stays a string until validated."""
    name: str = ""
    age: str = ""
    symptoms: str = ""

    @classmethod
    def from_mapping(cls, data) -> "PatientForm":
        return cls(
            name=(data.get("name") or "").strip(),
            age=(data.get("age") or "").strip(),
            symptoms=(data.get("symptoms") or "").strip(),
        )

    def parsed_age(self) -> Optional[int]:
        try:
            return int(self.age)
        except (TypeError, ValueError):
            return None

    def to_patient(self) -> Patient:
        return Patient(name=self.name, age=self.parsed_age(), symptoms=self.symptoms)


@dataclass(frozen=True)
class FormState:
    errors: Dict[str, str] = field(default_factory=dict)
    form: PatientForm = field(default_factory=PatientForm)
    name = "form"


@dataclass(frozen=True)
class AnalyzingState:
    name = "analyzing"


@dataclass(frozen=True)
class ResultState:
    analysis: ExamAnalysis
    name = "result"


@dataclass(frozen=True)
class ErrorState:
    message: str
    name = "error"


@dataclass(frozen=True)
class UpgradeRequiredState:
    name = "upgrade-required"


FlowState = Union[FormState, AnalyzingState, ResultState, ErrorState, UpgradeRequiredState]


def validate_submission(form: PatientForm, image: Optional[ExamImage], max_image_bytes: int = MAX_IMAGE_BYTES) -> Dict[str, str]:
    """Field-level validation. Returns {} when the submission may proceed."""
    errors: Dict[str, str] = {}

    if not form.name:
        errors["name"] = "Nome do paciente é obrigatório"

    age = form.parsed_age()
    if age is None or age < MIN_AGE or age > MAX_AGE:
        errors["age"] = "Idade deve estar entre 1 e 150 anos"

    if image is None or not image.data:
        errors["image"] = "Imagem do exame é obrigatória"
    elif not (image.content_type or "").startswith("image/"):
        errors["image"] = "Por favor, selecione apenas arquivos de imagem."
    elif image.size > max_image_bytes:
        errors["image"] = "Arquivo muito grande. Máximo 10MB."

    return errors


def _error_message(exc: Exception) -> str:
    if isinstance(exc, AliaError):
        return exc.message
    return GENERIC_ERROR


class ExamSubmissionFlow:
    def __init__(self, analyze: AnalyzeFn, upload: UploadFn, save: SaveFn, max_image_bytes: int = MAX_IMAGE_BYTES):
        self._analyze = analyze
        self._upload = upload
        self._save = save
        self.max_image_bytes = max_image_bytes
        self.state: FlowState = FormState()

    def reset(self) -> FlowState:
        """New analysis: back to an empty form, dropping any previous result."""
        self.state = FormState()
        return self.state

    def submit(self, profile: ProfileSnapshot, user_id: int, form: PatientForm, image: Optional[ExamImage]) -> FlowState:
        if not profile.is_premium:
            self.state = UpgradeRequiredState()
            return self.state

        self.state = AnalyzingState()

        errors = validate_submission(form, image, self.max_image_bytes)
        if errors:
            self.state = FormState(errors=errors, form=form)
            return self.state

        patient = form.to_patient()

        try:
            sections = self._analyze(image, patient)
        except Exception as e:
            logger.exception("Exam analysis failed for user %s", user_id)
            self.state = ErrorState(_error_message(e))
            return self.state

        analysis = ExamAnalysis(
            id=uuid.uuid4().hex,
            patient=patient,
            image_url=image.to_data_url(),
            analysis=sections.analysis,
            recommendations=sections.recommendations,
            status=AnalysisStatus.COMPLETED,
        )

        try:
            durable_url = self._upload(user_id, image)
            self._save(user_id, analysis, durable_url)
        except Exception as e:
            logger.exception("Storing analysis %s failed for user %s", analysis.id, user_id)
            self.state = ErrorState(_error_message(e))
            return self.state

        logger.info("Analysis %s completed for user %s", analysis.id, user_id)
        self.state = ResultState(analysis)
        return self.state
