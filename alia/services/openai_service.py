"""OpenAI wrapper for exam image analysis.

The model answers in free text; the answer is split into analysis and
recommendations by alia.text_formatter.split_sections.
"""
from __future__ import annotations

from typing import Tuple

from flask import current_app
from openai import OpenAI, OpenAIError

from alia.domain import ExamImage, Patient
from alia.errors import AnalysisServiceError
from alia.text_formatter import SectionSplit, split_sections

SYSTEM_PROMPT = "Você é um assistente médico especializado em análise de exames de imagem."


def analysis_prompt(patient: Patient) -> str:
    return f"""
Analise cuidadosamente o exame médico fornecido e forneça uma análise técnica detalhada.

Dados do Paciente:
- Nome: {patient.name}
- Idade: {patient.age} anos
- Sintomas relatados: {patient.symptoms or 'Não informado'}

Por favor, forneça:

1. ANÁLISE TÉCNICA:
- Descrição detalhada dos achados no exame
- Identificação de estruturas anatômicas visíveis
- Observações sobre normalidades e anormalidades
- Avaliação da qualidade técnica do exame

2. RECOMENDAÇÕES:
- Sugestões de conduta médica
- Necessidade de exames complementares
- Acompanhamento recomendado
- Orientações gerais

IMPORTANTE: Esta análise é apenas um auxílio diagnóstico e NÃO substitui a avaliação de um médico especialista. Sempre consulte um profissional médico qualificado para diagnóstico e tratamento definitivos.

Formate a resposta de forma clara e profissional, adequada para uso médico.
""".strip()


def client_ready() -> Tuple[bool, str]:
    key = (current_app.config.get("OPENAI_API_KEY") or "").strip()
    if not key:
        return False, "OPENAI_API_KEY is missing"
    return True, ""


def model_name() -> str:
    return (current_app.config.get("OPENAI_MODEL") or "").strip() or "gpt-4.1"


def get_client() -> OpenAI:
    # A failed call is terminal for the attempt: the SDK must not retry on its own.
    return OpenAI(
        api_key=current_app.config["OPENAI_API_KEY"].strip(),
        timeout=current_app.config.get("OPENAI_TIMEOUT", 120),
        max_retries=0,
    )


def analyze_exam(image: ExamImage, patient: Patient) -> SectionSplit:
    """Send the exam image and patient data to the model and split its answer."""
    ok, msg = client_ready()
    if not ok:
        current_app.logger.error("Exam analysis unavailable: %s", msg)
        raise AnalysisServiceError()

    try:
        res = get_client().chat.completions.create(
            model=model_name(),
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": analysis_prompt(patient)},
                        {"type": "image_url", "image_url": {"url": image.to_data_url()}},
                    ],
                },
            ],
            temperature=0.2,
        )
    except OpenAIError as e:
        current_app.logger.exception("Exam analysis request failed: %s", type(e).__name__)
        raise AnalysisServiceError() from e

    text = (res.choices[0].message.content or "").strip() if res.choices else ""
    if not text:
        current_app.logger.error("Exam analysis returned an empty answer (model=%s)", model_name())
        raise AnalysisServiceError()

    result = split_sections(text)
    if not result.found:
        current_app.logger.warning("Model answer had no recommendations marker; using fallback text")
    return result
