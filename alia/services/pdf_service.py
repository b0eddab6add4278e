"""Exam report export.

One-page A4 PDFs in three variants (complete, analysis only, recommendations
only) plus the plain-text laudo. Layout is computed first by plan_report()
as a list of positioned blocks, then drawn with the reportlab canvas.
Positions in the plan are measured from the top of the page.

Body text is wrapped to the content width and placed line by line until the
block's vertical budget runs out; the remaining lines are dropped. There is
no overflow page.
"""
from __future__ import annotations

import enum
import io
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from alia.domain import ExamAnalysis
from alia.text_formatter import format_for_pdf

PLATFORM_NAME = "ALIA"
PLATFORM_TAGLINE = "Plataforma de Análise Médica com IA"
ATTRIBUTION_TEXT = "Desenvolvido por Axiomind.space"
ATTRIBUTION_URL = "https://axiomind.space"

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

BRAND_BLUE = colors.HexColor("#3B82F6")
PATIENT_FILL = colors.HexColor("#F8FAFC")
PATIENT_STROKE = colors.HexColor("#C8C8C8")
WARNING_FILL = colors.HexColor("#FEF2F2")
WARNING_STROKE = colors.HexColor("#EF4444")
WARNING_TEXT = colors.HexColor("#B91C1C")
FOOTER_GREY = colors.HexColor("#6B7280")

COMPLETE_DISCLAIMER = (
    "Esta análise foi gerada por IA e serve apenas como auxílio diagnóstico. "
    "NÃO substitui a avaliação médica especializada."
)
RECOMMENDATIONS_DISCLAIMER = (
    "Estas recomendações foram geradas por IA e servem apenas como auxílio médico. "
    "Sempre consulte um profissional médico qualificado."
)


class ReportVariant(enum.Enum):
    COMPLETE = "complete"
    ANALYSIS = "analysis"
    RECOMMENDATIONS = "recommendations"

    @property
    def file_prefix(self) -> str:
        return {
            ReportVariant.COMPLETE: "Laudo_Completo",
            ReportVariant.ANALYSIS: "Analise",
            ReportVariant.RECOMMENDATIONS: "Recomendacoes",
        }[self]

    @property
    def title(self) -> str:
        return {
            ReportVariant.COMPLETE: "LAUDO MÉDICO COMPLETO",
            ReportVariant.ANALYSIS: "ANÁLISE TÉCNICA DO EXAME",
            ReportVariant.RECOMMENDATIONS: "RECOMENDAÇÕES MÉDICAS",
        }[self]


@dataclass(frozen=True)
class ReportLayout:
    """Page geometry. analysis_share and patient_max_lines are product defaults."""
    page_size: Tuple[float, float] = A4
    margin: float = 10 * mm
    header_height: float = 25 * mm
    content_top: float = 48 * mm
    analysis_share: float = 0.55
    patient_max_lines: int = 2
    line_spacing: float = 1.2
    footer_space: float = 20 * mm
    complete_footer_space: float = 25 * mm
    complete_disclaimer_space: float = 20 * mm
    recommendations_disclaimer_space: float = 25 * mm

    @classmethod
    def from_config(cls, config) -> "ReportLayout":
        return cls(
            analysis_share=float(config.get("REPORT_ANALYSIS_SHARE", cls.analysis_share)),
            patient_max_lines=int(config.get("REPORT_PATIENT_MAX_LINES", cls.patient_max_lines)),
        )

    @property
    def page_width(self) -> float:
        return self.page_size[0]

    @property
    def page_height(self) -> float:
        return self.page_size[1]

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin


@dataclass
class TextBlock:
    heading: str
    heading_size: float
    heading_top: float
    x: float
    top: float
    limit: float
    font_size: float
    line_height: float
    lines: List[str] = field(default_factory=list)
    dropped: int = 0

    @property
    def bottom(self) -> float:
        return self.top + len(self.lines) * self.line_height


@dataclass
class DisclaimerBox:
    top: float
    height: float
    heading: str
    heading_size: float
    heading_offset: float
    text_size: float
    text_offset: float
    lines: List[str]


@dataclass
class ReportPlan:
    variant: ReportVariant
    patient_box_top: float
    patient_box_height: float
    patient_lines: List[str]
    available_height: float
    blocks: List[TextBlock]
    disclaimer: Optional[DisclaimerBox]
    footer_text: str


def _slug_name(name: str) -> str:
    return re.sub(r"\s+", "_", name or "")


def report_filename(analysis: ExamAnalysis, variant: ReportVariant) -> str:
    date = analysis.created_at.date().isoformat()
    return f"{variant.file_prefix}_{_slug_name(analysis.patient.name)}_{date}.pdf"


def text_report_filename(analysis: ExamAnalysis) -> str:
    date = analysis.created_at.date().isoformat()
    return f"laudo_{_slug_name(analysis.patient.name)}_{date}.txt"


def format_date_br(analysis: ExamAnalysis) -> str:
    return analysis.created_at.strftime("%d/%m/%Y")


def wrap_text(text: str, font_size: float, width: float, font: str = FONT) -> List[str]:
    return simpleSplit(text, font, font_size, width)


def place_lines(lines: List[str], top: float, line_height: float, limit: float) -> Tuple[List[str], int]:
    """Keep lines while their baseline stays above the limit; drop the rest."""
    placed = []
    y = top
    for line in lines:
        if y >= limit:
            break
        placed.append(line)
        y += line_height
    return placed, len(lines) - len(placed)


def _text_block(heading, heading_size, heading_top, text, x, top, limit, font_size, width, layout) -> TextBlock:
    line_height = font_size * layout.line_spacing
    lines = wrap_text(format_for_pdf(text), font_size, width)
    placed, dropped = place_lines(lines, top, line_height, limit)
    return TextBlock(
        heading=heading,
        heading_size=heading_size,
        heading_top=heading_top,
        x=x,
        top=top,
        limit=limit,
        font_size=font_size,
        line_height=line_height,
        lines=placed,
        dropped=dropped,
    )


def plan_report(analysis: ExamAnalysis, variant: ReportVariant, layout: Optional[ReportLayout] = None) -> ReportPlan:
    layout = layout or ReportLayout()
    page_h = layout.page_height
    margin = layout.margin
    content_w = layout.content_width
    patient = analysis.patient

    # Patient box: label, then name | age | symptoms truncated to a few lines
    patient_box_top = layout.content_top
    info = f"{patient.name} | {patient.age} anos | Sintomas: {patient.symptoms or 'Não informado'}"
    patient_lines = wrap_text(info, 7, content_w - 6 * mm)[:layout.patient_max_lines]
    patient_box_height = 10 * mm + 4 * mm * max(len(patient_lines), 2)
    y = patient_box_top + 10 * mm + 4 * mm * len(patient_lines)

    blocks: List[TextBlock] = []
    disclaimer = None

    if variant == ReportVariant.COMPLETE:
        y += 5 * mm
        footer_space = layout.complete_footer_space
        disclaimer_space = layout.complete_disclaimer_space
        # two 6mm headings and the 5mm gap between sections come out of the text budget
        available = page_h - y - footer_space - disclaimer_space - 17 * mm
        analysis_h = available * layout.analysis_share
        recommendations_h = available - analysis_h
        width = content_w - 2 * mm

        heading_top = y
        y += 6 * mm
        analysis_block = _text_block(
            "ANÁLISE TÉCNICA", 9, heading_top, analysis.analysis,
            margin + 2 * mm, y, y + analysis_h, 7, width, layout,
        )
        blocks.append(analysis_block)
        y = min(analysis_block.bottom + 5 * mm, y + analysis_h + 5 * mm)

        heading_top = y
        y += 6 * mm
        blocks.append(_text_block(
            "RECOMENDAÇÕES", 9, heading_top, analysis.recommendations,
            margin + 2 * mm, y, y + recommendations_h, 7, width, layout,
        ))

        disclaimer = DisclaimerBox(
            top=page_h - footer_space - disclaimer_space,
            height=15 * mm,
            heading="AVISO:",
            heading_size=7,
            heading_offset=5 * mm,
            text_size=6,
            text_offset=8 * mm,
            lines=wrap_text(COMPLETE_DISCLAIMER, 6, content_w - 6 * mm)[:2],
        )

    elif variant == ReportVariant.ANALYSIS:
        y += 8 * mm
        available = page_h - y - layout.footer_space
        heading_top = y
        y += 8 * mm
        blocks.append(_text_block(
            "ANÁLISE TÉCNICA DETALHADA", 10, heading_top, analysis.analysis,
            margin, y, page_h - layout.footer_space, 8, content_w, layout,
        ))

    else:
        y += 8 * mm
        disclaimer_space = layout.recommendations_disclaimer_space
        available = page_h - y - disclaimer_space - layout.footer_space
        heading_top = y
        y += 8 * mm
        blocks.append(_text_block(
            "RECOMENDAÇÕES DETALHADAS", 10, heading_top, analysis.recommendations,
            margin, y, page_h - disclaimer_space - layout.footer_space, 8, content_w, layout,
        ))
        disclaimer = DisclaimerBox(
            top=page_h - layout.footer_space - disclaimer_space,
            height=20 * mm,
            heading="AVISO IMPORTANTE",
            heading_size=8,
            heading_offset=6 * mm,
            text_size=7,
            text_offset=10 * mm,
            lines=wrap_text(RECOMMENDATIONS_DISCLAIMER, 7, content_w - 6 * mm)[:2],
        )

    return ReportPlan(
        variant=variant,
        patient_box_top=patient_box_top,
        patient_box_height=patient_box_height,
        patient_lines=patient_lines,
        available_height=available,
        blocks=blocks,
        disclaimer=disclaimer,
        footer_text=f"{patient.name} | {patient.age} anos | {format_date_br(analysis)}",
    )


# ============ Drawing ============

def _draw_header(c: canvas.Canvas, layout: ReportLayout, title: str) -> None:
    page_h = layout.page_height
    c.setFillColor(BRAND_BLUE)
    c.rect(0, page_h - layout.header_height, layout.page_width, layout.header_height, stroke=0, fill=1)

    c.setFillColor(colors.white)
    c.setFont(FONT_BOLD, 16)
    c.drawString(layout.margin, page_h - 15 * mm, PLATFORM_NAME)
    c.setFont(FONT, 8)
    c.drawString(layout.margin, page_h - 21 * mm, PLATFORM_TAGLINE)

    c.setFillColor(colors.black)
    c.setFont(FONT_BOLD, 12)
    c.drawString(layout.margin, page_h - 38 * mm, title)


def _draw_patient_box(c: canvas.Canvas, layout: ReportLayout, plan: ReportPlan) -> None:
    page_h = layout.page_height
    top = plan.patient_box_top
    c.setStrokeColor(PATIENT_STROKE)
    c.setFillColor(PATIENT_FILL)
    c.rect(layout.margin, page_h - top - plan.patient_box_height,
           layout.content_width, plan.patient_box_height, stroke=1, fill=1)

    c.setFillColor(colors.black)
    c.setFont(FONT_BOLD, 8)
    c.drawString(layout.margin + 3 * mm, page_h - top - 6 * mm, "PACIENTE:")
    c.setFont(FONT, 7)
    y = top + 10 * mm
    for line in plan.patient_lines:
        c.drawString(layout.margin + 3 * mm, page_h - y, line)
        y += 4 * mm


def _draw_block(c: canvas.Canvas, layout: ReportLayout, block: TextBlock) -> None:
    page_h = layout.page_height
    c.setFillColor(colors.black)
    c.setFont(FONT_BOLD, block.heading_size)
    c.drawString(layout.margin, page_h - block.heading_top, block.heading)

    c.setFont(FONT, block.font_size)
    y = block.top
    for line in block.lines:
        c.drawString(block.x, page_h - y, line)
        y += block.line_height


def _draw_disclaimer(c: canvas.Canvas, layout: ReportLayout, box: DisclaimerBox) -> None:
    page_h = layout.page_height
    c.setStrokeColor(WARNING_STROKE)
    c.setFillColor(WARNING_FILL)
    c.rect(layout.margin, page_h - box.top - box.height, layout.content_width, box.height, stroke=1, fill=1)

    c.setFillColor(WARNING_TEXT)
    c.setFont(FONT_BOLD, box.heading_size)
    c.drawString(layout.margin + 3 * mm, page_h - box.top - box.heading_offset, box.heading)
    c.setFont(FONT, box.text_size)
    for i, line in enumerate(box.lines):
        c.drawString(layout.margin + 3 * mm, page_h - box.top - box.text_offset - i * 3 * mm, line)
    c.setFillColor(colors.black)


def _draw_footer(c: canvas.Canvas, layout: ReportLayout, footer_text: str) -> None:
    footer_y = 15 * mm
    c.setFillColor(FOOTER_GREY)
    c.setFont(FONT, 7)
    c.drawString(layout.margin, footer_y, footer_text)

    link_width = stringWidth(ATTRIBUTION_TEXT, FONT, 7)
    link_x = (layout.page_width - link_width) / 2
    link_y = footer_y - 5 * mm
    c.setFillColor(BRAND_BLUE)
    c.drawString(link_x, link_y, ATTRIBUTION_TEXT)
    c.linkURL(ATTRIBUTION_URL, (link_x, link_y - 1, link_x + link_width, link_y + 7), relative=0)


def render_report(analysis: ExamAnalysis, variant: ReportVariant, layout: Optional[ReportLayout] = None) -> bytes:
    """Render one report variant to PDF bytes."""
    layout = layout or ReportLayout()
    plan = plan_report(analysis, variant, layout)

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=layout.page_size)
    c.setTitle(report_filename(analysis, variant))
    c.setAuthor(PLATFORM_NAME)

    _draw_header(c, layout, variant.title)
    _draw_patient_box(c, layout, plan)
    for block in plan.blocks:
        _draw_block(c, layout, block)
    if plan.disclaimer is not None:
        _draw_disclaimer(c, layout, plan.disclaimer)
    _draw_footer(c, layout, plan.footer_text)

    c.showPage()
    c.save()
    return buf.getvalue()


def render_text_report(analysis: ExamAnalysis) -> str:
    """Plain-text laudo with the raw model sections."""
    patient = analysis.patient
    return f"""LAUDO MÉDICO - ANÁLISE POR IA
================================

DADOS DO PACIENTE:
Nome: {patient.name}
Idade: {patient.age} anos
Sintomas: {patient.symptoms or 'Não informado'}
Data do Exame: {format_date_br(analysis)}

ANÁLISE TÉCNICA:
{analysis.analysis}

RECOMENDAÇÕES:
{analysis.recommendations}

________________________________
IMPORTANTE: Esta análise foi gerada por inteligência artificial e serve apenas como auxílio diagnóstico.
NÃO substitui a avaliação de um médico especialista. Sempre consulte um profissional médico qualificado
para diagnóstico e tratamento definitivos.

Gerado pela Plataforma {PLATFORM_NAME}
"""
