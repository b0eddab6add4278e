"""
Report Renderer Tests
"""
from datetime import datetime, timezone

import pytest

from alia.domain import ExamAnalysis, Patient
from alia.services.pdf_service import (
    ReportLayout,
    ReportVariant,
    place_lines,
    plan_report,
    render_report,
    render_text_report,
    report_filename,
    text_report_filename,
)

LONG_TEXT = ' '.join(['achado radiológico compatível com processo inflamatório'] * 400)


def make_analysis(analysis='achado X', recommendations='acompanhar Y', symptoms='dor torácica', name='Maria Silva'):
    return ExamAnalysis(
        id='a1',
        patient=Patient(name=name, age=45, symptoms=symptoms),
        image_url='data:image/png;base64,AAAA',
        analysis=analysis,
        recommendations=recommendations,
        created_at=datetime(2025, 6, 1, 14, 30, tzinfo=timezone.utc),
    )


class TestFilenames:
    """Test download names"""

    def test_complete_report_name(self):
        """Spaces in the patient name become underscores"""
        assert report_filename(make_analysis(), ReportVariant.COMPLETE) == 'Laudo_Completo_Maria_Silva_2025-06-01.pdf'

    def test_variant_prefixes(self):
        """Each variant has its own prefix"""
        analysis = make_analysis(name='João  da Costa')
        assert report_filename(analysis, ReportVariant.ANALYSIS) == 'Analise_João_da_Costa_2025-06-01.pdf'
        assert report_filename(analysis, ReportVariant.RECOMMENDATIONS) == 'Recomendacoes_João_da_Costa_2025-06-01.pdf'

    def test_text_report_name(self):
        """Plain-text laudo name"""
        assert text_report_filename(make_analysis()) == 'laudo_Maria_Silva_2025-06-01.txt'


class TestPlaceLines:
    """Test the vertical budget"""

    def test_drops_lines_past_limit(self):
        """Lines whose position reaches the limit are dropped"""
        placed, dropped = place_lines(['a', 'b', 'c', 'd'], top=0, line_height=10, limit=25)
        assert placed == ['a', 'b', 'c']
        assert dropped == 1

    def test_everything_fits(self):
        """Short text is placed entirely"""
        placed, dropped = place_lines(['a'], top=0, line_height=10, limit=100)
        assert placed == ['a']
        assert dropped == 0


class TestPlanReport:
    """Test layout planning"""

    def test_complete_budget_split(self):
        """Analysis gets 55% of the available height, recommendations the rest"""
        plan = plan_report(make_analysis(), ReportVariant.COMPLETE)
        analysis_block, recommendations_block = plan.blocks

        assert analysis_block.limit - analysis_block.top == pytest.approx(plan.available_height * 0.55)
        assert recommendations_block.limit - recommendations_block.top == pytest.approx(plan.available_height * 0.45)
        assert plan.disclaimer is not None

    def test_configured_share(self):
        """Share comes from configuration"""
        layout = ReportLayout.from_config({'REPORT_ANALYSIS_SHARE': 0.6, 'REPORT_PATIENT_MAX_LINES': 3})
        plan = plan_report(make_analysis(), ReportVariant.COMPLETE, layout)
        block = plan.blocks[0]
        assert block.limit - block.top == pytest.approx(plan.available_height * 0.6)

    @pytest.mark.parametrize('variant', list(ReportVariant))
    def test_long_text_is_truncated(self, variant):
        """Overflowing text is dropped, never drawn past its block"""
        plan = plan_report(make_analysis(analysis=LONG_TEXT, recommendations=LONG_TEXT), variant)
        for block in plan.blocks:
            assert block.dropped > 0
            assert block.lines
            assert block.top + (len(block.lines) - 1) * block.line_height < block.limit

    def test_complete_sections_do_not_overlap(self):
        """Recommendations start below the analysis budget"""
        plan = plan_report(make_analysis(analysis=LONG_TEXT), ReportVariant.COMPLETE)
        analysis_block, recommendations_block = plan.blocks
        assert recommendations_block.heading_top >= analysis_block.bottom - analysis_block.line_height

    @pytest.mark.parametrize('variant', list(ReportVariant))
    def test_text_stays_above_disclaimer_and_footer(self, variant):
        """Full sections never run into the disclaimer box or the footer"""
        layout = ReportLayout()
        plan = plan_report(make_analysis(analysis=LONG_TEXT, recommendations=LONG_TEXT), variant, layout)
        for block in plan.blocks:
            last_line = block.top + (len(block.lines) - 1) * block.line_height
            assert last_line < layout.page_height - layout.footer_space
            if plan.disclaimer is not None:
                assert last_line <= plan.disclaimer.top

    def test_complete_recommendations_end_at_disclaimer(self):
        """With both sections full, the recommendations budget ends at the disclaimer top"""
        plan = plan_report(make_analysis(analysis=LONG_TEXT, recommendations=LONG_TEXT), ReportVariant.COMPLETE)
        recommendations_block = plan.blocks[1]
        assert recommendations_block.limit == pytest.approx(plan.disclaimer.top)

    def test_patient_box_line_limit(self):
        """Long symptoms are cut to the configured number of lines"""
        plan = plan_report(make_analysis(symptoms=LONG_TEXT), ReportVariant.ANALYSIS)
        assert len(plan.patient_lines) == 2

    def test_single_variants(self):
        """Single-section variants carry one block"""
        analysis_plan = plan_report(make_analysis(), ReportVariant.ANALYSIS)
        recommendations_plan = plan_report(make_analysis(), ReportVariant.RECOMMENDATIONS)

        assert [b.heading for b in analysis_plan.blocks] == ['ANÁLISE TÉCNICA DETALHADA']
        assert analysis_plan.disclaimer is None
        assert [b.heading for b in recommendations_plan.blocks] == ['RECOMENDAÇÕES DETALHADAS']
        assert recommendations_plan.disclaimer.heading == 'AVISO IMPORTANTE'

    def test_markup_removed_before_layout(self):
        """PDF lines carry no asterisks"""
        plan = plan_report(make_analysis(analysis='**Achado** *leve*'), ReportVariant.ANALYSIS)
        assert plan.blocks[0].lines == ['Achado leve']

    def test_footer(self):
        """Footer shows name, age and Brazilian date"""
        plan = plan_report(make_analysis(), ReportVariant.COMPLETE)
        assert plan.footer_text == 'Maria Silva | 45 anos | 01/06/2025'


class TestRender:
    """Test document output"""

    @pytest.mark.parametrize('variant', list(ReportVariant))
    def test_pdf_bytes(self, variant):
        """Every variant renders a PDF"""
        data = render_report(make_analysis(analysis=LONG_TEXT), variant)
        assert data.startswith(b'%PDF')

    def test_text_report(self):
        """Text laudo keeps the raw sections"""
        text = render_text_report(make_analysis(analysis='**achado** X'))
        assert 'Nome: Maria Silva' in text
        assert 'Idade: 45 anos' in text
        assert 'Data do Exame: 01/06/2025' in text
        assert '**achado** X' in text
        assert 'acompanhar Y' in text

    def test_text_report_without_symptoms(self):
        """Missing symptoms are reported as such"""
        assert 'Sintomas: Não informado' in render_text_report(make_analysis(symptoms=''))
