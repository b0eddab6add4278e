"""
Route Tests
"""
import io
import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import stripe

from alia import db
from alia.domain import Plan
from alia.models import AnalysisRecord, Profile
from alia.services import aws_service, openai_service

from conftest import PNG_BYTES

MODEL_ANSWER = '1. ANÁLISE TÉCNICA: achado X\n2. RECOMENDAÇÕES: acompanhar Y'


def exam_form(**overrides):
    data = {
        'name': 'Maria Silva',
        'age': '45',
        'symptoms': 'dor torácica',
        'image': (io.BytesIO(PNG_BYTES), 'exame torax.png', 'image/png'),
    }
    data.update(overrides)
    return data


@pytest.fixture
def model(app, monkeypatch):
    """Fake OpenAI client answering with MODEL_ANSWER"""
    app.config['OPENAI_API_KEY'] = 'sk-test'
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=MODEL_ANSWER))]
    )
    monkeypatch.setattr(openai_service, 'get_client', lambda: client)
    return client


@pytest.fixture
def s3(monkeypatch):
    """Fake S3 client"""
    client = MagicMock()
    monkeypatch.setattr(aws_service, 's3_client', lambda: client)
    return client


class TestHealthEndpoints:
    """Test health check endpoints"""

    def test_healthz(self, client):
        """Health check should return ok"""
        response = client.get('/healthz')
        assert response.status_code == 200

        data = json.loads(response.data)
        assert data['status'] == 'ok'
        assert data['database'] == 'ok'
        assert 'timestamp' in data

    def test_healthz_reports_services(self, app, client):
        """Missing collaborator configuration is reported, not fatal"""
        app.config['OPENAI_API_KEY'] = ''
        data = json.loads(client.get('/healthz').data)
        assert data['status'] == 'ok'
        assert data['services'] == {
            'openai': 'OPENAI_API_KEY is missing',
            'storage': 'ok',
            'stripe': 'ok',
        }

    def test_version(self, client):
        """Version endpoint should return build info"""
        response = client.get('/version')
        assert response.status_code == 200

        data = json.loads(response.data)
        assert 'version' in data
        assert data['features']['stripe_checkout'] is True


class TestScreens:
    """Test screen rendering"""

    def test_index_shows_login_when_signed_out(self, client):
        """Anonymous visitors see the login screen"""
        response = client.get('/')
        assert response.status_code == 200
        assert b'Entrar' in response.data

    def test_anonymous_visits_keep_no_session_state(self, app):
        """Signed-out page loads leave the session registry empty"""
        for _ in range(50):
            response = app.test_client().get('/')
            assert b'Entrar' in response.data
        assert len(app.extensions['alia_sessions']) == 0

    def test_signed_in_client_is_tracked_until_logout(self, app, authenticated_client):
        """Logging out drops the client from the registry"""
        authenticated_client.get('/')
        assert len(app.extensions['alia_sessions']) == 1

        authenticated_client.get('/logout')
        response = authenticated_client.get('/')
        assert b'Entrar' in response.data
        assert len(app.extensions['alia_sessions']) == 0

    def test_index_shows_form(self, premium_client):
        """Signed-in users see the exam form"""
        response = premium_client.get('/')
        assert response.status_code == 200
        assert 'Novo Exame'.encode() in response.data
        assert 'Plano Gratuito'.encode() not in response.data

    def test_upgrade_prompt_and_back(self, authenticated_client):
        """Upgrade button shows the prompt, back returns to the form"""
        response = authenticated_client.post('/upgrade', follow_redirects=True)
        assert 'Eleve sua Prática Médica'.encode() in response.data

        response = authenticated_client.post('/upgrade/back', follow_redirects=True)
        assert 'Novo Exame'.encode() in response.data


class TestAnalyzeEndpoint:
    """Test exam submission"""

    def test_analyze_requires_auth(self, client):
        """Analyze endpoint should require authentication"""
        response = client.post('/analyze')
        assert response.status_code == 302

    def test_free_plan_gets_upgrade_prompt(self, authenticated_client, model, s3):
        """Free plan never calls the model"""
        response = authenticated_client.post('/analyze', data=exam_form(), content_type='multipart/form-data', follow_redirects=True)

        assert 'Eleve sua Prática Médica'.encode() in response.data
        model.chat.completions.create.assert_not_called()
        s3.put_object.assert_not_called()

    def test_validation_errors(self, premium_client, model):
        """Invalid fields are shown on the form"""
        response = premium_client.post('/analyze', data=exam_form(name='', age='151'), content_type='multipart/form-data', follow_redirects=True)

        assert 'Nome do paciente é obrigatório'.encode() in response.data
        assert 'Idade deve estar entre 1 e 150 anos'.encode() in response.data
        model.chat.completions.create.assert_not_called()

    def test_full_analysis(self, premium_client, premium_user, model, s3):
        """Premium submission analyzes, uploads, saves and shows the result"""
        response = premium_client.post('/analyze', data=exam_form(), content_type='multipart/form-data', follow_redirects=True)

        assert response.status_code == 200
        assert 'Análise Concluída'.encode() in response.data
        assert b'achado X' in response.data
        assert b'acompanhar Y' in response.data

        s3.put_object.assert_called_once()
        kwargs = s3.put_object.call_args.kwargs
        assert kwargs['Bucket'] == 'alia-test-exams'
        assert kwargs['Key'].startswith(f'{premium_user.id}/')
        assert kwargs['Key'].endswith('_exame_torax.png')
        assert kwargs['ContentType'] == 'image/png'

        record = AnalysisRecord.query.filter_by(user_id=premium_user.id).one()
        assert record.patient_name == 'Maria Silva'
        assert record.patient_age == 45
        assert record.analysis_text == 'achado X'
        assert record.recommendations_text == 'acompanhar Y'
        assert record.image_url.startswith('https://alia-test-exams.s3.sa-east-1.amazonaws.com/')

    def test_model_failure_shows_error(self, premium_client, model, s3):
        """Model errors end on the error screen"""
        model.chat.completions.create.side_effect = openai_service.OpenAIError('boom')

        response = premium_client.post('/analyze', data=exam_form(), content_type='multipart/form-data', follow_redirects=True)

        assert 'Erro ao processar análise do exame. Tente novamente.'.encode() in response.data
        s3.put_object.assert_not_called()
        assert AnalysisRecord.query.count() == 0

    def test_new_analysis(self, premium_client, model, s3):
        """New analysis leaves the result screen"""
        premium_client.post('/analyze', data=exam_form(), content_type='multipart/form-data')
        response = premium_client.post('/analysis/new', follow_redirects=True)
        assert 'Novo Exame'.encode() in response.data


class TestExport:
    """Test report downloads"""

    def test_export_requires_auth(self, client):
        """Export should require authentication"""
        response = client.get('/report/complete')
        assert response.status_code == 302

    def test_unknown_variant(self, authenticated_client):
        """Unknown variants are not found"""
        response = authenticated_client.get('/report/everything')
        assert response.status_code == 404

    def test_export_without_result(self, authenticated_client):
        """Nothing to export before an analysis"""
        response = authenticated_client.get('/report/complete', follow_redirects=True)
        assert response.status_code == 200
        assert 'Nenhum laudo disponível para exportar.'.encode() in response.data

    def test_complete_pdf(self, premium_client, model, s3):
        """Complete report downloads as a PDF named after the patient"""
        premium_client.post('/analyze', data=exam_form(), content_type='multipart/form-data')

        response = premium_client.get('/report/complete')

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')
        today = datetime.now(timezone.utc).date().isoformat()
        assert f'Laudo_Completo_Maria_Silva_{today}.pdf' in response.headers['Content-Disposition']

    def test_text_report(self, premium_client, model, s3):
        """Text laudo carries both sections"""
        premium_client.post('/analyze', data=exam_form(), content_type='multipart/form-data')

        response = premium_client.get('/report/text')

        assert response.status_code == 200
        body = response.data.decode('utf-8')
        assert 'Nome: Maria Silva' in body
        assert 'acompanhar Y' in body

    def test_render_failure(self, premium_client, model, s3, monkeypatch):
        """Renderer errors are reported without leaving the result"""
        from alia.services import pdf_service
        premium_client.post('/analyze', data=exam_form(), content_type='multipart/form-data')
        monkeypatch.setattr(pdf_service, 'render_report', MagicMock(side_effect=RuntimeError('font')))

        response = premium_client.get('/report/analysis', follow_redirects=True)

        assert 'Não foi possível gerar o documento. Tente novamente.'.encode() in response.data
        assert 'Análise Concluída'.encode() in response.data


class TestCheckout:
    """Test the checkout trigger and payment return"""

    def test_checkout_requires_auth(self, client):
        """JSON checkout answers 401 when signed out"""
        response = client.post('/create-checkout-session')
        assert response.status_code == 401
        assert json.loads(response.data)['error'] == 'Unauthorized'

    def test_checkout_creates_customer(self, app, client, monkeypatch):
        """Profiles without a Stripe customer get one"""
        from conftest import login, make_user
        user = make_user('novo@clinica.com')
        login(client, user.email)

        customer_create = MagicMock(return_value=MagicMock(id='cus_new'))
        session_create = MagicMock(return_value=MagicMock(id='cs_1', url='https://checkout.stripe.com/c/cs_1'))
        monkeypatch.setattr(stripe.Customer, 'create', customer_create)
        monkeypatch.setattr(stripe.checkout.Session, 'create', session_create)

        response = client.post('/create-checkout-session')

        assert response.status_code == 200
        assert json.loads(response.data) == {'sessionId': 'cs_1', 'url': 'https://checkout.stripe.com/c/cs_1'}
        assert db.session.get(Profile, user.id).stripe_customer_id == 'cus_new'

        kwargs = session_create.call_args.kwargs
        assert kwargs['customer'] == 'cus_new'
        assert kwargs['mode'] == 'subscription'
        assert kwargs['line_items'] == [{'price': 'price_premium_monthly', 'quantity': 1}]
        assert kwargs['success_url'] == 'http://localhost/?payment=success'
        assert kwargs['cancel_url'] == 'http://localhost/?payment=cancelled'

    def test_checkout_stripe_error(self, authenticated_client, monkeypatch):
        """Stripe failures answer 500 with a message"""
        monkeypatch.setattr(stripe.checkout.Session, 'create', MagicMock(side_effect=stripe.InvalidRequestError('No such price', 'price')))

        response = authenticated_client.post('/create-checkout-session')

        assert response.status_code == 500
        assert 'error' in json.loads(response.data)

    def test_upgrade_checkout_redirects(self, authenticated_client, monkeypatch):
        """Upgrade screen sends the browser to Stripe"""
        monkeypatch.setattr(stripe.checkout.Session, 'create', MagicMock(return_value=MagicMock(id='cs_2', url='https://checkout.stripe.com/c/cs_2')))

        response = authenticated_client.post('/upgrade/checkout')

        assert response.status_code == 303
        assert response.headers['Location'] == 'https://checkout.stripe.com/c/cs_2'

    def test_upgrade_checkout_without_price(self, app, authenticated_client):
        """Missing price id is shown to the user"""
        app.config['STRIPE_PRICE_ID'] = ''
        response = authenticated_client.post('/upgrade/checkout', follow_redirects=True)
        assert 'Falha ao redirecionar para o pagamento'.encode() in response.data

    def test_payment_success_after_webhook(self, authenticated_client, free_user):
        """Return from checkout picks up the new plan and drops the marker"""
        authenticated_client.post('/upgrade')

        profile = db.session.get(Profile, free_user.id)
        profile.plan = Plan.PREMIUM
        db.session.commit()

        response = authenticated_client.get('/?payment=success')
        assert response.status_code == 302
        assert 'payment' not in response.headers['Location']

        response = authenticated_client.get('/')
        assert 'Novo Exame'.encode() in response.data
        assert 'Plano Gratuito'.encode() not in response.data
        assert 'Pagamento confirmado!'.encode() in response.data

    def test_payment_cancelled(self, authenticated_client):
        """Cancelled checkout keeps the free plan"""
        response = authenticated_client.get('/?payment=cancelled', follow_redirects=True)
        assert 'Pagamento cancelado.'.encode() in response.data
        assert 'Plano Gratuito'.encode() in response.data
