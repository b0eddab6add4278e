"""
Screen routes, exam submission, report export and checkout.

Every screen route resolves the client's SessionMachine and renders whatever
screen_view() selects for it; POST routes run one transition and redirect
back to the index.
"""
import io

from flask import Blueprint, abort, current_app, flash, jsonify, redirect, render_template, request, send_file, session, url_for
from flask_login import current_user, login_required

from alia import csrf, db
from alia.auth import client_id, publish_current_user
from alia.domain import ExamImage
from alia.errors import CheckoutError
from alia.flow import ExamSubmissionFlow, PatientForm
from alia.models import Profile
from alia.screens import screen_view
from alia.services import analysis_service, aws_service, openai_service, pdf_service, stripe_service
from alia.services.profile_service import get_profile
from alia.session import NotAuthenticated, Screen

main_bp = Blueprint('main', __name__)

REPORT_VARIANTS = {
    'complete': pdf_service.ReportVariant.COMPLETE,
    'analysis': pdf_service.ReportVariant.ANALYSIS,
    'recommendations': pdf_service.ReportVariant.RECOMMENDATIONS,
}

EXPORT_FAILED = 'Não foi possível gerar o documento. Tente novamente.'


def default_flow(app):
    """Submission flow wired to OpenAI, S3 and the analyses table"""
    return ExamSubmissionFlow(
        analyze=openai_service.analyze_exam,
        upload=aws_service.upload_exam_image,
        save=analysis_service.save_analysis,
        max_image_bytes=app.config['MAX_IMAGE_BYTES'],
    )


def current_machine():
    registry = current_app.extensions['alia_sessions']
    if not current_user.is_authenticated:
        # anonymous visitors only ever see the login screen; keep nothing for them
        stale = session.get('client_id')
        if stale:
            registry.discard(stale)
        return registry.detached()

    machine, created = registry.get_or_create(client_id())
    if created or machine.session.loading:
        publish_current_user()
    return machine


def _uploaded_image():
    file = request.files.get('image')
    if not file or not file.filename:
        return None
    return ExamImage(filename=file.filename, content_type=file.mimetype or '', data=file.read())


# ============ Screens ============

@main_bp.route('/', methods=['GET'])
def index():
    machine = current_machine()

    marker = request.args.get('payment')
    if marker:
        if machine.consume_payment_marker(marker, get_profile):
            profile = machine.session.profile
            if marker == 'success' and profile is not None and profile.is_premium:
                flash('Pagamento confirmado! Seu plano Premium está ativo.', 'success')
            elif marker == 'success':
                flash('Pagamento recebido. A ativação do plano pode levar alguns instantes.', 'info')
            else:
                flash('Pagamento cancelado.', 'info')
        # Drop the marker so the re-fetch does not repeat on the next render
        return redirect(url_for('main.index'))

    view = screen_view(machine)
    return render_template(view.template, **view.context)


@main_bp.route('/analyze', methods=['POST'])
@login_required
def analyze():
    machine = current_machine()
    form = PatientForm.from_mapping(request.form)
    try:
        machine.submit(form, _uploaded_image())
    except NotAuthenticated:
        return redirect(url_for('auth.login'))
    return redirect(url_for('main.index'))


@main_bp.route('/analysis/new', methods=['POST'])
@login_required
def new_analysis():
    current_machine().new_analysis()
    return redirect(url_for('main.index'))


@main_bp.route('/upgrade', methods=['POST'])
@login_required
def upgrade():
    try:
        current_machine().request_upgrade()
    except NotAuthenticated:
        return redirect(url_for('auth.login'))
    return redirect(url_for('main.index'))


@main_bp.route('/upgrade/back', methods=['POST'])
@login_required
def upgrade_back():
    current_machine().leave_upgrade()
    return redirect(url_for('main.index'))


# ============ Billing ============

@main_bp.route('/upgrade/checkout', methods=['POST'])
@login_required
def upgrade_checkout():
    """Start Stripe checkout and send the browser there"""
    profile = db.session.get(Profile, current_user.id)
    if profile is None:
        flash('Perfil não encontrado.', 'error')
        return redirect(url_for('main.index'))
    try:
        checkout = stripe_service.create_checkout_session(profile)
    except CheckoutError as e:
        flash(f'Falha ao redirecionar para o pagamento: {e.message}', 'error')
        return redirect(url_for('main.index'))
    return redirect(checkout.url, code=303)


@main_bp.route('/create-checkout-session', methods=['POST'])
@csrf.exempt
def create_checkout_session():
    """JSON checkout trigger: no body, session cookie or bearer token"""
    if not current_user.is_authenticated:
        return jsonify({'error': 'Unauthorized'}), 401

    profile = db.session.get(Profile, current_user.id)
    if profile is None:
        return jsonify({'error': 'Profile not found.'}), 404

    try:
        checkout = stripe_service.create_checkout_session(profile)
    except CheckoutError as e:
        return jsonify({'error': e.message}), 500

    return jsonify({'sessionId': checkout.id, 'url': checkout.url}), 200


# ============ Export ============

@main_bp.route('/report/<variant>', methods=['GET'])
@login_required
def export_report(variant):
    if variant != 'text' and variant not in REPORT_VARIANTS:
        abort(404)

    machine = current_machine()
    analysis = machine.current_analysis if machine.screen == Screen.RESULT else None
    if analysis is None:
        flash('Nenhum laudo disponível para exportar.', 'error')
        return redirect(url_for('main.index'))

    try:
        if variant == 'text':
            body = pdf_service.render_text_report(analysis).encode('utf-8')
            filename = pdf_service.text_report_filename(analysis)
            mimetype = 'text/plain; charset=utf-8'
        else:
            report_variant = REPORT_VARIANTS[variant]
            layout = pdf_service.ReportLayout.from_config(current_app.config)
            body = pdf_service.render_report(analysis, report_variant, layout)
            filename = pdf_service.report_filename(analysis, report_variant)
            mimetype = 'application/pdf'
    except Exception:
        current_app.logger.exception('Report export failed (%s, analysis %s)', variant, analysis.id)
        flash(EXPORT_FAILED, 'error')
        return redirect(url_for('main.index'))

    return send_file(io.BytesIO(body), mimetype=mimetype, as_attachment=True, download_name=filename)
