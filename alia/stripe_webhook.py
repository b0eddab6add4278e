"""
Stripe webhook handler

Keeps profiles.plan in sync with the customer's subscription. Every handled
event ends in a single commit of the plan fields, or in a rollback.
"""
from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
import stripe

from alia import db
from alia.domain import Plan
from alia.errors import WebhookProcessingError
from alia.models import Profile
from alia.services.stripe_service import configure_stripe, plan_is_active

webhook_bp = Blueprint('webhook', __name__)


@webhook_bp.route('/stripe-webhook', methods=['POST'])
def stripe_webhook():
    """Handle Stripe webhook events"""
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')
    webhook_secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')

    if not sig_header or not webhook_secret:
        current_app.logger.warning('Stripe webhook rejected: missing signature or secret')
        return jsonify({'error': 'Missing signature'}), 400

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except ValueError:
        current_app.logger.warning('Stripe webhook rejected: invalid payload')
        return jsonify({'error': 'Invalid payload'}), 400
    except stripe.SignatureVerificationError:
        current_app.logger.warning('Stripe webhook rejected: invalid signature')
        return jsonify({'error': 'Invalid signature'}), 400

    event_type = event['type']
    data = event['data']['object']

    try:
        if event_type == 'checkout.session.completed':
            handle_checkout_completed(data)

        elif event_type in ('customer.subscription.updated', 'customer.subscription.deleted'):
            handle_subscription_changed(data)

        else:
            return jsonify({'received': True, 'ignored': event_type}), 200

        return jsonify({'received': True}), 200

    except WebhookProcessingError as e:
        db.session.rollback()
        current_app.logger.warning('Webhook %s not applied: %s', event['id'], e.message)
        return jsonify({'error': f'Webhook Error: {e.message}'}), 400

    except (stripe.StripeError, SQLAlchemyError) as e:
        db.session.rollback()
        current_app.logger.exception('Webhook %s failed', event['id'])
        return jsonify({'error': f'Webhook Error: {type(e).__name__}'}), 500


def handle_checkout_completed(session):
    """Checkout finished: read the subscription it created and update the plan"""
    subscription_id = session.get('subscription')
    if not subscription_id:
        raise WebhookProcessingError('Checkout session has no subscription')

    configure_stripe()
    subscription = stripe.Subscription.retrieve(subscription_id)
    profile = find_profile(session.get('customer'))
    apply_subscription(profile, subscription)


def handle_subscription_changed(subscription):
    """Subscription updated or deleted"""
    profile = find_profile(subscription.get('customer'))
    apply_subscription(profile, subscription)


def find_profile(customer_id):
    if not customer_id:
        raise WebhookProcessingError('Event has no customer')
    profile = Profile.query.filter_by(stripe_customer_id=customer_id).first()
    if profile is None:
        raise WebhookProcessingError(f'Profile not found for customer {customer_id}')
    return profile


def apply_subscription(profile, subscription):
    """Single write of the plan flag and Stripe linkage"""
    active = plan_is_active(subscription['status'])
    profile.plan = Plan.PREMIUM if active else Plan.FREE
    profile.stripe_plan_active = active
    profile.stripe_subscription_id = subscription['id']
    db.session.commit()
    current_app.logger.info(
        'Profile %s plan set to %s (subscription %s is %s)',
        profile.id, profile.plan.value, subscription['id'], subscription['status'],
    )
