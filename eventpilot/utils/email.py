from flask import current_app, render_template
from flask_mail import Message, Mail
from threading import Thread
from datetime import datetime

mail = Mail()


def send_async_email(app, msg):
    with app.app_context():
        try:
            mail.send(msg)
        except Exception as e:
            app.logger.error(f"Failed to send email: {e}")


def send_registration_confirmation_email(
    to_email, participant_name, event, registration, amount=None, receipt_url=None
):
    """Send the registration confirmation to the participant"""
    app = current_app._get_current_object()
    subject = f"You're registered for {event.name}"

    # If in testing mode, log the email instead of sending it
    if app.testing:
        app.logger.info("--- MOCK REGISTRATION EMAIL ---")
        app.logger.info(f"To: {to_email}")
        app.logger.info(f"Subject: {subject}")
        app.logger.info(f"Registration: {registration.id}")
        app.logger.info(f"Amount: {amount if amount is not None else '0.00'}")
        if receipt_url:
            app.logger.info(f"Receipt: {receipt_url}")
        app.logger.info("--- END MOCK REGISTRATION EMAIL ---")
        return

    msg = Message(
        subject,
        sender=(event.name, app.config.get("MAIL_USERNAME")),
        recipients=[to_email],
    )

    msg.html = render_template(
        "email/registration_confirmation.html",
        participant_name=participant_name,
        event=event,
        registration=registration,
        amount=amount,
        receipt_url=receipt_url,
        event_url=f"{app.config.get('CLIENT_URL')}/events/{event.id}",
        current_year=datetime.utcnow().year,
    )

    Thread(target=send_async_email, args=(app, msg)).start()
