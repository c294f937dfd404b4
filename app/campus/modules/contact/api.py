from flask import Blueprint

from app.campus.modules.contact.public import process_submission
from app.campus.web import json_ok, request_payload

bp = Blueprint("contact_api", __name__)


@bp.post("/contact")
def contact_submit():
    """
    Same pipeline as the HTML form. Spam gets the same success body as a real
    message and never triggers email.
    """
    sub, report = process_submission(request_payload())
    body = json_ok(message="Message received successfully", submissionId=sub.id)
    if report is not None:
        body["emailStatus"] = {
            "confirmationSent": report["user_email"],
            "notificationsSent": report["admin_emails"],
            "totalNotifications": report["total_admin_emails"],
            "errors": report["errors"] or None,
        }
    return body
