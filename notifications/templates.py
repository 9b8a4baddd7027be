"""
notifications/templates.py -- Email content per notification job kind.

Every value interpolated into HTML goes through html.escape: the rejection
reason is free text typed by an admin and is echoed into the applicant's
mailbox.
"""

from __future__ import annotations

import html
from dataclasses import dataclass

SUPPLIER_APPROVED = "supplier_approved"
SUPPLIER_REJECTED = "supplier_rejected"


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


def render(kind: str, payload: dict) -> EmailMessage:
    """Build the email for a job. Raises KeyError for an unknown kind or a missing field."""
    return _RENDERERS[kind](payload)


def _approved(payload: dict) -> EmailMessage:
    return EmailMessage(
        to=payload["email"],
        subject="Your Supplier Application Has Been Approved!",
        html="<p>Congratulations! Your application to become a supplier has been approved.</p>",
    )


def _rejected(payload: dict) -> EmailMessage:
    reason = html.escape(payload["reason"])
    return EmailMessage(
        to=payload["email"],
        subject="Your Supplier Application Has Been Rejected.",
        html=(
            "<p>We're sorry, but your application has been rejected.</p>"
            f"<p><strong>Reason:</strong><br />{reason}</p>"
        ),
    )


_RENDERERS = {
    SUPPLIER_APPROVED: _approved,
    SUPPLIER_REJECTED: _rejected,
}
