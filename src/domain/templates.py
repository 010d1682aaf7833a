"""
Email templates - Render outbox entries into messages.

Templates are keyed by the outbox template name. Payload values are
HTML-escaped before interpolation.
"""

from collections.abc import Callable
from html import escape
from typing import Any

from .exceptions import UnknownTemplate
from .models import Dimension, EmailMessage, OutboxEntry

TEMPLATE_REGISTRATION_CREATED = "registration.created"
TEMPLATE_APPROVAL = "approval"
TEMPLATE_REJECTION = "rejection"

_DIMENSION_LABELS = {
    Dimension.PAYMENT: "payment slip",
    Dimension.PROFILE: "profile information",
    Dimension.TCC: "chamber card (TCC)",
}


def update_template(dimension: Dimension) -> str:
    """Template name for an update request on a dimension, e.g. update-payment."""
    return f"update-{dimension.value}"


def _layout(title: str, body: str) -> str:
    return (
        "<!doctype html><html><body style=\"font-family:sans-serif\">"
        f"<h2>{escape(title)}</h2>{body}</body></html>"
    )


def _greeting(payload: dict[str, Any]) -> str:
    name = payload.get("applicantName") or "applicant"
    return f"<p>Dear {escape(str(name))},</p>"


def _render_created(payload: dict[str, Any]) -> tuple[str, str, str]:
    tracking = escape(str(payload.get("registrationId", "")))
    html = _layout(
        "Registration received",
        _greeting(payload)
        + f"<p>We received your registration. Your tracking code is <b>{tracking}</b>.</p>",
    )
    text = f"We received your registration. Tracking code: {payload.get('registrationId', '')}"
    return "Registration received", html, text


def _render_update(dimension: Dimension) -> Callable[[dict[str, Any]], tuple[str, str, str]]:
    label = _DIMENSION_LABELS[dimension]

    def render(payload: dict[str, Any]) -> tuple[str, str, str]:
        cta = str(payload.get("ctaUrl", ""))
        notes = payload.get("notes") or ""
        body = _greeting(payload) + f"<p>Please update your {escape(label)}.</p>"
        if notes:
            body += f"<blockquote>{escape(str(notes))}</blockquote>"
        body += f'<p><a href="{escape(cta, quote=True)}">Update my registration</a></p>'
        text = f"Please update your {label}. {notes}\n{cta}".strip()
        return f"Action required: update your {label}", _layout("Update requested", body), text

    return render


def _render_approval(payload: dict[str, Any]) -> tuple[str, str, str]:
    body = _greeting(payload) + "<p>Your registration has been approved.</p>"
    badge = payload.get("badgeUrl")
    if badge:
        body += f'<p><img src="{escape(str(badge), quote=True)}" alt="badge"></p>'
    text = "Your registration has been approved."
    if badge:
        text += f"\nBadge: {badge}"
    return "Your registration is approved", _layout("Approved", body), text


def _render_rejection(payload: dict[str, Any]) -> tuple[str, str, str]:
    reason = payload.get("reason")
    body = _greeting(payload) + "<p>We are unable to approve your registration.</p>"
    if reason:
        body += f"<p>{escape(str(reason))}</p>"
    text = "We are unable to approve your registration."
    if reason:
        text += f"\n{reason}"
    return "Registration update", _layout("Registration rejected", body), text


_RENDERERS: dict[str, Callable[[dict[str, Any]], tuple[str, str, str]]] = {
    TEMPLATE_REGISTRATION_CREATED: _render_created,
    TEMPLATE_APPROVAL: _render_approval,
    TEMPLATE_REJECTION: _render_rejection,
    **{update_template(dimension): _render_update(dimension) for dimension in Dimension},
}


def render_email(entry: OutboxEntry, subject_prefix: str = "") -> EmailMessage:
    """
    Render an outbox entry.

    Raises:
        UnknownTemplate: If the entry's template has no renderer
    """
    renderer = _RENDERERS.get(entry.template)
    if renderer is None:
        raise UnknownTemplate(entry.template)
    subject, html, text = renderer(entry.payload or {})
    if subject_prefix:
        subject = f"{subject_prefix} {subject}"
    return EmailMessage(
        to=entry.to_email,
        subject=subject,
        html=html,
        text=text,
        tags={"outbox_id": entry.id, "template": entry.template},
    )
