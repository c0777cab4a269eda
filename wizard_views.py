# wizard_views.py (Blueprint: wizard)
# Server-rendered registration wizard. The wizard state lives in the Flask
# session; the submission goes through the public registration endpoint.

import logging
import secrets
import threading
from typing import Any, Dict

from flask import Blueprint, current_app, redirect, render_template, request, session, url_for

import wizard
from api_client import MailRelayClient, RegistrationClient
from countries import get_countries
from settings import (
    BRAND_LOGO_URL,
    EVENT_NAME,
    EVENT_TAGLINE,
    MAIL_RELAY_ENDPOINT,
    PARTNERS_LOGO_URL,
    REGISTRATION_API_URL,
    REGISTRATION_VARIANT,
    WORKSHOPS,
)

wizard_bp = Blueprint("wizard", __name__, template_folder="templates")

logger = logging.getLogger(__name__)

SESSION_KEY = "wizard_state"

# wizard ids with a submission running in this process
_IN_FLIGHT: set[str] = set()
_IN_FLIGHT_LOCK = threading.Lock()


# ───────────────────────────────────────────────────────────────
# Helpers
# ───────────────────────────────────────────────────────────────
def _load_state() -> wizard.WizardState:
    return wizard.WizardState.from_dict(session.get(SESSION_KEY))


def _save_state(state: wizard.WizardState) -> None:
    # the id must already be in the cookie when step 3 is rendered
    _wizard_id()
    session[SESSION_KEY] = state.to_dict()


def _wizard_id() -> str:
    wid = session.get("wizard_id")
    if not wid:
        wid = secrets.token_hex(8)
        session["wizard_id"] = wid
    return wid


def _apply_form(state: wizard.WizardState) -> wizard.WizardState:
    """Copy whatever the current step posted into the draft."""
    if state.step == wizard.Step.PERSONAL_INFO:
        for name in wizard.required_fields():
            if name not in request.form:
                continue
            value = request.form.get(name, "")
            if value != getattr(state.draft, name):
                state = wizard.update_field(state, name, value)
    elif state.step == wizard.Step.WORKSHOPS:
        state = wizard.select_workshops(state, request.form.getlist("ateliers"))
    return state


def _registration_client() -> RegistrationClient:
    if REGISTRATION_API_URL:
        return RegistrationClient(REGISTRATION_API_URL)
    # handler mounted on this app: dispatch in-process, no second worker needed
    url = url_for("inscriptions.create_inscription", _external=True)
    return RegistrationClient.in_process(current_app._get_current_object(), url)


def _relay_client() -> MailRelayClient | None:
    if not MAIL_RELAY_ENDPOINT:
        return None
    return MailRelayClient(MAIL_RELAY_ENDPOINT)


def _page_context(state: wizard.WizardState) -> Dict[str, Any]:
    context: Dict[str, Any] = dict(
        event_name=EVENT_NAME,
        event_tagline=EVENT_TAGLINE,
        brand_logo_url=BRAND_LOGO_URL,
        partners_logo_url=PARTNERS_LOGO_URL,
        state=state,
        step=int(state.step),
        total_steps=wizard.TOTAL_STEPS,
        progress=wizard.progress_percent(state.step),
        draft=state.draft,
        errors=state.errors,
        fields=[(name, wizard.FIELD_LABELS[name]) for name in wizard.required_fields()],
        workshops=WORKSHOPS,
        variant=REGISTRATION_VARIANT,
        countries=[],
        summary=[],
    )
    if state.step == wizard.Step.PERSONAL_INFO and "pays" in wizard.required_fields():
        context["countries"] = get_countries()
    if state.step == wizard.Step.CONFIRMATION:
        context["summary"] = wizard.confirmation_summary(state)
    return context


# ───────────────────────────────────────────────────────────────
# Views
# ───────────────────────────────────────────────────────────────
@wizard_bp.get("/")
def page():
    state = _load_state()
    return render_template("wizard.html", **_page_context(state))


@wizard_bp.post("/next")
def next_step():
    state = _apply_form(_load_state())
    _save_state(wizard.next_step(state))
    return redirect(url_for("wizard.page"))


@wizard_bp.post("/back")
def back():
    state = _load_state()
    if not state.submitting:
        state = _apply_form(state)
    _save_state(wizard.previous_step(state))
    return redirect(url_for("wizard.page"))


@wizard_bp.post("/submit")
def submit():
    state = _apply_form(_load_state())
    wid = _wizard_id()

    with _IN_FLIGHT_LOCK:
        if wid in _IN_FLIGHT:
            logger.info("Duplicate submission ignored for wizard %s", wid)
            return redirect(url_for("wizard.page"))
        _IN_FLIGHT.add(wid)
    try:
        state = wizard.submit(state, _registration_client(), _relay_client())
    finally:
        with _IN_FLIGHT_LOCK:
            _IN_FLIGHT.discard(wid)

    _save_state(state)
    return redirect(url_for("wizard.page"))


@wizard_bp.post("/restart")
def restart():
    session.pop(SESSION_KEY, None)
    session.pop("wizard_id", None)
    return redirect(url_for("wizard.page"))
