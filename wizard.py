"""Registration wizard state machine.

The wizard is a plain value: every operation takes a :class:`WizardState` and
returns a new one. Nothing here touches Flask; ``wizard_views`` stores the
state in the session and renders it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from api_client import SUBMIT_FALLBACK_MESSAGE, MailRelayClient, RegistrationClient, SubmissionError
from settings import (
    MAIL_RELAY_SUBJECT,
    REGISTRATION_VARIANT,
    VARIANT_FIELDS,
    WORKSHOPS,
    WORKSHOPS_SEPARATOR,
)

log = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"\S+@\S+\.\S+")

TOTAL_STEPS = 3


class Step(IntEnum):
    INTRO = 1
    PERSONAL_INFO = 2
    WORKSHOPS = 3
    CONFIRMATION = 4


FIELD_LABELS = {
    "nom": "Nom",
    "prenom": "Prénom",
    "email": "Email",
    "telephone": "Téléphone",
    "poste": "Poste occupé",
    "startup": "Nom de la startup",
    "pays": "Pays",
    "adresse": "Adresse",
}

REQUIRED_MESSAGES = {
    "nom": "Le nom est requis",
    "prenom": "Le prénom est requis",
    "email": "L'email est requis",
    "telephone": "Le téléphone est requis",
    "poste": "Le poste est requis",
    "startup": "Le nom de la startup est requis",
    "pays": "Le pays est requis",
    "adresse": "L'adresse est requise",
}
INVALID_EMAIL_MESSAGE = "Email invalide"
NO_WORKSHOP_MESSAGE = "Veuillez sélectionner au moins un atelier"


@dataclass(frozen=True)
class Draft:
    nom: str = ""
    prenom: str = ""
    email: str = ""
    telephone: str = ""
    poste: str = ""
    startup: str = ""
    pays: str = ""
    adresse: str = ""
    ateliers: Tuple[str, ...] = ()

    @property
    def display_name(self) -> str:
        return f"{self.prenom.strip()} {self.nom.strip()}".strip()


@dataclass(frozen=True)
class WizardState:
    step: int = Step.INTRO
    draft: Draft = field(default_factory=Draft)
    errors: Dict[str, str] = field(default_factory=dict)
    submitting: bool = False
    record: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["step"] = int(self.step)
        data["draft"]["ateliers"] = list(self.draft.ateliers)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "WizardState":
        if not data:
            return cls()
        raw_draft = dict(data.get("draft") or {})
        raw_draft["ateliers"] = tuple(raw_draft.get("ateliers") or ())
        known = {k: v for k, v in raw_draft.items() if k in Draft.__dataclass_fields__}
        return cls(
            step=_clamp(int(data.get("step") or Step.INTRO)),
            draft=Draft(**known),
            errors=dict(data.get("errors") or {}),
            submitting=bool(data.get("submitting")),
            record=data.get("record"),
        )


def _clamp(step: int) -> int:
    return max(Step.INTRO, min(step, Step.CONFIRMATION))


def required_fields(variant: str | None = None) -> Tuple[str, ...]:
    return VARIANT_FIELDS[variant or REGISTRATION_VARIANT]


def progress_percent(step: int) -> int:
    return round((step - 1) / TOTAL_STEPS * 100)


# ───────────────────────────────────────────────────────────────
# Validation (pure)
# ───────────────────────────────────────────────────────────────
def validate_personal_info(draft: Draft, variant: str | None = None) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for name in required_fields(variant):
        value = (getattr(draft, name) or "").strip()
        if not value:
            errors[name] = REQUIRED_MESSAGES[name]
        elif name == "email" and not EMAIL_RE.search(value):
            errors[name] = INVALID_EMAIL_MESSAGE
    return errors


def validate_workshops(draft: Draft) -> Dict[str, str]:
    if not draft.ateliers:
        return {"ateliers": NO_WORKSHOP_MESSAGE}
    return {}


# ───────────────────────────────────────────────────────────────
# Draft editing
# ───────────────────────────────────────────────────────────────
def update_field(state: WizardState, name: str, value: str) -> WizardState:
    if name not in FIELD_LABELS:
        raise KeyError(name)
    errors = dict(state.errors)
    if errors.get(name):
        errors.pop(name)
    return replace(state, draft=replace(state.draft, **{name: value or ""}), errors=errors)


def select_workshops(state: WizardState, labels: Iterable[str]) -> WizardState:
    """Replace the selection; unknown labels are dropped, offering order kept."""
    wanted = set(labels)
    selection = tuple(w for w in WORKSHOPS if w in wanted)
    errors = {k: v for k, v in state.errors.items() if k != "ateliers"}
    return replace(state, draft=replace(state.draft, ateliers=selection), errors=errors)


# ───────────────────────────────────────────────────────────────
# Transitions
# ───────────────────────────────────────────────────────────────
def next_step(state: WizardState, variant: str | None = None) -> WizardState:
    if state.step == Step.CONFIRMATION:
        return state
    if state.step == Step.PERSONAL_INFO:
        errors = validate_personal_info(state.draft, variant)
        if errors:
            return replace(state, errors=errors)
        state = replace(state, errors={})
    elif state.step == Step.WORKSHOPS:
        # leaving the workshops step requires a successful submit()
        return replace(state, errors=validate_workshops(state.draft))
    return replace(state, step=_clamp(state.step + 1))


def previous_step(state: WizardState) -> WizardState:
    if state.submitting or state.step not in (Step.PERSONAL_INFO, Step.WORKSHOPS):
        return state
    return replace(state, step=_clamp(state.step - 1), errors={})


# ───────────────────────────────────────────────────────────────
# Submission
# ───────────────────────────────────────────────────────────────
def registration_payload(draft: Draft, variant: str | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {name: getattr(draft, name).strip() for name in required_fields(variant)}
    payload["ateliers"] = list(draft.ateliers)
    return payload


def relay_payload(draft: Draft, variant: str | None = None) -> Dict[str, Any]:
    payload = registration_payload(draft, variant)
    payload["ateliers"] = WORKSHOPS_SEPARATOR.join(draft.ateliers)
    payload["_subject"] = MAIL_RELAY_SUBJECT
    payload["_replyto"] = payload.get("email", "")
    return payload


def _relay_best_effort(relay: MailRelayClient, payload: Dict[str, Any]) -> None:
    try:
        if not relay.relay(payload):
            log.warning("Mail relay did not accept registration for %s", payload.get("email"))
    except Exception:
        log.exception("Mail relay failed (non-blocking)")


def submit(
    state: WizardState,
    client: RegistrationClient,
    relay: MailRelayClient | None = None,
    variant: str | None = None,
) -> WizardState:
    """Persist the draft through the registration endpoint, then relay (best effort).

    Stays on the workshops step with ``errors["form"]`` set when the endpoint
    rejects the draft. Relay failures never block the confirmation step.
    """
    if state.submitting or state.step != Step.WORKSHOPS:
        return state

    errors = validate_workshops(state.draft)
    if errors:
        return replace(state, errors=errors)

    state = replace(state, submitting=True, errors={})
    try:
        record = client.submit(registration_payload(state.draft, variant))
        if relay is not None:
            _relay_best_effort(relay, relay_payload(state.draft, variant))
        state = replace(state, step=Step.CONFIRMATION, record=record)
    except SubmissionError as exc:
        state = replace(state, errors={"form": exc.details or SUBMIT_FALLBACK_MESSAGE})
    finally:
        state = replace(state, submitting=False)
    return state


def confirmation_summary(state: WizardState, variant: str | None = None) -> List[Tuple[str, str]]:
    """Label/value pairs shown on the confirmation step, straight from the draft."""
    draft = state.draft
    rows = [("Nom", draft.display_name), ("Email", draft.email.strip())]
    for name in required_fields(variant):
        if name in ("nom", "prenom", "email", "telephone"):
            continue
        rows.append((FIELD_LABELS[name], getattr(draft, name).strip()))
    rows.append(("Ateliers", WORKSHOPS_SEPARATOR.join(draft.ateliers)))
    return rows
