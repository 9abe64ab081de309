"""Text helpers for the USSD screen and outbound notifications."""

from stockalert_ussd.constants import (
    CONTINUE_PREFIX,
    ELLIPSIS,
    END_PREFIX,
    MAX_INPUT_LENGTH,
    MAX_RESPONSE_LENGTH,
)


def truncate_response(text: str, max_length: int = MAX_RESPONSE_LENGTH) -> str:
    """Fit ``text`` into ``max_length`` characters without splitting a word.

    Text that already fits is returned unchanged.  Otherwise the text is cut
    back to the last whitespace that leaves room for ``...``; when the
    first word alone is too long, only the ellipsis is returned.
    """
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return ELLIPSIS[:max_length]

    budget = max_length - len(ELLIPSIS)
    head = text[:budget]
    if not text[budget].isspace():
        # The cut lands inside a word: drop that partial word
        boundary = max(head.rfind(" "), head.rfind("\n"))
        head = head[:boundary] if boundary > 0 else ""
    return head.rstrip() + ELLIPSIS


def extract_user_input(text: str | None, max_length: int = MAX_INPUT_LENGTH) -> str:
    """Return the latest entry from the gateway's cumulative ``*`` history."""
    if not text or not text.strip():
        return ""
    latest = text.split("*")[-1].strip()
    return latest[:max_length]


def format_response(text: str, end_session: bool) -> str:
    """Prefix a screen with ``CON`` or ``END`` for the gateway."""
    prefix = END_PREFIX if end_session else CONTINUE_PREFIX
    return f"{prefix} {text}"


def format_stock_alert_sms(
    hospital_name: str,
    drug_name: str,
    quantity: int,
    urgency_level: str,
    address: str | None = None,
    unit: str = "units",
) -> str:
    """SMS body for an alert with a single drug requirement."""
    message = (
        f"ALERT: {hospital_name} reports low stock of {drug_name}. "
        f"Needed: {quantity} {unit}. Urgency: {urgency_level.upper()}."
    )
    if address:
        message += f" Location: {address}."
    return message + " Please respond ASAP."


def format_multi_drug_alert_sms(
    hospital_name: str,
    drug_count: int,
    overall_urgency: str,
    address: str | None = None,
) -> str:
    """SMS body for an alert listing several drugs."""
    message = (
        f"ALERT: {hospital_name} needs {drug_count} drugs. "
        f"Overall urgency: {overall_urgency.upper()}."
    )
    if address:
        message += f" Location: {address}."
    return message + " Log in to StockAlert for details."


def format_alert_email(
    hospital_name: str,
    drugs: list[dict],
    overall_urgency: str,
    address: str | None = None,
) -> tuple[str, str]:
    """Subject and plain-text body for an e-mail alert."""
    subject = f"[{overall_urgency.upper()}] Stock alert from {hospital_name}"
    lines = [f"{hospital_name} has reported a drug shortage.", ""]
    for drug in drugs:
        lines.append(
            f"- {drug.get('drug_name')}: {drug.get('requested_quantity')} "
            f"{drug.get('unit', 'units')} ({str(drug.get('urgency_level', '')).upper()})"
        )
    if address:
        lines += ["", f"Location: {address}"]
    lines += ["", "Please respond as soon as possible."]
    return subject, "\n".join(lines)
