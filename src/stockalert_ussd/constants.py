"""USSD constants shared across the SDK.

Values mirror the Africa's Talking USSD contract (response prefixes, the
182-character screen limit) and the Kenyan numbering plan.  Tunable
numbers (timeouts, reward amount) have defaults here but are injected at
runtime through :class:`stockalert_ussd.config.UssdSettings`.
"""

import re

# --- Protocol ---
CONTINUE_PREFIX = "CON"
END_PREFIX = "END"
MAX_RESPONSE_LENGTH = 182
MAX_INPUT_LENGTH = 50
ELLIPSIS = "..."
SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
DEFAULT_SERVICE_CODE = "*789*12345#"

# --- Session timing ---
SESSION_TIMEOUT_SECONDS = 180
EXPIRY_GRACE_SECONDS = 30

# --- Phone numbers ---
COUNTRY_CODE = "254"
PHONE_NUMBER_PATTERN = re.compile(r"^\+254[17]\d{8}$")

# --- Carriers ---
# Network code -> carrier.  Unknown or missing codes fall back to the default.
NETWORK_CODES: dict[str, tuple[str, ...]] = {
    "safaricom": ("63902", "63903"),
    "airtel": ("63907",),
    "orange": ("63905",),
}
DEFAULT_PROVIDER = "safaricom"
DEFAULT_NETWORK_CODE = "63902"

# Carrier-specific formatting: how many list items fit on one screen.
PROVIDER_MAX_MENU_ITEMS: dict[str, int] = {
    "safaricom": 8,
    "airtel": 6,
    "orange": 7,
}

# --- Alerts ---
# Menu display order; selection "1" is low, "4" is critical.
URGENCY_LEVELS: tuple[str, ...] = ("low", "medium", "high", "critical")
RECENT_ALERTS_LIMIT = 3
DEFAULT_DRUG_UNIT = "units"
DEFAULT_NOTIFICATION_METHODS: tuple[str, ...] = ("sms",)

# Used when the drugs table is empty: (category, name, unit)
DEFAULT_DRUG_CATALOGUE: tuple[tuple[str, str, str], ...] = (
    ("Analgesics", "Paracetamol", "tablets"),
    ("Analgesics", "Ibuprofen", "tablets"),
    ("Antibiotics", "Amoxicillin", "capsules"),
    ("Antibiotics", "Ciprofloxacin", "tablets"),
    ("Antimalarials", "Artemether-Lumefantrine", "tablets"),
    ("Diabetes", "Insulin", "vials"),
    ("Diabetes", "Metformin", "tablets"),
    ("Emergency", "Adrenaline", "ampoules"),
    ("Emergency", "Oral Rehydration Salts", "sachets"),
)

# --- Registration ---
MIN_REGISTRATION_FIELD_LENGTH = 2

# --- Eligibility ---
ESTIMATED_UNIT_PRICE = 100.0
EARTH_RADIUS_KM = 6371.0
WEEKDAYS: tuple[str, ...] = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)

# --- Rewards ---
DEFAULT_REWARD_AMOUNT = 50
DEFAULT_CURRENCY = "KES"
