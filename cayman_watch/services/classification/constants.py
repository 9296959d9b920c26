"""Keyword vocabularies for the heuristic prefilter and fallback classifier."""

from typing import Dict, Tuple

from cayman_watch.models.classification import Signal

CAYMAN_KEYWORDS: Tuple[str, ...] = (
    "Cayman Islands",
    "Grand Cayman",
    "CIMA",
    "Cayman-registered",
    "Cayman-domiciled",
    "Segregated Portfolio Company",
    "SPC",
    "Exempted Company",
    "Limited Duration Company",
)

# Registered office providers operating in Cayman
RO_PROVIDERS: Tuple[str, ...] = (
    "Maples",
    "Walkers",
    "Ogier",
    "Harneys",
    "Conyers",
    "Mourant",
    "Appleby",
    "Intertrust",
    "Vistra",
    "Trident",
    "Estera",
    "Alter Domus",
)

# Matched against lowercased text, so every keyword is lowercase.
SIGNAL_KEYWORDS: Dict[Signal, Tuple[str, ...]] = {
    Signal.FINANCIAL_DECLINE: (
        "bankrupt",
        "insolvency",
        "liquidation",
        "financial distress",
        "debt default",
        "asset decline",
    ),
    Signal.FRAUD: (
        "fraud",
        "fraudulent",
        "embezzlement",
        "misappropriation",
        "corruption",
        "ponzi",
    ),
    Signal.MISSTATED_FINANCIALS: (
        "accounting irregularities",
        "restatement",
        "audit",
        "financial misstatement",
        "cooking the books",
    ),
    Signal.SHAREHOLDER_DISPUTE: (
        "shareholder lawsuit",
        "derivative action",
        "oppression",
        "governance conflict",
    ),
    Signal.DIRECTOR_DUTIES: (
        "breach of fiduciary duty",
        "director liability",
        "wrongful trading",
        "governance failure",
    ),
    Signal.REGULATORY_INVESTIGATION: (
        "sec investigation",
        "regulatory enforcement",
        "doj",
        "fca",
        "sanctions",
        "enforcement action",
    ),
}

HIGH_RISK_SIGNALS: Tuple[Signal, ...] = (Signal.FRAUD, Signal.REGULATORY_INVESTIGATION)

HEURISTIC_CONFIDENCE_CAP = 0.9
DEGRADED_CONFIDENCE_CAP = 0.6
MAX_BASIC_ENTITIES = 10
