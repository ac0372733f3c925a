"""
Configuration for merchant normalization and resolution.

The strip rules and the known-merchant table are immutable module-level
data; they are applied in the order listed.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Pattern, Tuple


@dataclass(frozen=True)
class StripRule:
    """One noise pattern removed from an uppercased raw description."""
    name: str
    pattern: Pattern[str]
    replacement: str = ""


STRIP_RULES: Tuple[StripRule, ...] = (
    StripRule("processor_prefix", re.compile(r"^(?:SQ\s*\*|TST\s*\*|SP\s+|PAYPAL\s*\*)")),
    StripRule("asterisks", re.compile(r"\s*\*+\s*"), " "),
    StripRule("phone_number", re.compile(r"\s+\(?\d{3}\)?[-.\s]?\d{3}-\d{4}(?=\s|$)")),
    StripRule("date_token", re.compile(r"\s+\d{1,2}/\d{1,2}(?:/\d{2,4})?(?=\s|$)")),
    StripRule("store_number", re.compile(r"\s*#\s*\d+")),
    StripRule("reference_number", re.compile(r"\s*-\s*\d{4,}")),
    StripRule("domain_suffix", re.compile(r"\.(?:COM|NET|ORG|IO)(?=[\s/]|$)")),
    StripRule("trailing_state", re.compile(r"\s+[A-Z]{2}$")),
    StripRule(
        "trailing_words",
        re.compile(r"(?:\s+(?:PURCHASE|PAYMENT|RECURRING|SUBSCRIPTION|AUTOPAY|BILL\s+PAY(?:MENT)?))+\s*$"),
    ),
    StripRule("legal_suffix", re.compile(r"\s+(?:LLC|INC|CORP|CO|LTD)\.?$")),
)


# Keys are lowercase alphanumeric fragments; the first key contained in the
# simplified name wins, so more specific keys must precede generic ones.
KNOWN_MERCHANTS: Mapping[str, str] = MappingProxyType({
    'netflix': 'Netflix',
    'spotify': 'Spotify',
    'apple': 'Apple',
    'amazon': 'Amazon',
    'hulu': 'Hulu',
    'disney': 'Disney+',
    'disneyplus': 'Disney+',
    'hbo': 'HBO Max',
    'youtube': 'YouTube',
    'google': 'Google',
    'microsoft': 'Microsoft',
    'adobe': 'Adobe',
    'dropbox': 'Dropbox',
    'github': 'GitHub',
    'slack': 'Slack',
    'zoom': 'Zoom',
    'openai': 'OpenAI',
    'chatgpt': 'OpenAI',
    'notion': 'Notion',
    'figma': 'Figma',
    'canva': 'Canva',
    'grammarly': 'Grammarly',
    'nordvpn': 'NordVPN',
    'expressvpn': 'ExpressVPN',
    '1password': '1Password',
    'lastpass': 'LastPass',
    'bitwarden': 'Bitwarden',
    'audible': 'Audible',
    'kindle': 'Amazon Kindle',
    'prime': 'Amazon Prime',
    'paramount': 'Paramount+',
    'peacock': 'Peacock',
    'att': 'AT&T',
    'verizon': 'Verizon',
    'tmobile': 'T-Mobile',
    'comcast': 'Comcast/Xfinity',
    'xfinity': 'Comcast/Xfinity',
    'spectrum': 'Spectrum',
    'cox': 'Cox',
})


@dataclass(frozen=True)
class ResolverConfig:
    """Configuration for merchant entity resolution."""

    similarity_threshold: float = 0.80
    """An existing merchant is reused when similarity is strictly above this."""


DEFAULT_RESOLVER_CONFIG = ResolverConfig()
