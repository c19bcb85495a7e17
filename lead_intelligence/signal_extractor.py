"""
Intent signal extraction for buyer chat messages.

A conservative, explainable keyword classifier: every signal is backed by a
trigger phrase found in the message. Precision matters more than recall here
because call and booking signals put a human agent on the phone.
"""

import logging
import re
from typing import Dict, FrozenSet, List, Optional

from .exceptions import SignalExtractionError
from .models import IntentSignal

logger = logging.getLogger(__name__)


class SignalExtractor:
    """
    Maps one free-text message to a set of intent signals.

    Matching is case-insensitive substring search over a fixed phrase table.
    A message may produce several signals at once.
    """

    SIGNAL_PHRASES: Dict[IntentSignal, List[str]] = {
        IntentSignal.CALL_REQUEST: [
            "call me", "give me a call", "phone me", "ring me", "call back",
            "callback", "speak to someone", "speak with someone",
            "speak to an agent", "speak with an agent", "speak to a human",
            "talk to someone", "talk to an agent", "talk to a human",
            "talk to a person", "real person", "human agent",
            "schedule a call", "arrange a call", "book a call", "contact me",
            "reach me on", "reach me at",
        ],
        IntentSignal.BOOKING_INTENT: [
            "book a viewing", "book a visit", "book a unit", "book the unit",
            "book this", "book it", "to book", "booking", "reserve",
            "reservation", "hold the unit", "hold this unit",
            "pay the deposit", "pay a deposit", "put down a deposit",
            "secure the unit", "schedule a viewing", "arrange a viewing",
        ],
        IntentSignal.PLANNING_VISIT: [
            "coming to dubai", "come to dubai", "visit dubai", "visiting dubai",
            "trip to dubai", "fly to dubai", "flying to dubai", "flying in",
            "be in dubai", "landing in dubai", "plan a visit", "planning a visit",
            "planning to visit", "site visit",
        ],
        IntentSignal.PURCHASE_INTENT: [
            "want to buy", "ready to buy", "looking to buy", "plan to buy",
            "planning to buy", "want to purchase", "ready to purchase",
            "ready to invest", "ready to proceed", "make an offer",
            "put in an offer", "buy a property", "buy an apartment",
            "buy a villa",
        ],
        IntentSignal.PROPERTY_INTEREST: [
            "recommend", "which area", "which property", "which properties",
            "best area", "best areas", "what options", "any options",
            "options for", "properties in", "apartments in", "villas in",
            "show me", "off-plan", "off plan", "penthouse", "townhouse",
        ],
        IntentSignal.DISINTEREST: [
            "not interested", "no longer interested", "stop messaging",
            "stop contacting", "unsubscribe", "don't contact me",
            "do not contact me", "remove me", "just browsing",
        ],
        IntentSignal.CONTACT_SHARED: [
            "my number is", "my phone is", "my whatsapp is", "my email is",
        ],
    }

    PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{7,}\d")
    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

    # Digit groups next to a currency are prices ("1 500 000 AED"), not phone numbers
    CURRENCY_WORDS = r"(?:aed|dhs?|dirhams?|usd|eur|gbp|inr|sar|dollars?|pounds?|euros?|rupees?|million|mn)"
    AMOUNT_SUFFIX = re.compile(r"\s*(?:" + CURRENCY_WORDS + r"(?![a-z])|[$£€])", re.IGNORECASE)
    AMOUNT_PREFIX = re.compile(r"(?:(?<![a-z])" + CURRENCY_WORDS + r"|[$£€])\s*$", re.IGNORECASE)

    def __init__(self, custom_phrases: Optional[Dict[IntentSignal, List[str]]] = None):
        """
        Args:
            custom_phrases: Extra trigger phrases per signal, merged into the defaults
        """
        self.phrases: Dict[IntentSignal, List[str]] = {
            signal: [p.lower() for p in phrases]
            for signal, phrases in self.SIGNAL_PHRASES.items()
        }
        if custom_phrases:
            for signal, phrases in custom_phrases.items():
                self.phrases.setdefault(signal, []).extend(p.lower() for p in phrases)

    def extract(self, message: Optional[str]) -> FrozenSet[IntentSignal]:
        """
        Extract intent signals from a message.

        Returns an empty set when nothing matches. Raises SignalExtractionError
        only when the input is not text at all.
        """
        if message is None:
            return frozenset()
        if not isinstance(message, str):
            raise SignalExtractionError(
                f"Expected message text, got {type(message).__name__}"
            )

        text = " ".join(message.lower().split())
        if not text:
            return frozenset()

        signals = set()
        for signal, phrases in self.phrases.items():
            if any(phrase in text for phrase in phrases):
                signals.add(signal)

        if IntentSignal.CONTACT_SHARED not in signals and self._has_contact_details(message):
            signals.add(IntentSignal.CONTACT_SHARED)

        if signals:
            logger.debug(f"Extracted signals: {sorted(s.value for s in signals)}")
        return frozenset(signals)

    def matched_phrases(self, message: str) -> Dict[str, List[str]]:
        """Explain a classification: the trigger phrases found per signal."""
        text = " ".join(message.lower().split())
        found: Dict[str, List[str]] = {}
        for signal, phrases in self.phrases.items():
            hits = [p for p in phrases if p in text]
            if hits:
                found[signal.value] = hits
        return found

    def _has_contact_details(self, message: str) -> bool:
        if self.EMAIL_PATTERN.search(message):
            return True
        return any(self._is_phone_number(message, m) for m in self.PHONE_PATTERN.finditer(message))

    def _is_phone_number(self, message: str, match: re.Match) -> bool:
        if match.group().startswith("+"):
            return True
        before = message[max(0, match.start() - 12):match.start()]
        if self.AMOUNT_PREFIX.search(before):
            return False
        return not self.AMOUNT_SUFFIX.match(message, match.end())


_default_extractor = SignalExtractor()


def extract_signals(message: Optional[str]) -> FrozenSet[IntentSignal]:
    """Extract signals with the default phrase table."""
    return _default_extractor.extract(message)
