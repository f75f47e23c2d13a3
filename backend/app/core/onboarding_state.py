"""Onboarding State — pure dataclass and stage guards for the group-creation wizard.

Invariants:
    - stage is 1..5; stage 5 is terminal (no backward navigation)
    - Forward guards are PURE: return a reason string on violation, None on success
    - resolved_frequency() is 0 when the custom value is not a positive integer
    - Backward navigation is unrestricted except from stage 5

Design Decisions:
    - Guards as module functions keyed by stage
    - total_amount kept as Decimal: amounts are money, not floats
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from app.core.domain_types import CUSTOM_FREQUENCY, Currency, OnboardingStage


@dataclass
class OnboardingState:
    """Wizard state — mutated only through the wizard's guarded transitions."""

    stage: OnboardingStage = OnboardingStage.BASICS

    # === Stage 1: basics ===
    group_name: str = ""
    currency: Currency = Currency.BS
    total_amount: str = ""

    # === Stage 2: frequency / yield ===
    frequency_days: int = 30
    custom_days: str = ""
    yield_enabled: bool = False

    # === Stage 3 & 4: phone verification ===
    phone: str = ""
    verification_code: str | None = None
    phone_verified: bool = False

    # --- Computed properties ---------------------------------------------------

    @property
    def amount(self) -> Decimal:
        try:
            value = Decimal(self.total_amount.strip() or "0")
        except InvalidOperation:
            return Decimal(0)
        return value if value.is_finite() else Decimal(0)

    def resolved_frequency(self) -> int:
        if self.frequency_days == CUSTOM_FREQUENCY:
            try:
                custom = int(self.custom_days.strip() or "0")
            except ValueError:
                return 0
            return custom if custom > 0 else 0
        return self.frequency_days

    def group_payload(self) -> dict:
        """Body for POST /api/onboarding — amount sent under the currency's key."""
        amount_key = "amountBs" if self.currency == Currency.BS else "amountUsdc"
        return {
            "phoneNumber": self.phone.strip(),
            "groupName": self.group_name.strip(),
            amount_key: float(self.amount),
            "frequencyDays": self.resolved_frequency(),
            "yieldEnabled": self.yield_enabled,
            "verificationCode": (self.verification_code or "").strip(),
        }


# --- Stage guards ------------------------------------------------------------

def check_basics(state: OnboardingState) -> str | None:
    if not state.group_name.strip():
        return "Group name is required."
    if state.amount <= 0:
        return "Total amount must be greater than zero."
    return None


def check_frequency(state: OnboardingState) -> str | None:
    if state.resolved_frequency() <= 0:
        return "Frequency must be a positive number of days."
    return None


def check_code_requested(state: OnboardingState) -> str | None:
    if not (state.verification_code or "").strip():
        return "Request a verification code first."
    return None


def check_phone_verified(state: OnboardingState) -> str | None:
    if not state.phone_verified:
        return "WhatsApp number not verified yet."
    return None


_GUARDS = {
    OnboardingStage.BASICS: check_basics,
    OnboardingStage.FREQUENCY: check_frequency,
    OnboardingStage.PHONE_REQUEST: check_code_requested,
    OnboardingStage.CONFIRMATION: check_phone_verified,
}


def check_can_advance(state: OnboardingState) -> str | None:
    """Forward guard for the current stage. None when advancing is allowed."""
    if state.stage == OnboardingStage.DONE:
        return "Onboarding already finished."
    return _GUARDS[state.stage](state)


def can_go_back(state: OnboardingState) -> bool:
    return OnboardingStage.BASICS < state.stage < OnboardingStage.DONE
