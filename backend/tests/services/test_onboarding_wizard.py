"""Onboarding Wizard — guarded navigation, code request, polling and group creation.

Invariants:
    - advance() refuses to leave a stage whose guard fails
    - Entering stage 4 starts exactly one poll; leaving it cancels the poll
    - Poll errors are retried; the poll gives up after the configured timeout
    - create_group() failure stays at stage 4; success moves to 5 and redirects
    - Form fields change only at their own stage; stage 4 data is frozen
"""

import asyncio

import pytest

from app.core.domain_types import Currency, OnboardingStage
from app.core.errors import (
    CodeRequestFailedError,
    GroupCreationFailedError,
    InvalidStageTransitionError,
    StageGuardFailedError,
    VerificationTimeoutError,
)
from app.core.verification_registry import VerificationRecord, normalize_phone
from app.services.onboarding_wizard import OnboardingWizard
from tests.services.fakes import FakeOnboardingService, FakeStatusSource


def _wizard(status_source=None, **kwargs) -> OnboardingWizard:
    params = {
        "poll_interval_seconds": 0.01,
        "poll_timeout_seconds": 1.0,
        "redirect_delay_seconds": 0.01,
        "whatsapp_agent_number": "59170000000",
    }
    params.update(kwargs)
    return OnboardingWizard(
        FakeOnboardingService(),
        status_source or FakeStatusSource(verify_after=2),
        **params,
    )


async def _to_confirmation(wizard: OnboardingWizard) -> None:
    wizard.set_basics("Tanda Familiar", Currency.BS, "1500")
    wizard.advance()
    wizard.set_frequency(30, yield_enabled=True)
    wizard.advance()
    wizard.set_phone("+591 77777777")
    await wizard.request_code()
    wizard.advance()


# ─── Navigation guards ─────────────────────────────────────────

async def test_advance_blocked_without_basics():
    wizard = _wizard()
    with pytest.raises(StageGuardFailedError):
        wizard.advance()
    assert wizard.stage == OnboardingStage.BASICS
    assert wizard.message == "Group name is required."


async def test_advance_blocked_without_code():
    wizard = _wizard()
    wizard.set_basics("Tanda", Currency.USDC, "100")
    wizard.advance()
    wizard.advance()
    wizard.set_phone("+59177777777")
    with pytest.raises(StageGuardFailedError):
        wizard.advance()
    assert wizard.stage == OnboardingStage.PHONE_REQUEST


async def test_back_not_allowed_from_first_stage():
    with pytest.raises(InvalidStageTransitionError):
        _wizard().back()


async def test_request_code_only_at_stage_three():
    with pytest.raises(InvalidStageTransitionError):
        await _wizard().request_code()


async def test_request_code_failure_sets_message():
    wizard = _wizard()
    wizard.onboarding.raise_on_code = CodeRequestFailedError("Agent offline")
    wizard.set_basics("Tanda", Currency.BS, "10")
    wizard.advance()
    wizard.advance()
    wizard.set_phone("+59177777777")

    with pytest.raises(CodeRequestFailedError):
        await wizard.request_code()
    assert wizard.message == "Agent offline"
    assert wizard.state.verification_code is None


async def test_changing_phone_discards_code():
    wizard = _wizard()
    wizard.set_basics("Tanda", Currency.BS, "10")
    wizard.advance()
    wizard.advance()
    wizard.set_phone("+59177777777")
    await wizard.request_code()

    wizard.set_phone("+59166666666")
    assert wizard.state.verification_code is None


async def test_setters_rejected_outside_their_stage():
    wizard = _wizard()
    with pytest.raises(InvalidStageTransitionError):
        wizard.set_frequency(7)
    with pytest.raises(InvalidStageTransitionError):
        wizard.set_phone("+59177777777")

    wizard.set_basics("Tanda", Currency.BS, "10")
    wizard.advance()
    with pytest.raises(InvalidStageTransitionError):
        wizard.set_basics("Other", Currency.USDC, "99")
    assert wizard.state.group_name == "Tanda"


async def test_whatsapp_link_carries_code():
    wizard = _wizard()
    await _to_confirmation(wizard)
    assert wizard.whatsapp_link() == (
        "https://wa.me/59170000000?text=Mi%20c%C3%B3digo%20de%20verificaci%C3%B3n%20es%3A%20123456"
    )
    await wizard.close()


# ─── Polling ───────────────────────────────────────────────────

async def test_entering_confirmation_starts_polling_until_verified():
    wizard = _wizard()
    await _to_confirmation(wizard)
    assert wizard.polling

    record = await wizard.wait_for_verification()

    assert record.verified
    assert wizard.state.phone_verified
    assert not wizard.polling


async def test_poll_survives_lookup_errors():
    source = FakeStatusSource(verify_after=3)
    source.fail_first = 2
    wizard = _wizard(source)
    await _to_confirmation(wizard)

    await wizard.wait_for_verification()

    assert wizard.state.phone_verified
    assert source.lookups == 3


async def test_poll_times_out():
    wizard = _wizard(FakeStatusSource(verify_after=None), poll_timeout_seconds=0.05)
    await _to_confirmation(wizard)

    with pytest.raises(VerificationTimeoutError):
        await wizard.wait_for_verification()
    assert not wizard.state.phone_verified


async def test_leaving_confirmation_cancels_polling():
    source = FakeStatusSource(verify_after=None)
    wizard = _wizard(source)
    await _to_confirmation(wizard)

    wizard.back()
    await asyncio.sleep(0.05)

    assert wizard.stage == OnboardingStage.PHONE_REQUEST
    assert not wizard.polling
    lookups = source.lookups
    await asyncio.sleep(0.05)
    assert source.lookups == lookups


async def test_advance_from_confirmation_requires_create_group():
    wizard = _wizard()
    await _to_confirmation(wizard)
    with pytest.raises(InvalidStageTransitionError):
        wizard.advance()
    await wizard.close()


# ─── Group creation ────────────────────────────────────────────

async def test_create_group_before_verification_is_blocked():
    wizard = _wizard(FakeStatusSource(verify_after=None))
    await _to_confirmation(wizard)

    with pytest.raises(StageGuardFailedError):
        await wizard.create_group()
    assert wizard.onboarding.groups == []
    await wizard.close()


async def test_create_group_failure_stays_at_confirmation():
    wizard = _wizard()
    await _to_confirmation(wizard)
    await wizard.wait_for_verification()
    wizard.onboarding.raise_on_create = GroupCreationFailedError("Invalid verification code")

    with pytest.raises(GroupCreationFailedError):
        await wizard.create_group()

    assert wizard.stage == OnboardingStage.CONFIRMATION
    assert wizard.message == "Invalid verification code"
    assert wizard.state.group_name == "Tanda Familiar"


async def test_create_group_success_redirects_and_resets():
    redirected = asyncio.Event()
    wizard = _wizard(on_redirect=redirected.set)
    await _to_confirmation(wizard)
    await wizard.wait_for_verification()

    result = await wizard.create_group()

    assert result.group_id == 42
    assert wizard.onboarding.groups[0] == {
        "phoneNumber": "+591 77777777",
        "groupName": "Tanda Familiar",
        "amountBs": 1500.0,
        "frequencyDays": 30,
        "yieldEnabled": True,
        "verificationCode": "123456",
    }
    assert wizard.stage == OnboardingStage.DONE
    assert wizard.state.group_name == ""
    await asyncio.wait_for(redirected.wait(), timeout=1)


async def test_close_cancels_pending_redirect():
    redirected = asyncio.Event()
    wizard = _wizard(on_redirect=redirected.set, redirect_delay_seconds=10)
    await _to_confirmation(wizard)
    await wizard.wait_for_verification()
    await wizard.create_group()

    await wizard.close()

    assert not redirected.is_set()


# ─── Stage 4 data integrity ────────────────────────────────────

class _VerifiesOnly:
    """Status source that confirms a single phone number."""

    def __init__(self, phone: str):
        self.phone = normalize_phone(phone)

    async def lookup(self, phone):
        if normalize_phone(phone) == self.phone:
            return VerificationRecord(phone=self.phone, verified=True, timestamp=1)
        return None


async def test_phone_cannot_change_while_polling():
    wizard = _wizard(_VerifiesOnly("+59177777777"))
    await _to_confirmation(wizard)
    await asyncio.sleep(0)

    with pytest.raises(InvalidStageTransitionError):
        wizard.set_phone("+59160000000")

    await wizard.wait_for_verification()
    assert wizard.state.phone == "+591 77777777"
    assert wizard.state.verification_code == "123456"
    assert wizard.state.phone_verified


async def test_poll_ignores_verification_for_replaced_phone():
    wizard = _wizard(_VerifiesOnly("+59177777777"))
    await _to_confirmation(wizard)
    await asyncio.sleep(0)
    wizard.state.phone = "+59160000000"

    assert await wizard.wait_for_verification() is None
    assert not wizard.state.phone_verified
    with pytest.raises(StageGuardFailedError):
        await wizard.create_group()
    assert wizard.onboarding.groups == []


async def test_setters_rejected_after_group_created():
    wizard = _wizard()
    await _to_confirmation(wizard)
    await wizard.wait_for_verification()
    await wizard.create_group()

    with pytest.raises(InvalidStageTransitionError):
        wizard.set_phone("+59160000000")
    await wizard.close()


async def test_close_releases_owned_clients():
    class _Client:
        closed = False

        async def aclose(self):
            self.closed = True

    client = _Client()
    wizard = _wizard(owned_clients=(client,))
    await wizard.close()
    assert client.closed
