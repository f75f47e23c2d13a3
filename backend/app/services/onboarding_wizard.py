"""Onboarding Wizard — five-stage flow that creates a savings group after WhatsApp verification.

Invariants:
    - Forward moves only through advance()/create_group(), each behind its
      stage guard (core/onboarding_state.py); backward moves are free except
      from stage 1 and the terminal stage 5
    - Stage 4 runs one polling task (interval 3s) against the verification
      status source; it is cancelled when stage 4 is left or close() is called
    - The poll gives up after verification_poll_timeout_seconds with
      VerificationTimeoutError
    - create_group() failure keeps the wizard at stage 4 with the server
      message; success moves to 5, schedules the redirect and discards the
      collected data

Design Decisions:
    - Lookup errors during polling are logged and polling continues
    - message holds the last human-readable outcome for the UI layer
    - Form setters only touch the fields of the current stage (1, 2 or 3);
      stage 4 data is frozen while the poll runs
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from urllib.parse import quote

from app.core.capability_protocols import (
    AsyncClosable,
    OnboardingService,
    VerificationStatusSource,
)
from app.core.domain_types import Currency, OnboardingStage
from app.core.errors import (
    ErrorContext,
    InvalidStageTransitionError,
    PasaTandaError,
    StageGuardFailedError,
    VerificationTimeoutError,
)
from app.core.onboarding_state import OnboardingState, can_go_back, check_can_advance
from app.core.verification_registry import VerificationRecord, normalize_phone
from app.schemas.onboarding import GroupCreationResult, VerificationCodeResponse

logger = logging.getLogger(__name__)


class OnboardingWizard:
    """Collects group parameters, verifies the phone, creates the group."""

    def __init__(
        self,
        onboarding: OnboardingService,
        status_source: VerificationStatusSource,
        poll_interval_seconds: float = 3.0,
        poll_timeout_seconds: float = 600.0,
        redirect_delay_seconds: float = 7.0,
        on_redirect: Callable[[], object] | None = None,
        whatsapp_agent_number: str = "",
        owned_clients: Sequence[AsyncClosable] = (),
    ):
        self.onboarding = onboarding
        self.status_source = status_source
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_timeout_seconds = poll_timeout_seconds
        self.redirect_delay_seconds = redirect_delay_seconds
        self.on_redirect = on_redirect
        self.whatsapp_agent_number = whatsapp_agent_number
        self.owned_clients = tuple(owned_clients)

        self.state = OnboardingState()
        self.message: str | None = None
        self.verification_error: VerificationTimeoutError | None = None
        self._poll_task: asyncio.Task | None = None
        self._redirect_task: asyncio.Task | None = None

    @property
    def stage(self) -> OnboardingStage:
        return self.state.stage

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # --- Form input -----------------------------------------------------------

    def _require_stage(self, stage: OnboardingStage, field: str) -> None:
        if self.stage != stage:
            raise InvalidStageTransitionError(
                f"{field} can only be changed at stage {stage.value}.",
                ErrorContext(stage=self.stage.value),
            )

    def set_basics(self, group_name: str, currency: Currency, total_amount: str) -> None:
        self._require_stage(OnboardingStage.BASICS, "Group basics")
        self.state.group_name = group_name
        self.state.currency = currency
        self.state.total_amount = total_amount

    def set_frequency(
        self, frequency_days: int, custom_days: str = "", yield_enabled: bool = False,
    ) -> None:
        self._require_stage(OnboardingStage.FREQUENCY, "Frequency")
        self.state.frequency_days = frequency_days
        self.state.custom_days = custom_days
        self.state.yield_enabled = yield_enabled

    def set_phone(self, phone: str) -> None:
        self._require_stage(OnboardingStage.PHONE_REQUEST, "Phone number")
        if phone != self.state.phone:
            self.state.verification_code = None
            self.state.phone_verified = False
        self.state.phone = phone

    # --- Navigation -------------------------------------------------------------

    def advance(self) -> OnboardingStage:
        """Move forward one stage. Stage 4 -> 5 goes through create_group()."""
        if self.stage == OnboardingStage.CONFIRMATION:
            raise InvalidStageTransitionError(
                "Confirm the group with create_group() to finish onboarding.",
                ErrorContext(stage=self.stage.value),
            )
        reason = check_can_advance(self.state)
        if reason:
            self.message = reason
            raise StageGuardFailedError(self.stage.value, reason)
        self._enter(OnboardingStage(self.stage + 1))
        return self.stage

    def back(self) -> OnboardingStage:
        if not can_go_back(self.state):
            raise InvalidStageTransitionError(
                f"Cannot go back from stage {self.stage.value}.",
                ErrorContext(stage=self.stage.value),
            )
        self._enter(OnboardingStage(self.stage - 1))
        return self.stage

    def _enter(self, stage: OnboardingStage) -> None:
        if self.stage == OnboardingStage.CONFIRMATION and stage != OnboardingStage.CONFIRMATION:
            self._cancel_polling()
        self.state.stage = stage
        self.message = None
        if stage == OnboardingStage.CONFIRMATION and not self.state.phone_verified:
            self._start_polling()

    # --- Stage 3: verification code -------------------------------------------------

    async def request_code(self) -> str:
        """Ask the onboarding service for a code. Raises CodeRequestFailedError."""
        if self.stage != OnboardingStage.PHONE_REQUEST:
            raise InvalidStageTransitionError(
                "Verification codes are requested at stage 3.",
                ErrorContext(stage=self.stage.value),
            )
        phone = self.state.phone.strip()
        if not phone:
            raise StageGuardFailedError(self.stage.value, "Phone number is required.")
        try:
            data = await self.onboarding.request_verification_code(phone)
        except PasaTandaError as e:
            self.message = e.message
            raise

        response = VerificationCodeResponse.model_validate(data)
        if response.code:
            self.state.verification_code = response.code
        self.message = "Code generated. Send it to the WhatsApp agent."
        logger.info("Verification code generated", extra={"phone": phone, "stage": 3})
        return self.state.verification_code or ""

    def whatsapp_link(self) -> str:
        text = quote(f"Mi código de verificación es: {self.state.verification_code or ''}")
        return f"https://wa.me/{self.whatsapp_agent_number}?text={text}"

    # --- Stage 4: polling -------------------------------------------------------------------

    def _start_polling(self) -> None:
        self._cancel_polling()
        self.verification_error = None
        self._poll_task = asyncio.create_task(self._poll_verification())

    def _cancel_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    async def _poll_verification(self) -> VerificationRecord | None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        phone = self.state.phone.strip()
        while True:
            await asyncio.sleep(self.poll_interval_seconds)
            try:
                record = await self.status_source.lookup(phone)
            except Exception as e:
                logger.debug(f"Verification poll failed, retrying: {e}")
                record = None
            if record is not None and record.verified:
                if normalize_phone(self.state.phone) != normalize_phone(phone):
                    logger.warning("Phone changed while polling, result ignored")
                    return None
                self.state.phone_verified = True
                self.message = "WhatsApp number verified."
                logger.info("Phone verified", extra={"phone": phone, "stage": 4})
                return record
            waited = loop.time() - started
            if waited >= self.poll_timeout_seconds:
                self.verification_error = VerificationTimeoutError(phone, waited)
                self.message = self.verification_error.message
                logger.warning("Verification poll timed out", extra={"phone": phone})
                return None

    async def wait_for_verification(self) -> VerificationRecord | None:
        """Await the running poll. Raises VerificationTimeoutError on timeout."""
        if self.state.phone_verified:
            return None
        if self._poll_task is None:
            raise InvalidStageTransitionError(
                "Verification polling runs only at stage 4.",
                ErrorContext(stage=self.stage.value),
            )
        record = await self._poll_task
        if self.verification_error is not None:
            raise self.verification_error
        return record

    # --- Stage 4 -> 5: create group ---------------------------------------------

    async def create_group(self) -> GroupCreationResult:
        if self.stage != OnboardingStage.CONFIRMATION:
            raise InvalidStageTransitionError(
                "Groups are created from the confirmation stage.",
                ErrorContext(stage=self.stage.value),
            )
        reason = check_can_advance(self.state)
        if reason:
            self.message = reason
            raise StageGuardFailedError(self.stage.value, reason)

        try:
            data = await self.onboarding.create_group(self.state.group_payload())
        except PasaTandaError as e:
            self.message = e.message
            raise

        result = GroupCreationResult.model_validate(data)
        self._cancel_polling()
        self.state = OnboardingState(stage=OnboardingStage.DONE)
        self.message = "Group created successfully!"
        self._redirect_task = asyncio.create_task(self._redirect_later())
        logger.info("Group created", extra={"stage": 5})
        return result

    async def _redirect_later(self) -> None:
        await asyncio.sleep(self.redirect_delay_seconds)
        if self.on_redirect is not None:
            self.on_redirect()

    async def close(self) -> None:
        """Cancel the poll and any pending redirect, then release owned clients."""
        tasks = [t for t in (self._poll_task, self._redirect_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_task = None
        self._redirect_task = None
        for client in self.owned_clients:
            await client.aclose()
        self.owned_clients = ()
