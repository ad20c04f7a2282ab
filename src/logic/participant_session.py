"""
Participant session logic for QSTUDY.
Drives one participant through the ordered study steps with resumable progress.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.exceptions import ParticipantFlowError, PersistenceError, PlacementValidationError, ValidationError
from src.services.persistence_gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class ParticipantStep(str, Enum):
    """Participant step enumeration, in flow order."""

    PRE_SCREENING = "pre-screening"
    WELCOME = "welcome"
    CONSENT = "consent"
    FAMILIARIZATION = "familiarization"
    PRE_SORTING = "pre-sorting"
    Q_SORT = "q-sort"
    COMMENTARY = "commentary"
    POST_SURVEY = "post-survey"
    THANK_YOU = "thank-you"


STEP_ORDER = list(ParticipantStep)

# Estimated minutes per step, used for progress reporting
STEP_ESTIMATED_MINUTES = {
    ParticipantStep.PRE_SCREENING: 5,
    ParticipantStep.WELCOME: 1,
    ParticipantStep.CONSENT: 2,
    ParticipantStep.FAMILIARIZATION: 3,
    ParticipantStep.PRE_SORTING: 5,
    ParticipantStep.Q_SORT: 20,
    ParticipantStep.COMMENTARY: 5,
    ParticipantStep.POST_SURVEY: 10,
    ParticipantStep.THANK_YOU: 0,
}

# Failures that must not block a participant from moving on
TRANSIENT_ERRORS = (PersistenceError, ConnectionError, TimeoutError)


@dataclass
class PendingSubmission:
    """A step submission that could not be synced to storage."""

    step: ParticipantStep
    payload: Any
    next_step: ParticipantStep
    error: str
    skipped: bool = False
    failed_at: datetime = field(default_factory=datetime.utcnow)
    rejection: ValidationError | None = None
    attempts: int = 1


@dataclass
class SessionProgress:
    """Progress summary for display."""

    percentage: int
    steps_completed: int
    total_steps: int
    estimated_minutes_remaining: int


class ParticipantSession:
    """
    State machine for one participant's traversal of a study.

    Transitions are local first: a failed submission is logged and queued in
    ``pending_submissions`` while the participant still moves forward. Only a
    rejected q-sort payload keeps the participant on the q-sort step.
    """

    def __init__(
        self,
        session_id: str,
        study_id: str,
        gateway: PersistenceGateway,
        pre_screening_required: bool = False,
        allow_post_survey_skip: bool = True,
        step_minutes: dict[ParticipantStep, int] | None = None,
    ):
        self.session_id = session_id
        self.study_id = study_id
        self.gateway = gateway
        self.pre_screening_required = pre_screening_required
        self.allow_post_survey_skip = allow_post_survey_skip
        self.step_minutes = {**STEP_ESTIMATED_MINUTES, **(step_minutes or {})}

        self.flow_steps = [
            step
            for step in STEP_ORDER
            if pre_screening_required or step != ParticipantStep.PRE_SCREENING
        ]
        self.current_step: ParticipantStep = self.flow_steps[0]
        self.completed_steps: list[ParticipantStep] = []
        self.step_payloads: dict[ParticipantStep, Any] = {}
        self.skipped_steps: list[ParticipantStep] = []
        self.pending_submissions: list[PendingSubmission] = []
        self.rejected_submissions: list[PendingSubmission] = []
        self.disqualified = False

    # ------------------------------------------------------------------ state

    @property
    def is_complete(self) -> bool:
        return self.current_step == ParticipantStep.THANK_YOU

    @property
    def is_first_step(self) -> bool:
        return self.current_step == self.flow_steps[0]

    def _next_step(self, step: ParticipantStep) -> ParticipantStep:
        index = self.flow_steps.index(step)
        return self.flow_steps[min(index + 1, len(self.flow_steps) - 1)]

    def _previous_step(self, step: ParticipantStep) -> ParticipantStep:
        index = self.flow_steps.index(step)
        return self.flow_steps[max(index - 1, 0)]

    def _mark_completed(self, step: ParticipantStep) -> None:
        if step not in self.completed_steps:
            self.completed_steps.append(step)

    # ------------------------------------------------------------------ transitions

    def advance(self, payload: Any = None) -> ParticipantStep:
        """
        Complete the current step and move to the next one.

        Args:
            payload: Data captured at the current step

        Returns:
            The step the participant is now on

        Raises:
            PlacementValidationError: If the q-sort payload was rejected; the
                session stays on the q-sort step
        """
        if self.is_complete:
            return self.current_step

        step = self.current_step
        if (
            step == ParticipantStep.PRE_SCREENING
            and isinstance(payload, dict)
            and payload.get("qualified") is False
        ):
            self.disqualify(payload.get("reason"), payload=payload)
            return self.current_step

        next_step = self._next_step(step)
        try:
            self._submit(step, payload, next_step)
        except PlacementValidationError as e:
            logger.warning(f"Session {self.session_id}: q-sort payload rejected: {e}")
            raise
        except TRANSIENT_ERRORS as e:
            logger.error(f"Session {self.session_id}: failed to sync step {step.value}: {e}")
            self.pending_submissions.append(
                PendingSubmission(step=step, payload=payload, next_step=next_step, error=str(e))
            )

        if payload is not None:
            self.step_payloads[step] = payload
        self._mark_completed(step)
        self.current_step = next_step

        logger.info(f"Session {self.session_id} advanced from {step.value} to {next_step.value}")
        return self.current_step

    def retreat(self) -> ParticipantStep:
        """Move back one step; completed status and payloads are kept."""
        if self.is_first_step or self.is_complete:
            return self.current_step

        previous = self._previous_step(self.current_step)
        logger.info(f"Session {self.session_id} moved back from {self.current_step.value} to {previous.value}")
        self.current_step = previous
        return self.current_step

    def skip(self) -> ParticipantStep:
        """Skip the post-survey, the only step that may be skipped."""
        if self.current_step != ParticipantStep.POST_SURVEY:
            raise ParticipantFlowError(
                f"Step {self.current_step.value} cannot be skipped", step=self.current_step.value
            )
        if not self.allow_post_survey_skip:
            raise ParticipantFlowError("Skipping the post-survey is disabled for this study", step=self.current_step.value)

        step = self.current_step
        next_step = self._next_step(step)
        try:
            self._record_skip(step, next_step)
        except TRANSIENT_ERRORS as e:
            logger.error(f"Session {self.session_id}: failed to sync skip of {step.value}: {e}")
            self.pending_submissions.append(
                PendingSubmission(step=step, payload=None, next_step=next_step, error=str(e), skipped=True)
            )

        if step not in self.skipped_steps:
            self.skipped_steps.append(step)
        self.current_step = next_step
        logger.info(f"Session {self.session_id} skipped {step.value}")
        return self.current_step

    def disqualify(self, reason: str | None = None, payload: Any = None) -> ParticipantStep:
        """End the session after a failed pre-screening."""
        if self.current_step != ParticipantStep.PRE_SCREENING:
            raise ParticipantFlowError(
                "Participants can only be disqualified during pre-screening",
                step=self.current_step.value,
            )

        step = self.current_step
        data = payload if payload is not None else {"qualified": False, "reason": reason}
        try:
            self.gateway.update_session_progress(
                self.session_id,
                {
                    "studyId": self.study_id,
                    "currentStep": ParticipantStep.THANK_YOU.value,
                    "completedStep": step.value,
                    "stepData": data,
                },
            )
        except TRANSIENT_ERRORS as e:
            logger.error(f"Session {self.session_id}: failed to sync disqualification: {e}")
            self.pending_submissions.append(
                PendingSubmission(step=step, payload=data, next_step=ParticipantStep.THANK_YOU, error=str(e))
            )

        self.step_payloads[step] = data
        self._mark_completed(step)
        self.disqualified = True
        self.current_step = ParticipantStep.THANK_YOU
        logger.info(f"Session {self.session_id} disqualified at pre-screening: {reason or 'no reason given'}")
        return self.current_step

    def resume(self, persisted_progress: dict[str, Any] | None) -> None:
        """
        Adopt previously persisted progress in place of local defaults.

        Args:
            persisted_progress: Dict with ``currentStep`` and ``completedSteps``
                (and optionally ``stepData``) as returned by the gateway
        """
        if not persisted_progress:
            return

        current = ParticipantStep(persisted_progress["currentStep"])
        if current not in self.flow_steps:
            # pre-screening was recorded but is no longer part of the flow
            self.flow_steps = list(STEP_ORDER)

        self.current_step = current
        self.completed_steps = []
        for step in persisted_progress.get("completedSteps") or []:
            self._mark_completed(ParticipantStep(step))

        self.skipped_steps = [ParticipantStep(step) for step in persisted_progress.get("skippedSteps") or []]

        step_data = persisted_progress.get("stepData") or {}
        self.step_payloads = {ParticipantStep(key): value for key, value in step_data.items()}

        logger.info(f"Session {self.session_id} resumed at {current.value}")

    def retry_pending(self) -> int:
        """
        Replay unsynced submissions in their original order.

        A replayed payload that storage rejects leaves the queue for
        ``rejected_submissions`` and loses its completed status, so the step
        can be reopened with ``reopen_rejected_step``.

        Returns:
            Number of submissions still pending afterwards
        """
        still_pending: list[PendingSubmission] = []
        for pending in self.pending_submissions:
            try:
                if pending.skipped:
                    self._record_skip(pending.step, pending.next_step)
                else:
                    self._submit(pending.step, pending.payload, pending.next_step)
                logger.info(f"Session {self.session_id}: synced pending {pending.step.value} submission")
            except ValidationError as e:
                logger.error(f"Session {self.session_id}: pending {pending.step.value} submission rejected on retry: {e}")
                pending.error = str(e)
                pending.rejection = e
                pending.attempts += 1
                self.rejected_submissions.append(pending)
                if pending.step in self.completed_steps:
                    self.completed_steps.remove(pending.step)
            except TRANSIENT_ERRORS as e:
                pending.error = str(e)
                pending.attempts += 1
                still_pending.append(pending)
        self.pending_submissions = still_pending
        return len(still_pending)

    def reopen_rejected_step(self) -> PendingSubmission | None:
        """
        Send the participant back to the earliest step whose replayed submission was rejected.

        Returns:
            The rejected submission of that step, or None if nothing was rejected
        """
        if not self.rejected_submissions:
            return None

        rejected = min(self.rejected_submissions, key=lambda pending: STEP_ORDER.index(pending.step))
        self.rejected_submissions = []
        logger.info(
            f"Session {self.session_id} moved back from {self.current_step.value} to rejected step {rejected.step.value}"
        )
        self.current_step = rejected.step
        return rejected

    # ------------------------------------------------------------------ submission

    def _submit(self, step: ParticipantStep, payload: Any, next_step: ParticipantStep) -> None:
        """Send the step payload through its dedicated call, then record progress."""
        if step == ParticipantStep.Q_SORT:
            self.gateway.submit_q_sort(self.session_id, self._submission(payload))
        elif step == ParticipantStep.PRE_SORTING:
            self.gateway.submit_pre_sort(self.session_id, self._submission(payload))
        elif step == ParticipantStep.COMMENTARY:
            self.gateway.submit_commentary(self.session_id, self._submission(payload))

        self.gateway.update_session_progress(
            self.session_id,
            {
                "studyId": self.study_id,
                "currentStep": next_step.value,
                "completedStep": step.value,
                "stepData": payload,
            },
        )

    def _record_skip(self, step: ParticipantStep, next_step: ParticipantStep) -> None:
        self.gateway.update_session_progress(
            self.session_id,
            {
                "studyId": self.study_id,
                "currentStep": next_step.value,
                "completedStep": None,
                "stepData": {"skippedStep": step.value},
            },
        )

    def _submission(self, payload: Any) -> dict[str, Any]:
        data = dict(payload) if isinstance(payload, dict) else {}
        data["studyId"] = self.study_id
        return data

    # ------------------------------------------------------------------ reporting

    @property
    def progress(self) -> SessionProgress:
        countable = [step for step in self.flow_steps if step != ParticipantStep.THANK_YOU]
        done = [step for step in countable if step in self.completed_steps or step in self.skipped_steps]
        if self.is_complete:
            remaining = 0
        else:
            remaining = sum(self.step_minutes.get(step, 0) for step in countable if step not in done)
        return SessionProgress(
            percentage=round(len(done) / len(countable) * 100) if countable else 100,
            steps_completed=len(done),
            total_steps=len(countable),
            estimated_minutes_remaining=remaining,
        )

    def navigation(self) -> dict[str, Any]:
        """Navigation hints for the current step."""
        return {
            "current_step": self.current_step,
            "next_step": None if self.is_complete else self._next_step(self.current_step),
            "previous_step": None if self.is_first_step or self.is_complete else self._previous_step(self.current_step),
            "can_go_back": not (self.is_first_step or self.is_complete),
            "can_skip": self.current_step == ParticipantStep.POST_SURVEY and self.allow_post_survey_skip,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "studyId": self.study_id,
            "currentStep": self.current_step.value,
            "completedSteps": [step.value for step in self.completed_steps],
            "stepPayloads": {step.value: payload for step, payload in self.step_payloads.items()},
        }
