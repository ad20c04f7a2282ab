"""
Participant Session Service
Starts, resumes and advances participant sessions using the configured study flow.
"""

from typing import Any
from uuid import uuid4

from config.config import config
from src.exceptions import BusinessLogicError
from src.logic.participant_session import TRANSIENT_ERRORS, ParticipantSession, ParticipantStep
from src.services.persistence_gateway import PersistenceGateway
from src.utils.logging import get_logger

logger = get_logger(__name__)


class SessionService:
    """Service for the participant flow."""

    def __init__(self, gateway: PersistenceGateway, participation=None, feature_flags=None):
        self.gateway = gateway
        self.participation = participation or config.study_participation
        self.feature_flags = feature_flags or config.feature_flags

    def start_session(self, study_id: str, session_id: str | None = None) -> ParticipantSession:
        """
        Create a session and resume any persisted progress for it.

        A storage failure while loading progress starts the participant from
        the beginning instead of blocking them.
        """
        if not self.feature_flags.enable_participant_sessions:
            raise BusinessLogicError(
                "Participant sessions are disabled",
                user_message="This study is not accepting participants right now.",
            )

        session = ParticipantSession(
            session_id=session_id or str(uuid4()),
            study_id=study_id,
            gateway=self.gateway,
            pre_screening_required=self.participation.pre_screening_required,
            allow_post_survey_skip=self.participation.allow_post_survey_skip,
            step_minutes={ParticipantStep(step): minutes for step, minutes in self.participation.step_minutes.items()},
        )
        context = {"session_id": session.session_id, "study_id": study_id}

        try:
            persisted = self.gateway.get_session_progress(session.session_id)
        except TRANSIENT_ERRORS as e:
            logger.error(f"Could not load progress, starting fresh: {e}", extra=context)
            persisted = None

        if persisted:
            session.resume(persisted)
            logger.info(f"Resumed session at {session.current_step.value}", extra=context)
        else:
            logger.info(f"Started session at {session.current_step.value}", extra=context)
        return session

    def advance(self, session: ParticipantSession, payload: Any = None) -> ParticipantStep:
        """
        Replay unsynced submissions, then complete the current step.

        Raises:
            ValidationError: If a replayed submission was rejected; the
                participant is moved back to that step and the current
                payload is not submitted
        """
        self.retry_pending(session)
        rejected = session.reopen_rejected_step()
        if rejected is not None:
            logger.warning(
                f"Replayed {rejected.step.value} submission rejected, participant sent back: {rejected.error}",
                extra={"session_id": session.session_id, "study_id": session.study_id, "step": rejected.step.value},
            )
            raise rejected.rejection

        step = session.current_step
        extra = {"session_id": session.session_id, "study_id": session.study_id, "step": step.value}
        if self.feature_flags.log_step_payloads:
            logger.debug(f"Step payload: {payload!r}", extra=extra)
        return session.advance(payload)

    def retry_pending(self, session: ParticipantSession) -> int:
        """Replay the session's unsynced submissions; returns how many remain."""
        if not self.feature_flags.enable_submission_retry or not session.pending_submissions:
            return len(session.pending_submissions)
        remaining = session.retry_pending()
        logger.info(
            f"Retried pending submissions, {remaining} still pending",
            extra={"session_id": session.session_id, "study_id": session.study_id},
        )
        return remaining
