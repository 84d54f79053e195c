"""
Messaging Authorization — every user-authored message passes through here
before it is appended to a session.

  - patient sender: the caller must be the session's patient
  - doctor sender:  the caller must be the identity linked to participant
                    ``sender_id`` of this session
  - prescriptions:  doctors only
  - referral / system messages are minted by their own operations and are
    never accepted from callers

Voice notes carrying an AI block fan out into medicine todos and
follow-up reminders through post-commit hooks.  Those are best-effort: the
message is already committed when they run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel

from sutra.consult.content import (
    USER_MESSAGE_TYPES,
    MessageType,
    VoiceAIProcessed,
    describe_content,
    message_type_for,
)
from sutra.consult.errors import ConsultError, ErrorCode, consult_operation, persistence_failure
from sutra.consult.hooks import HookReport, PostCommitHooks
from sutra.consult.identity import CallerIdentity
from sutra.consult.permissions import SessionAccessChecker
from sutra.consult.records import (
    FollowUpReminder,
    MedicineTodo,
    Message,
    SenderType,
    Session,
)
from sutra.consult.store import ConsultStore, StoreError

logger = logging.getLogger("consult.messaging")


@dataclass
class CommittedVoiceNote:
    """What voice post-commit hooks receive."""

    message: Message
    session: Session

    @property
    def id(self) -> str:
        return self.message.id

    @property
    def entities(self):
        return self.message.ai_processed.entities


class SessionMessenger:
    def __init__(
        self,
        store: ConsultStore,
        access_checker: SessionAccessChecker,
        voice_hooks: PostCommitHooks[CommittedVoiceNote] | None = None,
    ) -> None:
        self._store = store
        self._access = access_checker
        self.voice_hooks = voice_hooks if voice_hooks is not None else self._default_voice_hooks()
        self.last_hook_report: Optional[HookReport] = None

    def _default_voice_hooks(self) -> PostCommitHooks[CommittedVoiceNote]:
        hooks: PostCommitHooks[CommittedVoiceNote] = PostCommitHooks()
        hooks.add("medicine_todos", self._create_medicine_todos)
        hooks.add("follow_up_reminder", self._create_follow_up_reminder)
        return hooks

    # ── Public API ──

    @consult_operation("send_message")
    async def send_message(
        self,
        caller: Optional[CallerIdentity],
        session_id: str,
        sender_id: str,
        sender_type: SenderType | str,
        content: BaseModel,
        ai_processed: Optional[VoiceAIProcessed] = None,
    ) -> Message:
        """Authorize the sender, then append the message.  Returns the stored row."""
        if caller is None:
            raise ConsultError(ErrorCode.UNAUTHORIZED)

        session = self._store.get("sessions", session_id)
        if session is None:
            raise ConsultError(ErrorCode.SESSION_NOT_FOUND)

        try:
            sender_type = SenderType(sender_type)
            message_type = message_type_for(content)
        except (ValueError, TypeError) as e:
            logger.warning("Rejected message from %s in session %s: %s", caller.id, session_id, e)
            raise ConsultError(ErrorCode.UNAUTHORIZED) from e
        self._authorize(caller, session, sender_id, sender_type, message_type)

        if message_type == MessageType.VOICE and ai_processed is not None:
            if content.transcription is None:
                content = content.model_copy(update={
                    "transcription": ai_processed.transcription or None,
                    "language_detected": ai_processed.language_detected or None,
                })

        try:
            message = self._store.insert("messages", Message(
                session_id=session_id,
                sender_type=sender_type,
                sender_id=sender_id,
                message_type=message_type,
                content=content,
                ai_processed=ai_processed,
            ))
        except StoreError as e:
            logger.error(
                "Message insert failed (session=%s, sender=%s, type=%s): %s",
                session_id, sender_id, message_type.value, e,
            )
            raise persistence_failure("send message") from e

        logger.info(
            "Message %s in session %s from %s %s: %s",
            message.id, session_id, sender_type.value, sender_id,
            describe_content(message_type, message.content),
        )

        if message.ai_processed is not None:
            self.last_hook_report = self.voice_hooks.run(CommittedVoiceNote(message=message, session=session))
        return message

    @consult_operation("list_messages")
    async def list_messages(self, caller: Optional[CallerIdentity], session_id: str) -> list[Message]:
        """Session history in creation order, for the patient and participant doctors."""
        if caller is None:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        session = self._store.get("sessions", session_id)
        if session is None:
            raise ConsultError(ErrorCode.SESSION_NOT_FOUND)
        if not self._access.check_viewer(caller, session).allowed:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        return self._store.select("messages", session_id=session_id, order_by="created_at")

    # ── Authorization ──

    def _authorize(
        self,
        caller: CallerIdentity,
        session: Session,
        sender_id: str,
        sender_type: SenderType,
        message_type: MessageType,
    ) -> None:
        if message_type not in USER_MESSAGE_TYPES:
            logger.warning("Rejected %s message sent by %s", message_type.value, caller.id)
            raise ConsultError(ErrorCode.UNAUTHORIZED)

        if sender_type == SenderType.PATIENT:
            if message_type == MessageType.PRESCRIPTION:
                raise ConsultError(ErrorCode.UNAUTHORIZED)
            if sender_id != session.patient_id:
                raise ConsultError(ErrorCode.UNAUTHORIZED)
            if not self._access.check_patient(caller, session).allowed:
                raise ConsultError(ErrorCode.UNAUTHORIZED)
            return

        if sender_type == SenderType.DOCTOR:
            if not self._access.check_doctor_participant(caller, session.id, sender_id).allowed:
                raise ConsultError(ErrorCode.UNAUTHORIZED)
            return

        # System messages are never caller-authored
        raise ConsultError(ErrorCode.UNAUTHORIZED)

    # ── Voice post-commit hooks ──

    def _create_medicine_todos(self, note: CommittedVoiceNote) -> None:
        for med in note.entities.medicines:
            self._store.insert("medicine_todos", MedicineTodo(
                patient_id=note.session.patient_id,
                session_id=note.session.id,
                message_id=note.message.id,
                medicine_name=med.name,
                dosage=med.dosage or None,
                frequency=med.frequency or None,
                duration=med.duration or None,
                is_active=True,
            ))
        if note.entities.medicines:
            logger.info("Created %d medicine todos from message %s",
                        len(note.entities.medicines), note.message.id)

    def _create_follow_up_reminder(self, note: CommittedVoiceNote) -> None:
        follow_up = note.entities.follow_up
        if follow_up is None:
            return
        referral = note.entities.referral
        self._store.insert("follow_up_reminders", FollowUpReminder(
            patient_id=note.session.patient_id,
            session_id=note.session.id,
            message_id=note.message.id,
            reminder_text=follow_up.action,
            trigger_condition=follow_up.condition,
            trigger_value=follow_up.timeframe,
            target_doctor_name=referral.doctor_name if referral else None,
            is_triggered=False,
        ))
        logger.info("Created follow-up reminder from message %s", note.message.id)
