"""
Team registration and profile completion.
"""
import logging
import time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spandana.database import utcnow
from spandana.models import Participant, Team, UserProfile, UserRole
from spandana.schemas import ParticipantForm, ProfileUpdateRequest, TeamRegistrationRequest

logger = logging.getLogger(__name__)

TEAM_CODE_PREFIX = "GS"
MAX_TEAM_SEQUENCE = 9999


class RegistrationError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


def generate_initials(name: str) -> str:
    """
    Two-letter initials: "John Doe" -> "JD", "Mary Jane Watson" -> "MJ",
    "Ravi" -> "RA", "K" -> "KX".
    """
    words = name.split()
    if not words:
        return "XX"
    first = words[0]
    if len(words) > 1:
        second = words[1][0]
    else:
        second = first[1] if len(first) > 1 else "X"
    return (first[0] + second).upper()


def generate_team_code(db: Session, p1_name: str, p2_name: str) -> str:
    """GS-<P1>-<P2>-NNNN with the first free sequence number."""
    prefix = f"{TEAM_CODE_PREFIX}-{generate_initials(p1_name)}-{generate_initials(p2_name)}"

    for sequence in range(1, MAX_TEAM_SEQUENCE + 1):
        code = f"{prefix}-{sequence:04d}"
        if not db.query(Team.id).filter(Team.team_code == code).first():
            return code

    return f"{prefix}-{str(int(time.time() * 1000))[-4:]}"


def _participant_row(form: ParticipantForm, user_id: str, team_id: int, is_participant1: bool) -> Participant:
    return Participant(
        user_id=user_id,
        team_id=team_id,
        is_participant1=is_participant1,
        name=form.name,
        gender=form.gender,
        email=form.email,
        phone=form.phone,
        school_name=form.school_name,
        aadhar=form.aadhar,
        email_verified=True,
        phone_verified=False,
    )


def _ensure_participant_profile(db: Session, user_id: str, name: str) -> None:
    if db.query(UserProfile).filter(UserProfile.user_id == user_id).first():
        return
    db.add(UserProfile(user_id=user_id, role=UserRole.PARTICIPANT, name=name))


def register_team(db: Session, data: TeamRegistrationRequest) -> Team:
    """Create the team, both participant rows and their participant profiles."""
    if db.query(Team.id).filter(Team.team_name == data.team_name).first():
        raise RegistrationError("Team name already exists.", status_code=409)

    team = Team(
        team_name=data.team_name,
        team_code=generate_team_code(db, data.participant1.name, data.participant2.name),
    )
    db.add(team)

    try:
        db.flush()
        for form, user_id, is_p1 in (
            (data.participant1, data.p1_user_id, True),
            (data.participant2, data.p2_user_id, False),
        ):
            db.add(_participant_row(form, user_id, team.id, is_p1))
            _ensure_participant_profile(db, user_id, form.name)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("⚠️ Registration rejected for team %r: %s", data.team_name, e.orig)
        raise RegistrationError("A participant with these details is already registered.", status_code=409) from e

    db.refresh(team)
    logger.info("✅ Team registered: %s (%s)", team.team_name, team.team_code)
    return team


def complete_profile(db: Session, participant: Participant, data: ProfileUpdateRequest) -> Participant:
    """Write only the provided, non-blank fields and mark the profile complete."""
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        if isinstance(value, str):
            if not value.strip():
                continue
            value = value.strip()
        setattr(participant, field, value)

    participant.profile_completed = True
    participant.updated_at = utcnow()
    db.commit()
    db.refresh(participant)
    return participant
