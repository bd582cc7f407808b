"""Profile service layer.

Exactly one profile exists per auth identity. A profile's role is fixed at
signup; there is no update path for it. Tutors carry specialties (mirrored
row-for-row into tutor_subjects) and an hourly rate; students carry
struggles.
"""

import time
from collections.abc import Callable, Iterable
from uuid import UUID

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from tutorlink.config import get_settings
from tutorlink.db.models import Profile, ProfileRole, Subject, TutorSubject, utcnow
from tutorlink.db.session import transaction
from tutorlink.errors import (
    ApiErrorCode,
    ConflictError,
    InvalidRequestError,
    NotAuthenticatedError,
    NotFoundError,
)
from tutorlink.logging import get_logger
from tutorlink.schemas.profile import (
    CreateProfileRequest,
    ProfileOut,
    ProfileSummary,
    UpdateProfileRequest,
)

logger = get_logger(__name__)

MAX_SEARCH_RESULTS = 20


# =============================================================================
# Identity helpers
# =============================================================================


def parse_user_id(raw: str | UUID | None) -> UUID:
    """Validate a caller-supplied user identity.

    Raises:
        NotAuthenticatedError: If no identity was supplied.
        InvalidRequestError(E_INVALID_USER_ID): If it is not a UUID.
    """
    if raw is None or raw == "":
        raise NotAuthenticatedError()
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_USER_ID, "Invalid user id format"
        ) from None


def get_profile_model(db: Session, user_id: UUID, *, for_update: bool = False) -> Profile:
    """Load a profile by auth user id.

    Raises:
        NotFoundError(E_PROFILE_NOT_FOUND): If the user has no profile.
    """
    stmt = select(Profile).where(Profile.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    profile = db.scalars(stmt).one_or_none()
    if profile is None:
        raise NotFoundError(ApiErrorCode.E_PROFILE_NOT_FOUND, "Profile not found")
    return profile


def require_role(profile: Profile, role: ProfileRole, message: str) -> None:
    if profile.role != role.value:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_ROLE, message)


def _subject_values(subjects: Iterable[Subject]) -> list[str]:
    """Deduplicate while keeping first-seen order."""
    return list(dict.fromkeys(Subject(s).value for s in subjects))


def _validate_role_fields(role: str, fields: dict) -> None:
    if role == ProfileRole.student.value:
        for name in ("hourly_rate", "specialties"):
            if fields.get(name):
                raise InvalidRequestError(
                    ApiErrorCode.E_INVALID_ROLE, f"Students cannot set {name}"
                )
    elif fields.get("struggles"):
        raise InvalidRequestError(ApiErrorCode.E_INVALID_ROLE, "Tutors cannot set struggles")


# =============================================================================
# Tutor subjects
# =============================================================================


def sync_tutor_subjects(
    db: Session, tutor_id: UUID, subjects: Iterable[str]
) -> tuple[set[str], set[str]]:
    """Make the tutor's tutor_subjects rows equal `subjects`.

    Inserts and deletes are batched. MUST be called within the transaction
    that writes Profile.specialties; it does not commit.

    Returns:
        (added, removed) subject sets.
    """
    wanted = set(subjects)
    existing = set(
        db.scalars(select(TutorSubject.subject).where(TutorSubject.tutor_id == tutor_id))
    )

    to_remove = existing - wanted
    to_add = wanted - existing

    if to_remove:
        db.execute(
            delete(TutorSubject).where(
                TutorSubject.tutor_id == tutor_id, TutorSubject.subject.in_(to_remove)
            )
        )
    if to_add:
        db.execute(
            insert(TutorSubject),
            [{"tutor_id": tutor_id, "subject": subject} for subject in sorted(to_add)],
        )

    return to_add, to_remove


def get_tutor_subjects(db: Session, tutor_id: UUID) -> list[str]:
    get_profile_model(db, tutor_id)
    return list(
        db.scalars(
            select(TutorSubject.subject)
            .where(TutorSubject.tutor_id == tutor_id)
            .order_by(TutorSubject.subject)
        )
    )


# =============================================================================
# Service Functions
# =============================================================================


def get_profile(db: Session, user_id: UUID) -> ProfileOut:
    return ProfileOut.model_validate(get_profile_model(db, user_id))


def create_profile(
    db: Session, user_id: UUID, request: CreateProfileRequest
) -> ProfileOut:
    """Create the caller's profile.

    Raises:
        ConflictError(E_PROFILE_EXISTS): The identity already has a profile.
        ConflictError(E_USERNAME_TAKEN): Another profile uses the username.
        InvalidRequestError(E_INVALID_ROLE): Field not allowed for the role.
    """
    if db.scalar(select(Profile.id).where(Profile.user_id == user_id)) is not None:
        raise ConflictError(ApiErrorCode.E_PROFILE_EXISTS, "Profile already exists")

    fields = request.model_dump(exclude_unset=True)
    _validate_role_fields(request.role.value, fields)

    specialties = _subject_values(request.specialties or [])
    profile = Profile(
        user_id=user_id,
        username=request.username,
        email=request.email,
        role=request.role.value,
        hourly_rate=request.hourly_rate,
        specialties=specialties,
        struggles=_subject_values(request.struggles or []),
        bio=request.bio,
    )

    try:
        with transaction(db):
            db.add(profile)
            db.flush()
            if specialties:
                sync_tutor_subjects(db, user_id, specialties)
    except IntegrityError:
        # Lost a race on user_id, or the username is taken
        if db.scalar(select(Profile.id).where(Profile.user_id == user_id)) is not None:
            raise ConflictError(ApiErrorCode.E_PROFILE_EXISTS, "Profile already exists") from None
        raise ConflictError(ApiErrorCode.E_USERNAME_TAKEN, "Username is already taken") from None

    logger.info("profile_created", user_id=str(user_id), role=profile.role)
    return ProfileOut.model_validate(profile)


def create_profile_with_retry(
    db: Session,
    user_id: UUID,
    request: CreateProfileRequest,
    *,
    attempts: int | None = None,
    delay_s: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProfileOut:
    """Signup profile creation with a fixed retry.

    Only transient store errors (OperationalError) are retried, with a fixed
    delay between attempts. Domain errors surface immediately.
    """
    if attempts is None or delay_s is None:
        settings = get_settings()
        attempts = attempts if attempts is not None else settings.profile_create_attempts
        delay_s = delay_s if delay_s is not None else settings.profile_create_retry_delay_s

    attempt = 1
    while True:
        try:
            return create_profile(db, user_id, request)
        except OperationalError:
            db.rollback()
            if attempt >= attempts:
                logger.error("profile_create_failed", user_id=str(user_id), attempts=attempt)
                raise
            logger.warning("profile_create_retry", user_id=str(user_id), attempt=attempt)
            sleep(delay_s)
            attempt += 1


def update_profile(db: Session, user_id: UUID, patch: UpdateProfileRequest) -> ProfileOut:
    """Apply a partial update to the caller's profile.

    When specialties are present, tutor_subjects is diffed against them in
    the same transaction.

    Raises:
        NotFoundError(E_PROFILE_NOT_FOUND): No profile for user_id.
        InvalidRequestError(E_INVALID_REQUEST): username sent as null.
        InvalidRequestError(E_INVALID_ROLE): Field not allowed for the role.
        ConflictError(E_USERNAME_TAKEN): Another profile uses the username.
    """
    fields = patch.model_dump(exclude_unset=True)
    if "username" in fields and fields["username"] is None:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "username cannot be null")

    try:
        with transaction(db):
            profile = get_profile_model(db, user_id, for_update=True)
            _validate_role_fields(profile.role, fields)

            if "specialties" in fields:
                fields["specialties"] = _subject_values(fields["specialties"] or [])
                added, removed = sync_tutor_subjects(db, user_id, fields["specialties"])
                logger.info(
                    "tutor_subjects_synced",
                    user_id=str(user_id),
                    added=sorted(added),
                    removed=sorted(removed),
                )
            if "struggles" in fields:
                fields["struggles"] = _subject_values(fields["struggles"] or [])

            for name, value in fields.items():
                setattr(profile, name, value)
            profile.updated_at = utcnow()
            db.flush()
    except IntegrityError:
        raise ConflictError(ApiErrorCode.E_USERNAME_TAKEN, "Username is already taken") from None

    logger.info("profile_updated", user_id=str(user_id), fields=sorted(fields))
    return ProfileOut.model_validate(profile)


def search_profiles(
    db: Session,
    query: str,
    role: ProfileRole | None = None,
    subject: Subject | None = None,
    limit: int = MAX_SEARCH_RESULTS,
) -> list[ProfileSummary]:
    """Case-insensitive username substring search, optionally by role or tutor subject."""
    stmt = select(Profile)
    if query:
        stmt = stmt.where(func.lower(Profile.username).contains(query.lower(), autoescape=True))
    if role is not None:
        stmt = stmt.where(Profile.role == role.value)
    if subject is not None:
        stmt = stmt.join(TutorSubject, TutorSubject.tutor_id == Profile.user_id).where(
            TutorSubject.subject == subject.value
        )
    stmt = stmt.order_by(Profile.username).limit(min(max(limit, 1), MAX_SEARCH_RESULTS))
    return [ProfileSummary.model_validate(p) for p in db.scalars(stmt)]
