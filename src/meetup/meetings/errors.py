"""Domain errors raised by the meeting lifecycle and participation engine.

Every rejected precondition is detected before anything is written and
surfaces as a distinct MeetingError subclass. The ``kind`` attribute is what
the HTTP layer translates into a status code.
"""

from __future__ import annotations

import uuid
from enum import Enum


class ErrorKind(str, Enum):
    """Category of a domain failure, independent of transport."""

    NOT_FOUND = "not_found"
    GONE = "gone"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    REJECTED_PRECONDITION = "rejected_precondition"
    PAST_DEADLINE = "past_deadline"
    INTERNAL = "internal"


class MeetingError(Exception):
    """Base class for meeting and participation failures."""

    kind: ErrorKind = ErrorKind.INTERNAL


class MeetingNotFoundError(MeetingError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, meeting_id: uuid.UUID) -> None:
        self.meeting_id = meeting_id
        super().__init__(f"Meeting not found: {meeting_id}")


class ParticipationNotFoundError(MeetingError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, meeting_id: uuid.UUID, participation_id: uuid.UUID) -> None:
        self.meeting_id = meeting_id
        self.participation_id = participation_id
        super().__init__(
            f"Participation {participation_id} not found in meeting {meeting_id}"
        )


class MeetingGoneError(MeetingError):
    kind = ErrorKind.GONE

    def __init__(self, meeting_id: uuid.UUID) -> None:
        self.meeting_id = meeting_id
        super().__init__(f"Meeting has been deleted: {meeting_id}")


class NotMeetingHostError(MeetingError):
    kind = ErrorKind.FORBIDDEN

    def __init__(self, meeting_id: uuid.UUID, user_id: uuid.UUID) -> None:
        self.meeting_id = meeting_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not the host of meeting {meeting_id}")


class DuplicateParticipationError(MeetingError):
    kind = ErrorKind.CONFLICT

    def __init__(self, meeting_id: uuid.UUID, user_id: uuid.UUID) -> None:
        self.meeting_id = meeting_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} already has a participation in meeting {meeting_id}"
        )


class CapacityExceededError(MeetingError):
    """Raised when a meeting has no room for the requested change.

    ``requested`` is the number of seats the operation needed.
    """

    kind = ErrorKind.REJECTED_PRECONDITION

    def __init__(
        self,
        meeting_id: uuid.UUID,
        capacity: int,
        occupancy: int,
        requested: int = 1,
    ) -> None:
        self.meeting_id = meeting_id
        self.capacity = capacity
        self.occupancy = occupancy
        self.requested = requested
        super().__init__(
            f"Meeting {meeting_id} is full: {occupancy}/{capacity} seats taken, "
            f"{requested} requested"
        )


class InvalidParticipationTransitionError(MeetingError):
    """Raised when the target participation is not in the state an operation needs."""

    kind = ErrorKind.REJECTED_PRECONDITION

    def __init__(self, participation_id: uuid.UUID, current: str, required: str) -> None:
        self.participation_id = participation_id
        self.current = current
        self.required = required
        super().__init__(
            f"Participation {participation_id} is {current}, expected {required}"
        )


class HostParticipationError(MeetingError):
    """Raised when the host tries to join their own meeting or is targeted as an applicant."""

    kind = ErrorKind.REJECTED_PRECONDITION

    def __init__(self, meeting_id: uuid.UUID) -> None:
        self.meeting_id = meeting_id
        super().__init__(
            f"The host of meeting {meeting_id} cannot be an applicant"
        )


class MeetingDeadlinePassedError(MeetingError):
    kind = ErrorKind.PAST_DEADLINE

    def __init__(self, meeting_id: uuid.UUID) -> None:
        self.meeting_id = meeting_id
        super().__init__(f"Meeting {meeting_id} has already taken place")


class MeetingFinishedError(MeetingError):
    kind = ErrorKind.REJECTED_PRECONDITION

    def __init__(self, meeting_id: uuid.UUID) -> None:
        self.meeting_id = meeting_id
        super().__init__(f"Finished meeting {meeting_id} cannot be deleted")


class AddressNotFoundError(MeetingError):
    kind = ErrorKind.REJECTED_PRECONDITION

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Address could not be resolved: {address!r}")


class GeocodingError(MeetingError):
    kind = ErrorKind.INTERNAL


class MeetingStoreError(MeetingError):
    """Unexpected store failure; the unit of work was rolled back."""

    kind = ErrorKind.INTERNAL
