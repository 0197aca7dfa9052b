from .teacher import Teacher
from .profile import Profile
from .user_role import UserRole, Role
from .student import Student
from .class_type import ClassType
from .schedule import Schedule, DayOfWeek
from .block import Block
from .class_session import ClassSession, EventType
from .booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from .audit_log import AuditLog, ActorType
from .job import Job, JobStatus
