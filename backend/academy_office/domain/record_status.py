from enum import Enum


class EnrollmentStatus(str, Enum):
    active = "active"
    dropped = "dropped"


class AttendanceStatus(str, Enum):
    present = "present"
    absent = "absent"


class MigrationRunStatus(str, Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"
