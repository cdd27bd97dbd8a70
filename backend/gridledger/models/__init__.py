from gridledger.models.activity_log import ActivityLog  # noqa: F401
from gridledger.models.notification import Notification, NotificationType  # noqa: F401
from gridledger.models.timetable import Timetable, TimetableStatus  # noqa: F401
from gridledger.models.timetable_history import TimetableHistoryEntry  # noqa: F401
from gridledger.models.user import User, UserRole  # noqa: F401
