"""Constants for tasklanes.

This module centralizes collection names, lane ordering and default values used
throughout the application.
"""

from tasklanes.models.task import TaskStatus, TaskTag


# Document store collections
TASKS_COLLECTION = "tasks"
USERS_COLLECTION = "users"

# Every task query and write is scoped by this document field
OWNER_FIELD = "user_id"

# Lane rank used when a whole collection is listed
LANE_ORDER = {
    TaskStatus.TODO.value: 0,
    TaskStatus.IN_PROGRESS.value: 1,
    TaskStatus.COMPLETED.value: 2,
}

# Order index of the first task in an empty lane
FIRST_ORDER = 0

# Dashboard windows
UPCOMING_WINDOW_DAYS = 3
UPCOMING_LIMIT = 5
RECENTLY_COMPLETED_LIMIT = 3

# Tag palette
TAG_COLORS = ["#4285F4", "#EA4335", "#FBBC05", "#34A853", "#A142F4", "#FA7B17", "#F44786"]

PREDEFINED_TAGS = [
    TaskTag(id="tag1", name="Important", color="#EA4335"),
    TaskTag(id="tag2", name="Urgent", color="#FA7B17"),
    TaskTag(id="tag3", name="Meeting", color="#4285F4"),
    TaskTag(id="tag4", name="Research", color="#34A853"),
    TaskTag(id="tag5", name="Documentation", color="#A142F4"),
    TaskTag(id="tag6", name="Planning", color="#F44786"),
]
