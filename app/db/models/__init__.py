from app.db.models.coop_answers import CoopAnswer
from app.db.models.coop_sessions import CoopSession
from app.db.models.curriculum import Course, Module, Unit
from app.db.models.friendships import Friendship
from app.db.models.questions import Question
from app.db.models.users import User

__all__ = [
    "CoopAnswer",
    "CoopSession",
    "Course",
    "Friendship",
    "Module",
    "Question",
    "Unit",
    "User",
]
