from app.db.repo.coop_answers_repo import CoopAnswersRepo
from app.db.repo.coop_sessions_repo import CoopSessionsRepo
from app.db.repo.friendships_repo import FriendshipsRepo
from app.db.repo.questions_repo import QuestionsRepo
from app.db.repo.users_repo import UsersRepo

__all__ = [
    "CoopAnswersRepo",
    "CoopSessionsRepo",
    "FriendshipsRepo",
    "QuestionsRepo",
    "UsersRepo",
]
