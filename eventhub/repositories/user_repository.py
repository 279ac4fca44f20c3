from eventhub.extensions import db
from eventhub.models import User
from .base_repository import BaseRepository


class UserRepository(BaseRepository):
    def create(self, user):
        return self.save(user)

    def find_by_email(self, email):
        return User.query.filter_by(email=email.strip().lower()).first()

    def find_by_id(self, user_id: int):
        return db.session.get(User, user_id)
