from eventhub.extensions import db


class BaseRepository:
    """Shared unit-of-work helpers; the service decides when a transaction ends."""

    def add(self, instance):
        db.session.add(instance)
        db.session.flush()
        return instance

    def save(self, instance):
        db.session.add(instance)
        db.session.commit()
        return instance

    def delete(self, instance):
        db.session.delete(instance)
        db.session.flush()

    def commit(self):
        db.session.commit()

    def rollback(self):
        db.session.rollback()

    def expire(self, instance, attrs=None):
        db.session.expire(instance, attrs)
