from sqlalchemy import String, and_, case, cast, or_, update

from eventhub.extensions import db
from eventhub.models import Event
from eventhub.models.enums import EventStatus, Visibility
from eventhub.utils.dates import utcnow
from .base_repository import BaseRepository

COUNTER_COLUMNS = [
    "registered_attendees",
    "waitlist_current_size",
    "registrations_count",
    "attendees_count",
    "views",
    "updated_at",
]

SORT_COLUMNS = {
    "start_date": Event.start_date,
    "schedule.startDate": Event.start_date,
    "end_date": Event.end_date,
    "created_at": Event.created_at,
    "title": Event.title,
    "views": Event.views,
}


def json_list_contains(column, value):
    # JSON arrays are stored as text on SQLite; match the quoted element.
    return cast(column, String).like(f'%"{value}"%')


def overlapping(start, end, strict_enclosure=False):
    """Three-way interval overlap: starts inside, ends inside, or encloses."""
    if strict_enclosure:
        encloses = and_(Event.start_date < start, Event.end_date > end)
    else:
        encloses = and_(Event.start_date <= start, Event.end_date >= end)
    return or_(
        and_(Event.start_date >= start, Event.start_date <= end),
        and_(Event.end_date >= start, Event.end_date <= end),
        encloses,
    )


def _as_list(value):
    if value is None:
        return None
    return value if isinstance(value, (list, tuple, set)) else [value]


class EventRepository(BaseRepository):
    def get(self, event_id: int) -> Event | None:
        return db.session.get(Event, event_id)

    def get_by_identifier(self, identifier, visibilities=None) -> Event | None:
        query = Event.query
        if str(identifier).isdigit():
            query = query.filter(Event.id == int(identifier))
        else:
            query = query.filter(Event.slug == identifier)
        if visibilities:
            query = query.filter(Event.visibility.in_(visibilities))
        return query.first()

    def slug_exists(self, slug: str, exclude_id: int | None = None) -> bool:
        query = Event.query.filter(Event.slug == slug)
        if exclude_id is not None:
            query = query.filter(Event.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    def create(self, event: Event) -> Event:
        return self.add(event)

    def filtered_query(self, filters: dict):
        query = Event.query
        now = filters.get("now") or utcnow()

        statuses = _as_list(filters.get("status"))
        if statuses:
            query = query.filter(Event.status.in_(statuses))
        visibilities = _as_list(filters.get("visibility"))
        if visibilities:
            query = query.filter(Event.visibility.in_(visibilities))
        if filters.get("type"):
            query = query.filter(Event.type == filters["type"])
        if filters.get("format"):
            query = query.filter(Event.format == filters["format"])
        if filters.get("industry"):
            query = query.filter(json_list_contains(Event.industries, filters["industry"]))
        if filters.get("topic"):
            query = query.filter(json_list_contains(Event.topics, filters["topic"]))
        if filters.get("featured"):
            query = query.filter(Event.featured.is_(True))
        if filters.get("ids") is not None:
            query = query.filter(Event.id.in_(filters["ids"]))
        if filters.get("exclude_id") is not None:
            query = query.filter(Event.id != filters["exclude_id"])

        if filters.get("upcoming"):
            query = query.filter(Event.start_date >= now)
        elif filters.get("past"):
            query = query.filter(Event.end_date < now)
        elif filters.get("start_date") and filters.get("end_date"):
            query = query.filter(
                overlapping(filters["start_date"], filters["end_date"], strict_enclosure=True)
            )

        if filters.get("search"):
            pattern = f"%{filters['search']}%"
            query = query.filter(
                or_(
                    Event.title.ilike(pattern),
                    Event.summary.ilike(pattern),
                    Event.description.ilike(pattern),
                    cast(Event.topics, String).ilike(pattern),
                    cast(Event.presenters, String).ilike(pattern),
                )
            )
        return query

    def find(self, filters: dict, page=1, per_page=10, sort_field=None, sort_order="desc"):
        column = SORT_COLUMNS.get(sort_field or "start_date", Event.start_date)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        return (
            self.filtered_query(filters)
            .order_by(ordering, Event.id.asc())
            .paginate(page=page, per_page=per_page, error_out=False)
        )

    def find_all(self, filters: dict) -> list[Event]:
        return self.filtered_query(filters).order_by(Event.start_date.asc()).all()

    def find_overlapping(
        self,
        start,
        end,
        exclude_id=None,
        strict_enclosure=False,
        statuses=None,
        visibility=None,
        type=None,
        format=None,
        industry=None,
        topic=None,
    ) -> list[Event]:
        query = Event.query.filter(overlapping(start, end, strict_enclosure))
        if exclude_id is not None:
            query = query.filter(Event.id != exclude_id)
        if statuses:
            query = query.filter(Event.status.in_(statuses))
        if visibility:
            query = query.filter(Event.visibility == visibility)
        if type:
            query = query.filter(Event.type == type)
        if format:
            query = query.filter(Event.format == format)
        if industry:
            query = query.filter(json_list_contains(Event.industries, industry))
        if topic:
            query = query.filter(json_list_contains(Event.topics, topic))
        return query.order_by(Event.start_date.asc(), Event.id.asc()).all()

    def find_upcoming(self, type=None, industry=None, topic=None, limit=10) -> list[Event]:
        query = Event.query.filter(
            Event.status == EventStatus.PUBLISHED,
            Event.visibility == Visibility.PUBLIC,
            Event.start_date > utcnow(),
        )
        if type:
            query = query.filter(Event.type == type)
        if industry:
            query = query.filter(json_list_contains(Event.industries, industry))
        if topic:
            query = query.filter(json_list_contains(Event.topics, topic))
        return query.order_by(Event.start_date.asc()).limit(limit).all()

    def find_featured(self, limit=3) -> list[Event]:
        return (
            Event.query.filter(
                Event.status == EventStatus.PUBLISHED,
                Event.featured.is_(True),
                Event.visibility == Visibility.PUBLIC,
                Event.start_date > utcnow(),
            )
            .order_by(Event.start_date.asc())
            .limit(limit)
            .all()
        )

    def find_by_ids(self, ids, upcoming=False, past=False, start=None, end=None) -> list[Event]:
        if not ids:
            return []
        now = utcnow()
        query = Event.query.filter(Event.id.in_(ids))
        if upcoming:
            query = query.filter(Event.start_date >= now)
            return query.order_by(Event.start_date.asc()).all()
        if past:
            query = query.filter(Event.end_date < now)
        elif start and end:
            query = query.filter(overlapping(start, end, strict_enclosure=True))
        return query.order_by(Event.start_date.desc()).all()

    # Atomic counter updates. Each one is a single guarded UPDATE so two
    # concurrent requests can never push a counter past its limit.

    def reserve_seat(self, event_id: int) -> bool:
        return self._guarded_update(
            event_id,
            [
                or_(
                    Event.max_attendees.is_(None),
                    Event.max_attendees == 0,
                    Event.registered_attendees < Event.max_attendees,
                )
            ],
            registered_attendees=Event.registered_attendees + 1,
            registrations_count=Event.registrations_count + 1,
        )

    def release_seat(self, event_id: int) -> bool:
        return self._guarded_update(
            event_id,
            [Event.registered_attendees > 0],
            registered_attendees=Event.registered_attendees - 1,
        )

    def reserve_waitlist_slot(self, event_id: int) -> bool:
        return self._guarded_update(
            event_id,
            [
                Event.waitlist_enabled.is_(True),
                or_(
                    Event.waitlist_max_size.is_(None),
                    Event.waitlist_max_size == 0,
                    Event.waitlist_current_size < Event.waitlist_max_size,
                ),
            ],
            waitlist_current_size=Event.waitlist_current_size + 1,
            registrations_count=Event.registrations_count + 1,
        )

    def release_waitlist_slot(self, event_id: int) -> bool:
        return self._guarded_update(
            event_id,
            [Event.waitlist_current_size > 0],
            waitlist_current_size=Event.waitlist_current_size - 1,
        )

    def promote_waitlist_slot(self, event_id: int) -> bool:
        """Move one waitlist slot into a seat, if a seat is free."""
        return self._guarded_update(
            event_id,
            [
                Event.max_attendees.isnot(None),
                Event.registered_attendees < Event.max_attendees,
            ],
            registered_attendees=Event.registered_attendees + 1,
            waitlist_current_size=case(
                (Event.waitlist_current_size > 0, Event.waitlist_current_size - 1),
                else_=0,
            ),
        )

    def record_attendee(self, event_id: int) -> bool:
        return self._guarded_update(
            event_id, [], attendees_count=Event.attendees_count + 1
        )

    def increment_views(self, event_id: int) -> bool:
        return self._guarded_update(event_id, [], views=Event.views + 1)

    def _guarded_update(self, event_id: int, criteria: list, **values) -> bool:
        stmt = (
            update(Event)
            .where(Event.id == event_id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        instance = db.session.identity_map.get(db.session.identity_key(Event, event_id))
        if instance is not None:
            self.expire(instance, COUNTER_COLUMNS)
        return result.rowcount > 0
