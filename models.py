from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from typing import Any

db = SQLAlchemy()

class Post(db.Model):
    __tablename__ = 'posts'
    slug = db.Column(db.Text, primary_key=True)
    title = db.Column(db.Text)
    description = db.Column(db.Text)
    content = db.Column(db.Text)
    published_at = db.Column(db.DateTime)

    def to_summary(self) -> dict[str, Any]:
        return {
            'slug': self.slug,
            'title': self.title,
            'description': self.description,
            'published_at': format_timestamp(self.published_at),
        }

    def to_dict(self) -> dict[str, Any]:
        data : dict[str, Any] = self.to_summary()
        data['content'] = self.content
        return data


def utcnow() -> datetime:
    # SQLite keeps no offset, so timestamps are stored as naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
