import logging
from datetime import datetime
from typing import NoReturn
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import String, delete, select, type_coerce, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from errors import PostNotFound, StorageError
from models import Post

logger = logging.getLogger('malt.repository')


class PostRepository:
    '''All reads and writes against the posts table.

    One instance is built per app and shared by every request thread. It holds
    no state of its own: each call goes through the request's scoped session,
    and SQLite's file locking orders concurrent writers.
    '''

    def __init__(self, db: SQLAlchemy) -> None:
        self.db = db

    def list_summaries(self) -> list[Post]:
        '''Every post minus its content, newest first. Unreadable rows are logged and skipped.'''
        # published_at comes back as raw text so one bad value can't fail the whole fetch
        query = select(
            Post.slug,
            Post.title,
            Post.description,
            type_coerce(Post.published_at, String),
        ).order_by(Post.published_at.desc())
        try:
            rows = self.db.session.execute(query).all()
        except SQLAlchemyError as exc:
            self._fail(exc)

        posts : list[Post] = []
        for slug, title, description, published_at in rows:
            try:
                posts.append(_summary_from_row(slug, title, description, published_at))
            except (TypeError, ValueError) as exc:
                logger.warning({'msg': 'post_row_skipped', 'slug': slug, 'error': str(exc)})
        return posts

    def get(self, slug: str) -> Post:
        '''The full post. A row that can't be read is reported as missing.'''
        query = select(
            Post.slug,
            Post.title,
            Post.description,
            type_coerce(Post.published_at, String),
            Post.content,
        ).where(Post.slug == slug)
        try:
            row = self.db.session.execute(query).first()
        except SQLAlchemyError as exc:
            self._fail(exc)
        if row is None:
            raise PostNotFound(slug)

        *summary, content = row
        try:
            if content is None:
                raise TypeError('NULL content')
            post : Post = _summary_from_row(*summary)
        except (TypeError, ValueError) as exc:
            logger.warning({'msg': 'post_row_unreadable', 'slug': slug, 'error': str(exc)})
            raise PostNotFound(slug) from exc
        post.content = content
        return post

    def upsert(self, post: Post) -> str:
        '''Insert the post, or overwrite title/description/content of the row with the same slug.

        An existing row keeps its slug and its original published_at.
        '''
        stmt = insert(Post).values(
            slug=post.slug,
            title=post.title,
            description=post.description,
            content=post.content,
            published_at=post.published_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Post.slug],
            set_={
                'title': stmt.excluded.title,
                'description': stmt.excluded.description,
                'content': stmt.excluded.content,
            },
        )
        self._write(stmt)
        return post.slug

    def update(self, slug: str, title: str, description: str, content: str) -> None:
        stmt = (
            update(Post)
            .where(Post.slug == slug)
            .values(title=title, description=description, content=content)
            .execution_options(synchronize_session=False)
        )
        if self._write(stmt) == 0:
            raise PostNotFound(slug)

    def delete(self, slug: str) -> None:
        stmt = delete(Post).where(Post.slug == slug).execution_options(synchronize_session=False)
        if self._write(stmt) == 0:
            raise PostNotFound(slug)

    def _write(self, stmt) -> int:
        session = self.db.session
        try:
            rowcount : int = session.execute(stmt).rowcount
            session.commit()
        except SQLAlchemyError as exc:
            self._fail(exc)
        return rowcount

    def _fail(self, exc: SQLAlchemyError) -> NoReturn:
        self.db.session.rollback()
        logger.error({'msg': 'storage_error', 'error': str(exc)})
        raise StorageError(str(getattr(exc, 'orig', None) or exc)) from exc


def _summary_from_row(slug, title, description, published_at) -> Post:
    if slug is None or title is None or description is None:
        raise TypeError('NULL in a text column')
    if published_at is None:
        raise TypeError('NULL published_at')
    return Post(
        slug=slug,
        title=title,
        description=description,
        published_at=datetime.fromisoformat(published_at),
    )
