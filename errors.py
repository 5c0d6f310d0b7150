class MaltError(Exception):
    '''Base class for errors raised by the post store.'''


class PostNotFound(MaltError, LookupError):
    def __init__(self, slug: str) -> None:
        super().__init__(f'no post with slug {slug!r}')
        self.slug = slug


class StorageError(MaltError):
    '''The database rejected a query or write. The message carries the driver's error text.'''
