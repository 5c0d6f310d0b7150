import re

_DISALLOWED = re.compile(r'[^a-z0-9 -]+')
_SPACES = re.compile(r' +')


def slugify(title: str) -> str:
    '''Turn a post title into its URL slug.

    "Hello, World! 2024" becomes "hello-world-2024". Hyphens survive, so a
    slug passed back in comes out unchanged. A title made only of punctuation
    gives an empty slug; callers store it as-is.
    '''
    s : str = _DISALLOWED.sub('', title.lower())
    return _SPACES.sub('-', s)
