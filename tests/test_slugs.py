import pytest
from slugs import slugify


def test_example_title():
    assert slugify('Hello, World! 2024') == 'hello-world-2024'


@pytest.mark.parametrize('title,expected', [
    ('Simple', 'simple'),
    ('Go 1.22 Routing', 'go-122-routing'),
    ('many    spaces', 'many-spaces'),
    ('already-hyphenated title', 'already-hyphenated-title'),
    ('Ünïcödé Çafé', 'ncd-af'),
    ('!!!', ''),
    ('', ''),
])
def test_slugify(title, expected):
    assert slugify(title) == expected


@pytest.mark.parametrize('title', [
    'Hello, World! 2024',
    '  padded  title  ',
    'a - b',
    'Why I Switched (Again)',
])
def test_slugify_is_idempotent(title):
    slug = slugify(title)
    assert slugify(slug) == slug
