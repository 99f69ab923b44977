"""
Image identifiers.

An identifier names one image as ``repository:tag``. The repository is
everything before the first ``:``; the tag is everything after it and
defaults to ``latest``.
"""

from typing import NamedTuple

DEFAULT_TAG = "latest"
SEPARATOR = ":"


class ImageIdentifier(NamedTuple):
    """A parsed ``repository:tag`` pair."""

    repository: str
    tag: str = DEFAULT_TAG

    def __str__(self) -> str:
        return format_identifier(self.repository, self.tag)


def parse_identifier(name: str) -> ImageIdentifier:
    """
    Split ``name`` on its first ``:``.

    >>> parse_identifier("redis")
    ImageIdentifier(repository='redis', tag='latest')
    >>> parse_identifier("redis:3.2")
    ImageIdentifier(repository='redis', tag='3.2')
    """
    repository, sep, tag = name.partition(SEPARATOR)
    if not sep:
        return ImageIdentifier(repository, DEFAULT_TAG)
    return ImageIdentifier(repository, tag)


def format_identifier(repository: str, tag: str = DEFAULT_TAG) -> str:
    return f"{repository}{SEPARATOR}{tag}"


def normalize_identifier(name: str) -> str:
    """Canonical ``repository:tag`` form of ``name``."""
    return str(parse_identifier(name))
