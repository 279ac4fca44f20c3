import re

_TAG_RE = re.compile(r"<[^>]*>")

DESCRIPTION_LIMIT = 1000


def slugify(title: str) -> str:
    slug = title.lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


def strip_html(value: str | None) -> str:
    if not value:
        return ""
    return _TAG_RE.sub("", value)


def sanitize_description(description: str | None, limit: int = DESCRIPTION_LIMIT) -> str:
    """Strip HTML tags and truncate to ``limit`` characters, ellipsis included."""
    text = strip_html(description)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text
