import bleach


def sanitize_string(text, max_length=None):
    """Strip HTML tags and surrounding whitespace"""
    if text is None:
        return ''

    text = bleach.clean(str(text), tags=[], strip=True).strip()

    if max_length:
        text = text[:max_length]

    return text
