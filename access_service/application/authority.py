def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def is_super_admin(email: str | None, reviewer_email: str | None) -> bool:
    """Совпадает ли email с настроенным ревьюером.

    Если ревьюер не настроен, ответ всегда False: неявного суперпользователя нет.
    """
    candidate = normalize_email(email)
    reviewer = normalize_email(reviewer_email)
    if not candidate or not reviewer:
        return False
    return candidate == reviewer
