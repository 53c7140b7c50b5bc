import typing


def english_enumerate(
    items: typing.Iterable[str], conj: str = ", and ", quote: str = ""
) -> str:
    """
    Joins ``items`` the way a sentence would: ``a``, ``a and b``, ``a, b, and c``.
    Each item is wrapped in ``quote`` if given.
    """
    quoted = [f"{quote}{item}{quote}" for item in items]
    if not quoted:
        return ""
    if len(quoted) == 1:
        return quoted[0]
    if len(quoted) == 2:
        return f"{quoted[0]}{conj.lstrip(',')}{quoted[1]}"
    return ", ".join(quoted[:-1]) + conj + quoted[-1]
