"""
Run independent AWS operations concurrently

"""

from concurrent.futures import ThreadPoolExecutor

MAX_WORKERS = 10


def fan_out(func, items, /):
    """
    Call func for each item in parallel

    All calls run to completion. If any of them raised, the first exception in item order
    is raised, so the caller either gets every result or an error.

    :param func: Function of one argument
    :param items: The arguments
    :returns: The results, in the same order as items
    :rtype: list

    """

    items = list(items)
    if not items:
        return []

    if len(items) == 1:
        return [func(items[0])]

    with ThreadPoolExecutor(max_workers=min(len(items), MAX_WORKERS)) as executor:
        futures = [executor.submit(func, item) for item in items]

    return [future.result() for future in futures]
