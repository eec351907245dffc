import requests

from .retry import poll_until
from .utils import setup_logger

logger = setup_logger(name="core.health")


def is_pong(url: str, session: requests.Session | None = None) -> bool:
    """Whether url answers with a pong body"""
    http = session or requests
    try:
        response = http.get(url, timeout=5)
    except requests.RequestException as e:
        logger.debug(f"{url} not reachable yet: {e}")
        return False
    return response.ok and "pong" in response.text


def wait_for_pong(
    url: str,
    timeout: float = 300.0,
    session: requests.Session | None = None,
    max_wait: float = 10.0,
) -> bool:
    """
    Poll a ping endpoint with exponential backoff until it answers pong.

    Returns:
        True once the endpoint answered, False when timeout seconds passed first
    """
    logger.info(f"Waiting up to {timeout:.0f}s for {url} to answer")
    ok = poll_until(lambda: is_pong(url, session), timeout=timeout, max_wait=max_wait)
    if ok:
        logger.info(f"{url} answered pong")
    else:
        logger.warning(f"{url} did not answer within {timeout:.0f}s")
    return ok
