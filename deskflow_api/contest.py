"""
Popularity contest: anonymous counts of OS, OS family, language and version,
one vote per device per day, bucketed by calendar month.
"""

import asyncio
from datetime import datetime

from loguru import logger

from deskflow_api.errors import AggregationError
from deskflow_api.settings import LANGUAGE_HEADER, USER_AGENT_HEADER, VERSION_HEADER
from deskflow_api.stats import StatsAggregator, month_key
from deskflow_api.user_agent import parse_user_agent
from deskflow_api.votes import VoteLedger, requester_key_from


async def update_popularity_contest(headers, ledger: VoteLedger, aggregator: StatsAggregator,
                                    now: datetime) -> bool:
    """Returns True when the request was counted."""
    identity = headers.get(USER_AGENT_HEADER)
    info = parse_user_agent(identity, headers.get(LANGUAGE_HEADER), headers.get(VERSION_HEADER))
    logger.debug("User-Agent: {}", identity)
    if info is None:
        logger.debug("Not a Deskflow client, skipping popularity contest update")
        return False

    logger.debug("App info: OS={} ({}), Language={}, Version={}",
                 info.os, info.os_family, info.language, info.version)
    if info.is_empty():
        logger.debug("No stats info provided, skipping popularity contest update")
        return False

    requester_key = requester_key_from(headers)
    if await ledger.has_voted_today(requester_key, identity, now):
        logger.debug("Already voted today, skipping popularity contest update")
        return False

    await ledger.record_vote(requester_key, identity, now)
    await aggregator.increment(month_key(now), info)
    return True


async def guarded(coro):
    """Await `coro`, logging any failure instead of raising it."""
    try:
        return await coro
    except AggregationError as e:
        logger.warning("Error updating popularity contest: {}", e.message)
    except Exception as e:
        logger.opt(exception=e).warning("Error updating popularity contest: {}", e)
    return None


def detach(coro, schedule=None):
    """
    Run `coro` in the background without holding up the response.
    `schedule` is the runtime's waitUntil; without one the task goes on the running loop.
    """
    task = guarded(coro)
    if schedule is None:
        return asyncio.ensure_future(task)
    return schedule(task)
