"""Run independent side effects without letting one failure cancel the rest."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional


@dataclass
class Outcome:
    name: str
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None


async def run_side_effects(
    effects: Dict[str, Awaitable],
    logger: logging.Logger,
    context: str = "",
) -> Dict[str, Outcome]:
    """Await every effect concurrently and report each one's outcome.

    Failures are logged and returned, never raised.
    """
    names = list(effects)
    results = await asyncio.gather(*effects.values(), return_exceptions=True)
    outcomes = {}
    for name, result in zip(names, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            suffix = f" ({context})" if context else ""
            logger.error(f"{name} failed{suffix}: {result}")
            outcomes[name] = Outcome(name, ok=False, error=result)
        else:
            outcomes[name] = Outcome(name, ok=True, value=result)
    return outcomes
