"""Handler for restart_server."""

import logging

from ..rpc import RestartResult, RestartServerParams, ServerStatus
from .base import HandlerContext

logger = logging.getLogger(__name__)


async def handle_restart_server(
    ctx: HandlerContext, params: RestartServerParams
) -> RestartResult:
    restarted = await ctx.supervisor.restart(params.extensions)
    logger.info(f"Restarted server groups: {restarted or 'none'}")
    return RestartResult(
        restarted=restarted,
        servers=[ServerStatus(**info) for info in ctx.supervisor.describe()],
    )
