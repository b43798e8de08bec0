"""
Host-palette commands. Each entry is a zero-argument coroutine function;
feedback goes through the notifier, nothing is returned to the host.
"""

from .constants import CMD_SHOW_STATS, CMD_REFRESH_AUTH, CMD_CLEAR_AUTH, CMD_ENTER_TOKEN


def build_commands(aggregator, auth, notifier):

    async def show_current_stats():
        notifier.info(aggregator.format_stats())

    async def refresh_authentication():
        credential = await auth.refresh()
        if credential is not None:
            notifier.info(f"Signed in as {credential.display_name}.")

    async def clear_authentication():
        await auth.clear()
        notifier.info("Signed out. Stats will not be sent until you sign in again.")

    async def enter_token_manually():
        credential = await auth.enter_token_manually()
        if credential is not None:
            notifier.info(f"Signed in as {credential.display_name}.")

    return {
        CMD_SHOW_STATS: show_current_stats,
        CMD_REFRESH_AUTH: refresh_authentication,
        CMD_CLEAR_AUTH: clear_authentication,
        CMD_ENTER_TOKEN: enter_token_manually,
    }
