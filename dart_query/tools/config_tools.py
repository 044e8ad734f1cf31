"""Workspace configuration MCP tool."""

from ..exceptions import ValidationError
from ..logger_config import log_mcp_call
from ..models import DartConfig

CONFIG_SECTIONS = ("assignees", "dartboards", "statuses", "tags", "priorities", "sizes", "folders")


def register_config_tools(mcp_server, services):
    """Register the configuration tool with the MCP server."""

    @mcp_server.tool()
    @log_mcp_call
    async def get_config(cache_bust: bool = False, include: list[str] | None = None) -> DartConfig:
        """Get the workspace configuration: assignees, dartboards, statuses, tags, priorities, sizes and folders.

        Results are cached for 5 minutes. This is usually the first call to make;
        it also verifies that the API token works.

        Parameters:
            cache_bust (bool): Ignore the cache and fetch fresh config (default: False)
            include (List[str], optional): Return only these sections; the others come back empty

        Returns:
            DartConfig: Workspace configuration with ``cached_at`` and ``cache_ttl_seconds``
        """
        if include:
            unknown = [section for section in include if section not in CONFIG_SECTIONS]
            if unknown:
                raise ValidationError(
                    f'Invalid include section: "{unknown[0]}". Valid sections: {", ".join(CONFIG_SECTIONS)}',
                    field="include",
                    value=unknown[0],
                )

        config = await services.config_provider.fetch(cache_bust=cache_bust)
        if include:
            cleared = {section: [] for section in CONFIG_SECTIONS if section not in include}
            config = config.model_copy(update=cleared)
        return config

    return {"get_config": get_config}
