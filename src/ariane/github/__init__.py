import aiocache
from gidgethub import aiohttp as gh_aiohttp
from gidgethub.apps import get_installation_access_token
from sanic.log import logger

from ariane import config as app_config
from ariane.exceptions import ConfigError
from ariane.metric import record_api_call


@aiocache.cached(ttl=app_config.ACCESS_TOKEN_TTL, key_builder=lambda fn, gh, id: id)
async def get_access_token(gh: gh_aiohttp.GitHubAPI, installation_id: int) -> str:
    """Installation token for ``installation_id``, cached for ``ACCESS_TOKEN_TTL``."""
    if not app_config.GITHUB_APP_ID or app_config.GITHUB_PRIVATE_KEY is None:
        raise ConfigError("GITHUB_APP_ID and GITHUB_PRIVATE_KEY must be set")

    logger.debug("Requesting installation token for %d", installation_id)
    record_api_call(endpoint="installation_token")
    response = await get_installation_access_token(
        gh,
        installation_id=installation_id,
        app_id=str(app_config.GITHUB_APP_ID),
        private_key=app_config.GITHUB_PRIVATE_KEY,
    )
    return response["token"]
