"""Step layout read/write path.

`fetch()` never fails: a broken or unreachable config must not block
onboarding, so any error yields StepConfig.default().  `persist()` lets
BoundaryError propagate so the admin sees a failed save.
"""

import logging

from onboarding.schemas.onboarding import StepConfig
from onboarding.services.api_client import BackendClient

logger = logging.getLogger(__name__)


class ConfigResolver:
    def __init__(self, client: BackendClient):
        self.client = client

    async def fetch(self) -> StepConfig:
        try:
            payload = await self.client.get_admin_config()
            config = StepConfig.from_remote(payload)
        except Exception as e:
            logger.warning("Admin config unavailable, using default layout: %s", e)
            return StepConfig.default()

        logger.info("Admin config loaded: %s", config.steps)
        return config

    async def persist(self, config: StepConfig) -> None:
        """Write the layout as a field-group → step mapping.

        Raises:
            BoundaryError: the backend rejected or never received the save
        """
        page_map = config.to_page_map()
        await self.client.update_admin_config(page_map)
        logger.info("Admin config saved: %s", page_map)
