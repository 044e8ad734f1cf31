"""Process-wide service container.

Built once at server start and passed to every tool registration function,
so tools share one batch registry and one config cache without module-level
singletons.
"""

from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field

from .api.client import DartClient
from .batch.import_pipeline import ImportPipeline
from .batch.registry import BatchOperationRegistry
from .batch.selector_pipeline import SelectorPipeline
from .cache.config_cache import ConfigCache
from .cache.config_cache import ReferenceConfigProvider
from .config import Settings
from .config import get_settings


@dataclass
class ServerServices:
    """Shared state and collaborators for the tool handlers."""

    settings: Settings
    registry: BatchOperationRegistry
    config_cache: ConfigCache
    client_factory: Callable
    config_provider: ReferenceConfigProvider = field(init=False)
    import_pipeline: ImportPipeline = field(init=False)
    selector_pipeline: SelectorPipeline = field(init=False)

    def __post_init__(self):
        self.config_provider = ReferenceConfigProvider(self.client_factory, self.config_cache)
        self.import_pipeline = ImportPipeline(
            self.registry, self.config_provider, self.client_factory, self.settings
        )
        self.selector_pipeline = SelectorPipeline(
            self.registry, self.config_provider, self.client_factory, self.settings
        )


def build_services(settings: Settings | None = None, client_factory: Callable | None = None) -> ServerServices:
    """Create the service container.

    ``client_factory`` defaults to a ``DartClient`` using the configured token.
    """
    settings = settings or get_settings()
    if client_factory is None:

        def client_factory():
            return DartClient(settings.dart_token, base_url=settings.dart_api_base_url)

    return ServerServices(
        settings=settings,
        registry=BatchOperationRegistry(retention_seconds=settings.batch_retention_seconds),
        config_cache=ConfigCache(ttl_seconds=settings.config_cache_ttl_seconds),
        client_factory=client_factory,
    )
