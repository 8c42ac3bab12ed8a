"""BaseService — shared foundation for all tflayerctl services.

Every service receives the resolved :class:`LayerCtlSettings` and the
layer graph built from it. The graph is built once per process and
shared read-only, so services never mutate it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tflayerctl.config.credentials import AzureCredentials

if TYPE_CHECKING:
    from pathlib import Path

    from tflayerctl.config.settings import LayerCtlSettings
    from tflayerctl.domain.topology import LayerGraph


class BaseService:
    """Base for all service-layer classes.

    Usage::

        class ChangesService(BaseService):
            def resolve(self, base: str, head: str) -> ServiceResult:
                ...
    """

    def __init__(
        self,
        settings: LayerCtlSettings,
        *,
        graph: LayerGraph | None = None,
        credentials: AzureCredentials | None = None,
    ) -> None:
        self._settings = settings
        self._graph = graph if graph is not None else settings.layer_graph()
        self._credentials = credentials

    @property
    def settings(self) -> LayerCtlSettings:
        return self._settings

    @property
    def graph(self) -> LayerGraph:
        return self._graph

    @property
    def credentials(self) -> AzureCredentials:
        """Credentials from the environment (read lazily, once)."""
        if self._credentials is None:
            self._credentials = AzureCredentials()
        return self._credentials

    @property
    def root(self) -> Path:
        return self._settings.project_root
