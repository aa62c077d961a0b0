"""Plugin manager - top-level orchestrator for the plugin system."""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sourcehub.plugins.activator import PluginActivator
from sourcehub.plugins.cache import PluginCache
from sourcehub.plugins.catalog import PluginCatalog
from sourcehub.plugins.config import PluginConfigService
from sourcehub.plugins.descriptor import PluginDescriptor
from sourcehub.plugins.errors import (
    HtmlInsteadOfCodeError,
    IntegrityMismatchError,
    InvalidDescriptorError,
    PluginError,
    PluginNotFoundError,
    ValidationFailedError,
)
from sourcehub.plugins.fetcher import ArtifactFetcher, looks_like_html
from sourcehub.plugins.integrity import sha256_hex, verify
from sourcehub.plugins.registry import PluginInstance, PluginRegistry, PluginState
from sourcehub.plugins.sdk import Item, SearchOptions
from sourcehub.plugins.validator import CapabilityValidator
from sourcehub.utils.versions import is_newer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

_STATE_ORDER = list(PluginState)


@dataclass(frozen=True)
class UpdateInfo:
    """An installed plugin with a newer version in the catalog."""

    id: str
    installed_version: str
    available_version: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "installed_version": self.installed_version,
            "available_version": self.available_version,
        }


class _ProgressReporter:
    """Forwards progress events and tracks the pipeline state of one install.

    Percentages never decrease and states only move forward.
    """

    def __init__(self, plugin_id: str, callback: Optional[ProgressCallback]):
        self.plugin_id = plugin_id
        self.callback = callback
        self.last = 0
        self.state: Optional[PluginState] = None

    def advance(self, state: PluginState, percent: int, label: str) -> None:
        """Enter the next pipeline state and report its progress."""
        if self.state is not None and _STATE_ORDER.index(state) <= _STATE_ORDER.index(self.state):
            raise ValueError(f"Pipeline state cannot move from {self.state.value} to {state.value}")
        self.state = state
        self.report(percent, label)

    def report(self, percent: int, label: str) -> None:
        percent = max(self.last, min(100, int(percent)))
        self.last = percent
        logger.debug(f"[{self.plugin_id}] {percent}% {label}")
        if self.callback is None:
            return
        try:
            self.callback(percent, label)
        except Exception as e:
            logger.warning(f"Progress callback for '{self.plugin_id}' raised: {e}")


class PluginManager:
    """Top-level plugin system orchestrator.

    Coordinates the catalog, fetch, verification, validation, activation, registry
    and cache. Concurrent installs of the same plugin id and version share a single
    pipeline run and receive the same instance or the same error. A request for a
    different version waits for the run in flight, then starts its own.
    """

    def __init__(
        self,
        catalog: PluginCatalog,
        registry: PluginRegistry,
        cache: Optional[PluginCache] = None,
        fetcher: Optional[ArtifactFetcher] = None,
        validator: Optional[CapabilityValidator] = None,
        activator: Optional[PluginActivator] = None,
        config_service: Optional[PluginConfigService] = None,
        fetch_timeout: Optional[float] = None,
        fetch_retries: Optional[int] = None,
    ):
        self.catalog = catalog
        self.registry = registry
        self.cache = cache or PluginCache()
        self.fetcher = fetcher or ArtifactFetcher()
        self.validator = validator or CapabilityValidator()
        self.activator = activator or PluginActivator()
        self.config_service = config_service
        self.fetch_timeout = fetch_timeout
        self.fetch_retries = fetch_retries

        # plugin id -> (descriptor being installed, shared pipeline task)
        self._in_flight: Dict[str, Tuple[PluginDescriptor, "asyncio.Task[PluginInstance]"]] = {}
        self._in_flight_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def browse(self) -> List[PluginDescriptor]:
        """All plugins available in the catalog."""
        return await self.catalog.list_all()

    async def search_catalog(
        self,
        query: str,
        language: Optional[str] = None,
        tag: Optional[str] = None,
        official: Optional[bool] = None,
        nsfw: Optional[bool] = None,
    ) -> List[PluginDescriptor]:
        """Search the catalog by substring, language, tag, official and NSFW flags."""
        return await self.catalog.search(query, language=language, tag=tag, official=official, nsfw=nsfw)

    async def catalog_statistics(self) -> Dict[str, Any]:
        """Catalog totals by official, NSFW, language and tag."""
        return await self.catalog.statistics()

    async def sync_catalog(self) -> List[PluginDescriptor]:
        """Re-fetch the catalog from its mirrors."""
        return await self.catalog.refresh()

    # ------------------------------------------------------------------
    # Install / update / uninstall
    # ------------------------------------------------------------------

    async def install(self, plugin_id: str, on_progress: Optional[ProgressCallback] = None) -> PluginInstance:
        """Install a plugin from the catalog and register it.

        Args:
            plugin_id: Catalog plugin ID
            on_progress: Optional callback receiving (percent, label)

        Returns:
            The registered PluginInstance

        Raises:
            PluginError: the typed error of the stage that failed
        """
        descriptor = await self.catalog.get(plugin_id)
        return await self.install_descriptor(descriptor, on_progress)

    async def install_descriptor(
        self, descriptor: PluginDescriptor, on_progress: Optional[ProgressCallback] = None
    ) -> PluginInstance:
        """Install a plugin from an explicit descriptor."""
        progress = _ProgressReporter(descriptor.id, on_progress)
        return await self._single_flight(descriptor, progress)

    async def update(self, plugin_id: str, on_progress: Optional[ProgressCallback] = None) -> PluginInstance:
        """Update an installed plugin to the catalog's current version.

        The new version replaces the registry entry only after the whole pipeline
        succeeds; on failure the installed version stays registered.

        Raises:
            PluginNotFoundError: the plugin is not installed or not in the catalog
        """
        current = self.registry.get(plugin_id)
        if current is None:
            raise PluginNotFoundError(f"Plugin '{plugin_id}' is not installed", plugin_id=plugin_id)

        descriptor = await self.catalog.get(plugin_id)
        progress = _ProgressReporter(plugin_id, on_progress)
        if not is_newer(descriptor.version, current.version):
            logger.info(f"Plugin '{plugin_id}' is up to date (v{current.version})")
            progress.report(100, "Already up to date")
            return current

        logger.info(f"Updating plugin '{plugin_id}': v{current.version} -> v{descriptor.version}")
        return await self._single_flight(descriptor, progress)

    async def uninstall(self, plugin_id: str) -> bool:
        """Unregister a plugin and drop it from the cache.

        Waits for any in-flight install of the same plugin first.

        Returns:
            True if the plugin was registered
        """
        with self._in_flight_lock:
            flight = self._in_flight.get(plugin_id)
        if flight is not None:
            await asyncio.wait([flight[1]])

        instance = self.registry.get(plugin_id)
        removed = self.registry.unregister(plugin_id)
        self.cache.invalidate(plugin_id)
        if self.config_service is not None:
            self._persist(lambda: self.config_service.record_uninstall(plugin_id))
        if instance is not None:
            await self._stop_instance(instance)
        return removed

    async def check_for_updates(self, refresh: bool = False) -> List[UpdateInfo]:
        """Installed plugins whose catalog version is newer.

        Args:
            refresh: Re-fetch the catalog first instead of using the cached document
        """
        if refresh:
            await self.catalog.refresh()

        updates = []
        for instance in self.registry.list():
            try:
                descriptor = await self.catalog.get(instance.id)
            except PluginNotFoundError:
                logger.debug(f"Installed plugin '{instance.id}' is no longer in the catalog")
                continue
            if is_newer(descriptor.version, instance.version):
                updates.append(
                    UpdateInfo(
                        id=instance.id,
                        installed_version=instance.version,
                        available_version=descriptor.version,
                    )
                )
        return updates

    async def restore_installed(self) -> List[PluginInstance]:
        """Reinstall every plugin recorded in the config file.

        Failures are logged and skipped so one broken plugin does not block startup.
        """
        if self.config_service is None:
            return []

        restored = []
        for plugin_id in self.config_service.get_installed():
            try:
                restored.append(await self.install(plugin_id))
            except PluginError as e:
                logger.error(f"Failed to restore plugin '{plugin_id}' ({e.stage}): {e}")
        logger.info(f"Restored {len(restored)} installed plugin(s)")
        return restored

    async def shutdown(self) -> None:
        """Stop every plugin and release the registry and cache."""
        for instance in self.registry.list():
            await self._stop_instance(instance)
        self.cache.clear()
        self.registry.shutdown()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, plugin_id: str) -> PluginInstance:
        """Get an installed plugin.

        Raises:
            PluginNotFoundError: the plugin is not installed
        """
        instance = self.registry.get(plugin_id)
        if instance is None:
            available = ", ".join(sorted(p.id for p in self.registry.list())) or "none"
            raise PluginNotFoundError(
                f"Plugin '{plugin_id}' is not installed. Installed plugins: {available}",
                plugin_id=plugin_id,
            )
        return instance

    def list_installed(self) -> List[PluginInstance]:
        """All installed plugins."""
        return self.registry.list()

    async def search_all(
        self,
        query: str,
        plugin_ids: Optional[Sequence[str]] = None,
        options: Optional[SearchOptions] = None,
    ) -> Dict[str, List[Item]]:
        """Search several plugins concurrently.

        Args:
            query: Search text
            plugin_ids: Plugins to search (default: every plugin with the search capability)
            options: Search options passed to each plugin

        Returns:
            Mapping of plugin id to results; plugins that fail are logged and omitted
        """
        if plugin_ids:
            instances = [self.get(pid) for pid in plugin_ids]
            results: Dict[str, List[Item]] = {p.id: [] for p in instances if not p.supports("search")}
            instances = [p for p in instances if p.supports("search")]
        else:
            instances = self.registry.filter_by_capability("search")
            results = {}

        outcomes = await asyncio.gather(
            *(p.source.search(query, options) for p in instances),
            return_exceptions=True,
        )
        for instance, outcome in zip(instances, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Search failed in plugin '{instance.id}': {outcome}")
                continue
            results[instance.id] = list(outcome)
        return results

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _single_flight(self, descriptor: PluginDescriptor, progress: _ProgressReporter) -> PluginInstance:
        plugin_id = descriptor.id
        while True:
            with self._in_flight_lock:
                flight = self._in_flight.get(plugin_id)
                if flight is None or flight[1].done():
                    task = asyncio.ensure_future(self._install_pipeline(descriptor, progress))
                    self._in_flight[plugin_id] = (descriptor, task)
                    task.add_done_callback(lambda t: self._flight_done(plugin_id, t))
                    joined = False
                    break
                if self._same_artifact(flight[0], descriptor):
                    task = flight[1]
                    joined = True
                    break

            # A different version is in flight: let it finish, then run our own
            logger.info(
                f"Install of '{plugin_id}' v{flight[0].version} in progress, "
                f"waiting before installing v{descriptor.version}"
            )
            progress.report(0, "Waiting for install in progress")
            await asyncio.wait([flight[1]])

        if joined:
            logger.info(f"Install of '{plugin_id}' v{descriptor.version} already in progress, joining it")
            progress.report(0, "Waiting for install in progress")

        # Shielded: one caller's cancellation must not abort the shared run
        instance = await asyncio.shield(task)

        if joined:
            progress.report(100, "Installation complete")
        return instance

    @staticmethod
    def _same_artifact(running: PluginDescriptor, requested: PluginDescriptor) -> bool:
        return running.version == requested.version and running.expected_digest == requested.expected_digest

    def _flight_done(self, plugin_id: str, task: "asyncio.Task[PluginInstance]") -> None:
        with self._in_flight_lock:
            flight = self._in_flight.get(plugin_id)
            if flight is not None and flight[1] is task:
                del self._in_flight[plugin_id]
        # Mark the error retrieved when every caller has gone away
        if not task.cancelled():
            task.exception()

    async def _install_pipeline(self, descriptor: PluginDescriptor, progress: _ProgressReporter) -> PluginInstance:
        try:
            return await self._run_pipeline(descriptor, progress)
        except PluginError as e:
            if e.plugin_id is None:
                e.plugin_id = descriptor.id
            if progress.state is not None:
                e.last_state = progress.state.value
            logger.error(
                f"Install of '{descriptor.id}' v{descriptor.version} failed at {e.stage} "
                f"(last state: {e.last_state or 'none'}): {e}"
            )
            raise

    async def _run_pipeline(self, descriptor: PluginDescriptor, progress: _ProgressReporter) -> PluginInstance:
        plugin_id = descriptor.id
        if not descriptor.expected_digest:
            raise InvalidDescriptorError(
                f"Descriptor for '{plugin_id}' has no expected digest; refusing to install",
                plugin_id=plugin_id,
            )

        progress.report(0, "Starting installation")

        cached = self.cache.get(plugin_id, descriptor.version)
        if cached is not None and cached.digest == descriptor.expected_digest:
            if self.registry.get(plugin_id) is not cached:
                self.registry.register(cached)
            logger.info(f"Plugin '{plugin_id}' v{descriptor.version} loaded from cache")
            progress.report(100, "Loaded from cache")
            return cached

        # Fetched
        progress.report(10, "Downloading source")
        result = await self.fetcher.fetch(
            descriptor.artifact_url,
            timeout=self.fetch_timeout,
            max_retries=self.fetch_retries,
        )
        content = result.unwrap()
        progress.advance(PluginState.FETCHED, 40, "Download complete")

        if looks_like_html(content):
            raise HtmlInsteadOfCodeError(
                f"Artifact for '{plugin_id}' is an HTML page, not source code: {descriptor.artifact_url}",
                url=descriptor.artifact_url,
                plugin_id=plugin_id,
            )

        # Verified
        actual = sha256_hex(content)
        if not verify(content, descriptor.expected_digest):
            raise IntegrityMismatchError(
                f"Integrity check failed for '{plugin_id}': expected {descriptor.expected_digest}, got {actual}",
                expected=descriptor.expected_digest,
                actual=actual,
                plugin_id=plugin_id,
            )
        progress.advance(PluginState.VERIFIED, 55, "Integrity verified")

        # Validated
        try:
            source_text = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValidationFailedError(
                f"Artifact for '{plugin_id}' is not valid UTF-8",
                reasons=[f"artifact is not valid UTF-8: {e}"],
                plugin_id=plugin_id,
            ) from e

        verdict = self.validator.validate(source_text)
        if not verdict.ok:
            raise ValidationFailedError(
                f"Source for '{plugin_id}' failed validation: {'; '.join(verdict.reasons)}",
                reasons=verdict.reasons,
                plugin_id=plugin_id,
            )
        progress.advance(PluginState.VALIDATED, 70, "Source validated")

        # Activated
        instance = await self.activator.activate(descriptor, source_text, verdict, digest=actual)
        progress.advance(PluginState.ACTIVATED, 85, "Source activated")

        # Registered
        previous = self.registry.get(plugin_id)
        self.registry.register(instance)
        progress.advance(PluginState.REGISTERED, 95, "Plugin registered")

        self.cache.put(plugin_id, descriptor.version, instance)
        if self.config_service is not None:
            self._persist(lambda: self.config_service.record_install(plugin_id, descriptor.version, actual))
        if previous is not None and previous is not instance:
            await self._stop_instance(previous)

        progress.report(100, "Installation complete")
        return instance

    def _persist(self, action: Callable[[], None]) -> None:
        try:
            action()
        except OSError as e:
            logger.error(f"Failed to persist installed plugin state: {e}")

    async def _stop_instance(self, instance: PluginInstance) -> None:
        try:
            await instance.source.on_stop()
        except Exception as e:
            logger.error(f"Failed to stop plugin {instance.id}: {e}")
