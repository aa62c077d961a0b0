"""Plugin activator - turns validated source text into a live plugin instance."""
from __future__ import annotations

import asyncio
import importlib.util
import logging
import re
import shutil
import sys
import tempfile
import uuid
from pathlib import Path
from types import ModuleType
from typing import FrozenSet, Optional, Type

from sourcehub.constants import SDK_CONCRETE_MODULE, SDK_LOGICAL_MODULE
from sourcehub.plugins import sdk
from sourcehub.plugins.descriptor import PluginDescriptor
from sourcehub.plugins.errors import ActivationError, ValidationFailedError
from sourcehub.plugins.registry import PluginInstance, PluginState
from sourcehub.plugins.sdk import (
    CAPABILITY_OPERATIONS,
    MANDATORY_OPERATIONS,
    REQUIRED_ATTRIBUTES,
    BaseSource,
)
from sourcehub.plugins.validator import ValidationVerdict
from sourcehub.utils.versions import compare_versions

logger = logging.getLogger(__name__)

# Names pre-seeded into every plugin namespace
SDK_EXPORTS = ("BaseSource", "SearchOptions", "Item", "Child", "Asset", "PaginationInfo")

_LOGICAL = re.escape(SDK_LOGICAL_MODULE)
_FROM_LOGICAL = re.compile(rf"^([ \t]*)from[ \t]+{_LOGICAL}\b", re.MULTILINE)
_IMPORT_LOGICAL_AS = re.compile(rf"^([ \t]*)import[ \t]+{_LOGICAL}[ \t]+as\b", re.MULTILINE)
_IMPORT_LOGICAL = re.compile(rf"^([ \t]*)import[ \t]+{_LOGICAL}[ \t]*(#.*)?$", re.MULTILINE)


def resolve_sdk_imports(source_text: str) -> str:
    """Rewrite imports of the logical SDK module to the concrete host module."""
    text = _FROM_LOGICAL.sub(rf"\1from {SDK_CONCRETE_MODULE}", source_text)
    text = _IMPORT_LOGICAL_AS.sub(rf"\1import {SDK_CONCRETE_MODULE} as", text)
    text = _IMPORT_LOGICAL.sub(rf"\1import {SDK_CONCRETE_MODULE} as {SDK_LOGICAL_MODULE}", text)
    return text


class PluginActivator:
    """Executes plugin source in a private module and instantiates its exported class.

    Each activation writes the source to its own temporary directory, which is
    removed on every exit path.
    """

    def __init__(self, scratch_dir: Optional[Path] = None):
        """Initialize the activator.

        Args:
            scratch_dir: Parent directory for per-activation temp dirs (system temp if None)
        """
        self.scratch_dir = scratch_dir

    async def activate(
        self,
        descriptor: PluginDescriptor,
        source_text: str,
        verdict: ValidationVerdict,
        digest: str = "",
    ) -> PluginInstance:
        """Activate validated source text.

        Args:
            descriptor: Descriptor the source was fetched for
            source_text: Plugin source code
            verdict: Validator verdict for exactly this text
            digest: Verified SHA-256 of the artifact

        Returns:
            PluginInstance in ACTIVATED state

        Raises:
            ValidationFailedError: verdict is not ok
            ActivationError: the code could not be executed or instantiated
        """
        if not verdict.ok:
            raise ValidationFailedError(
                f"Refusing to activate '{descriptor.id}': source failed validation",
                reasons=verdict.reasons,
                plugin_id=descriptor.id,
            )
        return await asyncio.to_thread(self._activate_sync, descriptor, source_text, digest)

    def _activate_sync(self, descriptor: PluginDescriptor, source_text: str, digest: str) -> PluginInstance:
        module = self._load_module(descriptor, resolve_sdk_imports(source_text))
        source_cls = self._resolve_export(descriptor, module)

        try:
            source = source_cls()
        except Exception as e:
            raise ActivationError(
                f"Plugin '{descriptor.id}' could not be instantiated: {e}",
                plugin_id=descriptor.id,
            ) from e

        self._check_contract(descriptor, source)
        capabilities = self._capability_tags(descriptor, source)

        logger.info(
            f"Activated plugin: {descriptor.id} v{descriptor.version} "
            f"(capabilities: {', '.join(sorted(capabilities)) or 'none'})"
        )
        return PluginInstance(
            descriptor=descriptor,
            source=source,
            capabilities=capabilities,
            digest=digest,
            state=PluginState.ACTIVATED,
        )

    def _load_module(self, descriptor: PluginDescriptor, code: str) -> ModuleType:
        module_name = f"sourcehub_plugin_{descriptor.id.replace('-', '_')}_{uuid.uuid4().hex[:12]}"
        scratch = Path(tempfile.mkdtemp(prefix=f"sourcehub-{descriptor.id}-", dir=self.scratch_dir))
        try:
            path = scratch / f"{module_name}.py"
            path.write_text(code, encoding="utf-8")

            spec = importlib.util.spec_from_file_location(module_name, path)
            if spec is None or spec.loader is None:
                raise ActivationError(
                    f"Cannot build a module spec for plugin '{descriptor.id}'",
                    plugin_id=descriptor.id,
                )
            module = importlib.util.module_from_spec(spec)
            for name in SDK_EXPORTS:
                setattr(module, name, getattr(sdk, name))

            # Registered only while executing; class machinery looks the module up by name
            sys.modules[module_name] = module
            try:
                spec.loader.exec_module(module)
            except Exception as e:
                raise ActivationError(
                    f"Plugin '{descriptor.id}' failed to execute: {e}",
                    plugin_id=descriptor.id,
                ) from e
            finally:
                sys.modules.pop(module_name, None)

            return module
        finally:
            self._cleanup(scratch, descriptor.id)

    def _cleanup(self, scratch: Path, plugin_id: str) -> None:
        try:
            shutil.rmtree(scratch)
        except OSError as e:
            logger.warning(f"Failed to remove activation scratch dir for '{plugin_id}' ({scratch}): {e}")

    def _resolve_export(self, descriptor: PluginDescriptor, module: ModuleType) -> Type[BaseSource]:
        exported = getattr(module, "__plugin__", None)
        if exported is None:
            for name in getattr(module, "__all__", ()):
                candidate = getattr(module, name, None)
                if isinstance(candidate, type) and issubclass(candidate, BaseSource):
                    exported = candidate
                    break

        if exported is None:
            raise ActivationError(
                f"Plugin '{descriptor.id}' exports no plugin class (__plugin__ or __all__)",
                plugin_id=descriptor.id,
            )
        if not (isinstance(exported, type) and issubclass(exported, BaseSource)):
            raise ActivationError(
                f"Plugin '{descriptor.id}' export {exported!r} is not a BaseSource subclass",
                plugin_id=descriptor.id,
            )
        return exported

    def _check_contract(self, descriptor: PluginDescriptor, source: BaseSource) -> None:
        missing = [attr for attr in REQUIRED_ATTRIBUTES if not getattr(source, attr, None)]
        if missing:
            raise ActivationError(
                f"Plugin '{descriptor.id}' is missing required attribute(s): {', '.join(missing)}",
                plugin_id=descriptor.id,
            )

        not_callable = [op for op in MANDATORY_OPERATIONS if not callable(getattr(source, op, None))]
        if not_callable:
            raise ActivationError(
                f"Plugin '{descriptor.id}' does not implement: {', '.join(not_callable)}",
                plugin_id=descriptor.id,
            )

        if source.id != descriptor.id:
            raise ActivationError(
                f"Plugin id mismatch: descriptor '{descriptor.id}', plugin '{source.id}'",
                plugin_id=descriptor.id,
            )

        if compare_versions(str(source.version), descriptor.version) != 0:
            logger.warning(
                f"Plugin '{descriptor.id}' reports v{source.version}, "
                f"catalog says v{descriptor.version}; using catalog version"
            )

    def _capability_tags(self, descriptor: PluginDescriptor, source: BaseSource) -> FrozenSet[str]:
        tags = set()
        for capability in descriptor.capabilities.enabled():
            operation = CAPABILITY_OPERATIONS.get(capability)
            if operation and callable(getattr(source, operation, None)):
                tags.add(capability)
            else:
                logger.warning(
                    f"Plugin '{descriptor.id}' declares '{capability}' but does not implement it"
                )
        return frozenset(tags)
