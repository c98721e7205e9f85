"""Isolated per-build workspaces.

Each build attempt gets a fresh directory under the build root, named
``build_<key>_<random>``, holding the project manifest and ``src/lib.rs``.
Workspaces are never reused across builds.  The toolchain output directory
(``<target_root>/build_<key>``) is durable and is never removed here.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from alkaneforge.config import ForgeSettings
from alkaneforge.core.errors import WorkspaceError
from alkaneforge.core.templates import load_template, render_manifest
from alkaneforge.models.builds import BuildWorkspace

logger = logging.getLogger(__name__)


class WorkspaceManager:
    """Creates and destroys ``BuildWorkspace`` trees.

    Parameters
    ----------
    build_root:
        Parent directory for ephemeral workspaces.
    target_root:
        Parent directory for durable per-key toolchain output.
    crate_name:
        Base crate name rendered into the manifest.
    crate_name_strategy:
        ``"fixed"`` uses ``crate_name`` as-is; ``"hash_suffixed"`` appends
        the ContentKey so every key has a distinct artifact filename.
    cleanup:
        Remove workspaces after the build.  ``False`` keeps them for
        diagnostics.
    """

    def __init__(
        self,
        build_root: Path,
        target_root: Path,
        *,
        crate_name: str = "alkanes_contract",
        crate_name_strategy: str = "fixed",
        target_triple: str = "wasm32-unknown-unknown",
        template: str | None = None,
        cleanup: bool = True,
    ) -> None:
        if crate_name_strategy not in ("fixed", "hash_suffixed"):
            raise ValueError(f"Unknown crate name strategy: {crate_name_strategy!r}")
        self._build_root = Path(build_root)
        self._target_root = Path(target_root)
        self._crate_name = crate_name
        self._strategy = crate_name_strategy
        self._target_triple = target_triple
        self._template = template if template is not None else load_template()
        self.cleanup = cleanup

    @classmethod
    def from_settings(cls, settings: ForgeSettings) -> WorkspaceManager:
        return cls(
            settings.build_root,
            settings.target_root,
            crate_name=settings.crate_name,
            crate_name_strategy=settings.crate_name_strategy,
            target_triple=settings.target_triple,
            template=load_template(settings.cargo_template_path),
            cleanup=settings.cleanup_workspaces,
        )

    def crate_name_for(self, key: str) -> str:
        if self._strategy == "hash_suffixed":
            return f"{self._crate_name}_{key}"
        return self._crate_name

    def target_dir_for(self, key: str) -> Path:
        return self._target_root / f"build_{key}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, key: str, source: str) -> BuildWorkspace:
        """Materialize a new workspace for *key* containing *source*.

        Any stale artifact at the expected output path is removed so a
        build that exits cleanly without writing one is detected.
        """
        crate_name = self.crate_name_for(key)
        root: Path | None = None
        try:
            self._build_root.mkdir(parents=True, exist_ok=True)
            root = Path(tempfile.mkdtemp(prefix=f"build_{key}_", dir=self._build_root))
            workspace = BuildWorkspace(
                key=key,
                root=root,
                crate_name=crate_name,
                target_dir=self.target_dir_for(key),
                target_triple=self._target_triple,
            )
            workspace.source_path.parent.mkdir(parents=True, exist_ok=True)
            workspace.manifest_path.write_text(
                render_manifest(self._template, crate_name), encoding="utf-8"
            )
            workspace.source_path.write_text(source, encoding="utf-8")
            workspace.target_dir.mkdir(parents=True, exist_ok=True)
            workspace.expected_artifact.unlink(missing_ok=True)
        except OSError as exc:
            if root is not None:
                shutil.rmtree(root, ignore_errors=True)
            raise WorkspaceError(
                f"Could not create build workspace for {key}: {exc}", key=key
            ) from exc

        logger.debug("workspace:create key=%s root=%s", key, workspace.root)
        return workspace

    def release(self, workspace: BuildWorkspace) -> None:
        """Remove the workspace tree unless retention is configured."""
        if not self.cleanup:
            logger.info("workspace:retained key=%s root=%s", workspace.key, workspace.root)
            return
        try:
            shutil.rmtree(workspace.root)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning(
                "workspace:cleanup_failed key=%s root=%s error=%s",
                workspace.key,
                workspace.root,
                exc,
            )
