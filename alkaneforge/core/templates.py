"""Project skeleton rendered into every build workspace.

The manifest is treated as an opaque constant; the only substitution is the
``{crate_name}`` placeholder, which also determines the artifact filename the
build expects.
"""

from __future__ import annotations

from pathlib import Path

CARGO_TEMPLATE = """\
[package]
name = "{crate_name}"
version = "0.1.0"
edition = "2021"

[lib]
crate-type = ["cdylib", "rlib"]

[dependencies]
alkanes-support = { git = "https://github.com/kungfuflex/alkanes-rs" }
alkanes-runtime = { git = "https://github.com/kungfuflex/alkanes-rs" }
metashrew-support = { git = "https://github.com/sandshrewmetaprotocols/metashrew" }
anyhow = "1.0"

[profile.release]
opt-level = "z"
lto = true
codegen-units = 1
panic = "abort"
strip = true
"""


def load_template(path: Path | None = None) -> str:
    """Return the manifest template, from *path* if given."""
    if path is None:
        return CARGO_TEMPLATE
    return Path(path).read_text(encoding="utf-8")


def render_manifest(template: str, crate_name: str) -> str:
    """Substitute the crate name into a manifest template."""
    return template.replace("{crate_name}", crate_name)
