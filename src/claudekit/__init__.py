"""claudekit: ownership-aware kit installation for Claude Code directories.

Import from submodules:
- version: __version__
- io.manifest: read/write metadata.json
- operations.install: install_kit
- operations.uninstall: get_uninstall_manifest, remove_installation
"""

from claudekit.version import __version__ as __version__
