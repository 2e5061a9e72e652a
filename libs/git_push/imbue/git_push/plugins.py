import pluggy

from imbue.git_push import hookspecs

# Module-level container for the plugin manager singleton, created lazily.
# Using a dict avoids the need for the 'global' keyword while still allowing module-level state.
_plugin_manager_container: dict[str, pluggy.PluginManager | None] = {"pm": None}


def create_plugin_manager() -> pluggy.PluginManager:
    """Create a plugin manager with the git_push hookspecs and every installed plugin.

    External packages register hooks by adding an entry point for the "git_push" group.
    """
    pm = pluggy.PluginManager("git_push")
    pm.add_hookspecs(hookspecs)
    pm.load_setuptools_entrypoints("git_push")
    return pm


def get_or_create_plugin_manager() -> pluggy.PluginManager:
    """Get or create the module-level plugin manager singleton, so plugins are only loaded once."""
    if _plugin_manager_container["pm"] is None:
        _plugin_manager_container["pm"] = create_plugin_manager()
    return _plugin_manager_container["pm"]


def reset_plugin_manager() -> None:
    """Reset the module-level plugin manager singleton. Mostly useful in tests."""
    _plugin_manager_container["pm"] = None
