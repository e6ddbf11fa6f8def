"""Root test configuration.

Loads the final_swap plugin (``swap_binding`` fixture and ``final_swap_*`` ini
keys) and pytester, which the plugin tests use to run inner sessions.
"""

from __future__ import annotations

pytest_plugins = ['final_swap.pytest_plugin', 'pytester']
