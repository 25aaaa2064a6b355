"""
Shared constants for canvas interaction.

Layout names follow the rendering engine's vocabulary; see
spatialgraph.layouts for the algorithms behind them.
"""

# Layout used when the browser view first loads and after a filter change
BROWSER_LAYOUT = "cose"

# Editor nodes keep the positions the authority confirmed
EDITOR_LAYOUT = "preset"

# Keys that delete the current selection in the editor
DELETE_KEYS = ("Delete", "Backspace")

# Movement below this distance (graph units) is not worth a node_moved request
MOVE_EPSILON = 0.01
