"""Root exception for the launcher.

Each layer defines its own subclasses next to the code that raises them.
"""


class DeployBotError(Exception):
    """Base class for launcher errors."""

    pass
