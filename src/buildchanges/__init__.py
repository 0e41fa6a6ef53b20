"""buildchanges: change manifests between TeamCity builds."""

__version__ = "0.1.0"
