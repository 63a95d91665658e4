"""tracknotify - issue tracker change notifications.

Polls an issue tracker for changes to configured projects and sends one
chat notification per change, advancing a persisted checkpoint once every
message of a cycle has settled.
"""

from tracknotify.constants import VERSION

__version__ = VERSION

__all__ = ["__version__"]
