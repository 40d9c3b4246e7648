# bootfix/__init__.py

# Exception imports
from .utils.exceptions import BootfixError
from .utils.exceptions import QueryError
from .utils.exceptions import QueryTimeout
from .utils.exceptions import UnresolvedPhysicalDevice
from .utils.exceptions import IdentifierNotFound
from .utils.exceptions import InvalidIdentifier
from .utils.exceptions import NoMatchingBootEntry
from .utils.exceptions import MissingTemplate
from .utils.exceptions import UnknownBootloader

__all__ = [
    "BootfixError",
    "QueryError",
    "QueryTimeout",
    "UnresolvedPhysicalDevice",
    "IdentifierNotFound",
    "InvalidIdentifier",
    "NoMatchingBootEntry",
    "MissingTemplate",
    "UnknownBootloader",
]

# Versioning
__version__ = "0.1.0"
