"""sharesync: copy shared directories into a target repository, safely."""

__version__ = "0.1.0"
