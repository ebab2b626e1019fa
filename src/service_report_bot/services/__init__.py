# Service layer package
from . import auth  # re-export for convenience
from . import validation
from . import submission
