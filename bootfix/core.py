# core.py
from typing import Optional
from bootfix.utils.logger import RichAppLogger

# Process-wide logger wrapper, set by the first CLI command that needs it
app_logger: Optional[RichAppLogger] = None
