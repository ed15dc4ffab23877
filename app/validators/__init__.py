"""
app/validators package marker.
"""

from app.validators.consistency_validator import ConsistencyErrorDetail, CrossTableValidator

__all__ = [
    "ConsistencyErrorDetail",
    "CrossTableValidator",
]
