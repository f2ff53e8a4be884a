"""
clinicslots - appointment slot scheduling for a multi-role clinic portal.
"""

__version__ = "0.1.0"
