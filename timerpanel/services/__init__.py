# -*- coding: utf-8 -*-
"""
Auxiliary services for the timer panel.

For now this only holds the logging setup shared by the demo server.
"""

__all__ = ["logging"]
