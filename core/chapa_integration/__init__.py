"""
Chapa Integration Package - DSP
===============================

This package centralizes the Chapa payment-gateway client used by the
settlement flow in ``elearning.payments``. It is deliberately free of models
and views: it only knows how to talk to the provider.

Structure
---------
- __init__.py (this file, documentation + public exports)
- client.py       → ChapaConfig, ChapaClient, InitializeResult
- tests.py        → Client tests with the HTTP layer patched out

Author: DSP Development Team
Date: 2025-09-03
"""

from .client import ChapaClient, ChapaConfig, InitializeResult

__all__ = ["ChapaClient", "ChapaConfig", "InitializeResult"]
