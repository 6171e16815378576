"""
Rate Limiting Package - DSP
===========================

Multi-tier, multi-key request quotas applied to every inbound request.

Structure
---------
- config.py       → RateLimitConfig / Quota parsed from RATE_LIMIT_* settings
- store.py        → Redis and in-process fixed-window counters
- identity.py     → Quota key and (advisory) role resolution
- guard.py        → IngressGuard: rule resolution, limiter cache, consumption
- middleware.py   → RateLimitMiddleware (Django middleware entry point)

Author: DSP Development Team
Date: 2025-09-03
"""
