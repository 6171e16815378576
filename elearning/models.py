"""
E-Learning Application Models Registry

This module serves as the central models registry for the E-Learning application.
It imports and exposes all models from the logical submodules (users, courses,
payments) to ensure they are properly registered with Django's ORM system.

Architecture:
- users/: Profiles with role and instructor earnings
- courses/: Courses and student enrollments
- payments/: Chapa payments and instructor payout state

Author: DSP Development Team
Version: 1.0.0
"""

# Import all user-related models for registration with Django ORM
from .users.models import *

# Import course and enrollment models for registration with Django ORM
from .courses.models import *

# Import payment models for registration with Django ORM
from .payments.models import *
